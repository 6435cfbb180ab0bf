#!/usr/bin/env python3
from __future__ import annotations

import os
import sys
import time

import httpx


def main() -> int:
    base_url = os.getenv("MINERVA_API_URL", "http://localhost:8000").rstrip("/")
    try:
        health = httpx.get(f"{base_url}/healthz", timeout=5)
        print("/healthz:", health.text)
        # Give the service a moment to finish boot
        time.sleep(0.5)
        stats = httpx.get(f"{base_url}/index/stats", timeout=5)
        print("/index/stats:", stats.text)
        health.raise_for_status()
        stats.raise_for_status()
    except httpx.HTTPError as exc:
        print(f"Compose smoke failed: {exc}", file=sys.stderr)
        return 1
    print("Compose smoke passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
