from __future__ import annotations

import httpx

from minerva.ui.app import create_session_factory


def test_sessions_share_one_http_client():
    client = httpx.AsyncClient(base_url="http://minerva.test")
    factory = create_session_factory("http://minerva.test", client=client)
    first, second = factory(), factory()
    assert first is not second
    assert first.transport.client is client
    assert second.transport.client is client


def test_default_factory_builds_a_single_client():
    factory = create_session_factory("http://minerva.test")
    first, second = factory(), factory()
    assert first.transport.client is second.transport.client
    assert str(first.transport.client.base_url).startswith("http://minerva.test")
