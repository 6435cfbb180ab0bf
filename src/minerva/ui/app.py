"""Gradio-based chat interface for Minerva."""

from __future__ import annotations

import asyncio
from typing import Any, Callable

import gradio as gr
import httpx

from minerva.ui.client import DEFAULT_API_URL, ChatSession, HttpChatTransport, Notification
from minerva.ui.parser import process_content
from minerva.ui.render import render_message

WELCOME = (
    "Hi, I'm Minerva. Ask me for romance recommendations, the latest AAR reviews, "
    "or what readers thought of a particular book."
)

SessionFactory = Callable[[], ChatSession]


def create_chat_handler(session_factory: SessionFactory):
    async def handle_message(message: str, chat_history: list[dict[str, Any]], session: ChatSession | None):
        if not message.strip():
            yield chat_history, session, ""
            return
        session = session or session_factory()
        updates: asyncio.Queue[str] = asyncio.Queue()
        notifications: list[Notification] = []
        session.on_update = updates.put_nowait
        session.on_notify = notifications.append

        history = list(chat_history) + [
            {"role": "user", "content": message},
            {"role": "assistant", "content": render_message(process_content(""))},
        ]
        yield history, session, ""

        task = asyncio.ensure_future(session.send(message))
        while not task.done() or not updates.empty():
            try:
                text = await asyncio.wait_for(updates.get(), timeout=0.1)
            except asyncio.TimeoutError:
                continue
            history[-1] = {"role": "assistant", "content": render_message(process_content(text))}
            yield history, session, ""

        reply = await task
        if reply is None:
            for note in notifications:
                gr.Warning(note.message)
            # The failed user message is dropped, so the prompt goes back in the box.
            yield list(chat_history), session, message
            return
        history[-1] = {"role": "assistant", "content": render_message(process_content(reply.content))}
        yield history, session, ""

    return handle_message


def create_stats_handler(base_url: str):
    def handle_stats() -> str:
        try:
            response = httpx.get(f"{base_url.rstrip('/')}/index/stats", timeout=10.0)
        except httpx.HTTPError as exc:
            return f"⚠️ Stats failed: {exc}"
        if response.status_code >= 400:
            return f"⚠️ Stats failed ({response.status_code}): {response.text}"
        stats = response.json()
        return f"Index: {stats.get('index_name')}\n\nIndexed reviews: {stats.get('total_reviews')}"

    return handle_stats


def create_session_factory(base_url: str, *, client: httpx.AsyncClient | None = None) -> SessionFactory:
    """Build sessions that share one connection pool to the API."""

    shared = client or httpx.AsyncClient(base_url=base_url, timeout=60.0)

    def factory() -> ChatSession:
        return ChatSession(HttpChatTransport(base_url=base_url, client=shared))

    return factory


def build_interface(base_url: str | None = None, session_factory: SessionFactory | None = None) -> gr.Blocks:
    api_url = base_url or DEFAULT_API_URL
    factory = session_factory or create_session_factory(api_url)
    handle_message = create_chat_handler(factory)

    with gr.Blocks(title="Minerva") as demo:
        gr.Markdown("## Minerva, the AAR review assistant")
        session_state = gr.State(None)
        chatbot = gr.Chatbot(
            value=[{"role": "assistant", "content": WELCOME}],
            type="messages",
            height=520,
            sanitize_html=False,
        )
        with gr.Row():
            textbox = gr.Textbox(placeholder="Ask about romance books, authors, or tropes...", scale=4, show_label=False)
            send_btn = gr.Button("Send", variant="primary", scale=1)
            stop_btn = gr.Button("Stop", scale=1)
            clear_btn = gr.Button("Clear", scale=1)

        inputs = [textbox, chatbot, session_state]
        outputs = [chatbot, session_state, textbox]
        submit_event = textbox.submit(handle_message, inputs=inputs, outputs=outputs)
        click_event = send_btn.click(handle_message, inputs=inputs, outputs=outputs)

        def _stop(session: ChatSession | None) -> ChatSession | None:
            if session is not None:
                session.abort()
            return session

        def _clear(session: ChatSession | None):
            if session is not None:
                session.clear()
            return [{"role": "assistant", "content": WELCOME}], session

        stop_btn.click(_stop, inputs=session_state, outputs=session_state, cancels=[submit_event, click_event])
        clear_btn.click(_clear, inputs=session_state, outputs=[chatbot, session_state], cancels=[submit_event, click_event])

        with gr.Accordion("Index", open=False):
            stats_md = gr.Markdown("(stats will appear here)")
            refresh_btn = gr.Button("Refresh Stats")
            refresh_btn.click(create_stats_handler(api_url), outputs=stats_md)

        gr.Markdown("Tip: set `MINERVA_API_URL` before launching to point the UI at a remote backend.")

    return demo


def launch(*, base_url: str | None = None, share: bool = False) -> None:
    """Launch the Gradio interface."""

    demo = build_interface(base_url=base_url)
    demo.launch(share=share)


if __name__ == "__main__":
    launch()
