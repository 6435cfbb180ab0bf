"""Chat client, answer parser and Gradio UI for Minerva."""

from .client import ChatAPIError, ChatSession, ChatTransportError, HttpChatTransport, Notification
from .parser import process_content
from .render import markdown_to_html, render_message

__all__ = [
    "ChatAPIError",
    "ChatSession",
    "ChatTransportError",
    "HttpChatTransport",
    "Notification",
    "markdown_to_html",
    "process_content",
    "render_message",
]
