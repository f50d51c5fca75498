"""API module for the proxy."""

from .routes import chat_completions, handle_chat_request, health, list_models, service_info

__all__ = [
    "chat_completions",
    "handle_chat_request",
    "health",
    "list_models",
    "service_info",
]
