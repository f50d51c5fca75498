"""API routes for the proxy."""

from .chat import chat_completions, extract_api_key, handle_chat_request
from .health import health, service_info
from .models import list_models

__all__ = [
    "chat_completions",
    "extract_api_key",
    "handle_chat_request",
    "health",
    "list_models",
    "service_info",
]
