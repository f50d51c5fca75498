"""t3proxy - OpenAI-compatible gateway for the t3.chat backend

Exposes /v1/chat/completions and /v1/models in the OpenAI format while
forwarding each conversation to t3.chat, decoding its line-delimited stream
incrementally and re-emitting it as chat completion chunks.

This module provides:
- ChatClient: conversation-aware backend client (send / send_stream)
- BackendStreamDecoder: incremental decoder for the backend wire format
- SessionRegistry: credential key -> backend session cache
- create_app: FastAPI application factory

Example:
    >>> from t3proxy.main import build_default_app
    >>> import uvicorn
    >>> uvicorn.run(build_default_app(), host="127.0.0.1", port=8000)
"""

__version__ = "1.0.0"

from .backend import (
    BackendConnection,
    BackendSettings,
    BackendStreamDecoder,
    ChatClient,
    ConversationSession,
    Credentials,
    Message,
    RequestConfig,
    Role,
)
from .config_loader import ProxySettings, load_config, load_settings
from .logging import logger, setup_logging
from .registry import SessionRegistry

__all__ = [
    "BackendConnection",
    "BackendSettings",
    "BackendStreamDecoder",
    "ChatClient",
    "ConversationSession",
    "Credentials",
    "Message",
    "ProxySettings",
    "RequestConfig",
    "Role",
    "SessionRegistry",
    "load_config",
    "load_settings",
    "logger",
    "setup_logging",
    "__version__",
]
