"""Core module initialization."""

from .exceptions import (
    BackendRequestError,
    ClientDisconnected,
    InitializationError,
    InvalidRequestError,
    MissingCredentialsError,
    NoContentError,
    ProxyError,
)
from .sse import SSE_DONE, STREAM_HEADERS, STREAM_MEDIA_TYPE, format_sse_data, iter_sse_data

__all__ = [
    "BackendRequestError",
    "ClientDisconnected",
    "InitializationError",
    "InvalidRequestError",
    "MissingCredentialsError",
    "NoContentError",
    "ProxyError",
    "SSE_DONE",
    "STREAM_HEADERS",
    "STREAM_MEDIA_TYPE",
    "format_sse_data",
    "iter_sse_data",
]
