"""Client side of the t3.chat backend: session state, wire decoding and transport."""

from .client import ChatClient
from .connection import BackendConnection, BackendSettings, Credentials
from .decoder import (
    BackendStreamDecoder,
    DecodedResponse,
    ImageResult,
    ResponseAccumulator,
    StreamComplete,
    StreamEvent,
    TextDelta,
    decode_events,
    decode_response_body,
    iter_stream_events,
)
from .message import (
    ImageContent,
    Message,
    MessageContent,
    ReasoningEffort,
    RequestConfig,
    Role,
    TextContent,
    content_text,
)
from .session import ConversationSession

__all__ = [
    "BackendConnection",
    "BackendSettings",
    "BackendStreamDecoder",
    "ChatClient",
    "ConversationSession",
    "Credentials",
    "DecodedResponse",
    "ImageContent",
    "ImageResult",
    "Message",
    "MessageContent",
    "ReasoningEffort",
    "RequestConfig",
    "ResponseAccumulator",
    "Role",
    "StreamComplete",
    "StreamEvent",
    "TextContent",
    "TextDelta",
    "content_text",
    "decode_events",
    "decode_response_body",
    "iter_stream_events",
]
