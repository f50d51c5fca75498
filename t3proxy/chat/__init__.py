"""OpenAI chat completions <-> backend conversation translation."""

from .stream_adapter import ChatCompletionStreamAdapter
from .translator import (
    build_completion_response,
    build_usage,
    convert_openai_messages,
    count_characters,
    estimate_tokens,
    message_text,
    new_completion_id,
    parse_request_config,
    resolve_backend_model,
)

__all__ = [
    "ChatCompletionStreamAdapter",
    "build_completion_response",
    "build_usage",
    "convert_openai_messages",
    "count_characters",
    "estimate_tokens",
    "message_text",
    "new_completion_id",
    "parse_request_config",
    "resolve_backend_model",
]
