"""Translation between OpenAI chat completions and the backend conversation model.

Inbound: OpenAI ``messages`` become backend ``Message`` objects. ``system``
messages are sent as ``user`` messages because the backend has no system
role; list content keeps only its text parts.

Outbound: a backend reply becomes a ``chat.completion`` object with an
approximate usage block (one token per four characters, rounded up).
"""

import math
import time
import uuid
from typing import Any, Iterable, Mapping, Optional, Sequence

from ..backend.message import Message, ReasoningEffort, RequestConfig, Role
from ..core.exceptions import InvalidRequestError
from ..types.chat import ChatCompletion, ChatMessage, Usage

CHARS_PER_TOKEN = 4
USER_ROLES = {"system", "user"}


def message_text(content: Any) -> str:
    """Flatten OpenAI message content into plain text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "\n".join(
            str(part.get("text") or "")
            for part in content
            if isinstance(part, Mapping) and part.get("type") == "text"
        )
    return ""


def convert_openai_message(message: ChatMessage) -> Message:
    role = Role.USER if message.get("role") in USER_ROLES else Role.ASSISTANT
    return Message.text(role, message_text(message.get("content")))


def convert_openai_messages(messages: Iterable[Mapping[str, Any]]) -> list[Message]:
    converted = []
    for message in messages:
        if not isinstance(message, Mapping):
            raise InvalidRequestError("Each message must be a JSON object", code="invalid_message")
        converted.append(convert_openai_message(message))
    return converted


def resolve_backend_model(model_name: str, aliases: Mapping[str, str]) -> str:
    """Map a caller-visible model name to the backend model; unknown names pass through."""
    return aliases.get(model_name) or model_name


def parse_request_config(payload: Mapping[str, Any], defaults: RequestConfig) -> RequestConfig:
    """Read per-request backend options, falling back to configured defaults."""
    effort = defaults.reasoning_effort
    raw_effort = payload.get("reasoning_effort")
    if raw_effort is not None:
        try:
            effort = ReasoningEffort(str(raw_effort).strip().lower())
        except ValueError as exc:
            allowed = ", ".join(level.value for level in ReasoningEffort)
            raise InvalidRequestError(
                f"Unsupported reasoning_effort '{raw_effort}'; expected one of: {allowed}",
                code="invalid_parameter",
            ) from exc

    include_search = defaults.include_search
    raw_search = payload.get("include_search")
    if raw_search is not None:
        if not isinstance(raw_search, bool):
            raise InvalidRequestError(
                f"include_search must be true or false, got {raw_search!r}",
                code="invalid_parameter",
            )
        include_search = raw_search

    return RequestConfig(reasoning_effort=effort, include_search=include_search)


def estimate_tokens(char_count: int) -> int:
    """Crude token estimate: characters / 4, rounded up."""
    if char_count <= 0:
        return 0
    return math.ceil(char_count / CHARS_PER_TOKEN)


def count_characters(messages: Sequence[Message]) -> int:
    return sum(len(message.text_content) for message in messages)


def build_usage(prompt_characters: int, completion_text: str) -> Usage:
    prompt_tokens = estimate_tokens(prompt_characters)
    completion_tokens = estimate_tokens(len(completion_text))
    return {
        "prompt_tokens": prompt_tokens,
        "completion_tokens": completion_tokens,
        "total_tokens": prompt_tokens + completion_tokens,
    }


def new_completion_id() -> str:
    return f"chatcmpl-{uuid.uuid4().hex}"


def build_completion_response(
    reply: Message,
    model: str,
    prompt_characters: int,
    *,
    completion_id: Optional[str] = None,
    created: Optional[int] = None,
) -> ChatCompletion:
    """Build a non-streaming ``chat.completion`` object.

    ``model`` is the caller-visible name, not the backend model it mapped to.
    """
    content = reply.text_content
    return {
        "id": completion_id or new_completion_id(),
        "object": "chat.completion",
        "created": created if created is not None else int(time.time()),
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
        "usage": build_usage(prompt_characters, content),
    }
