"""Types for the OpenAI chat completions wire format served by the proxy.

Only the fields the proxy reads or writes are declared. Inbound requests may
carry more (``temperature``, ``max_tokens``, ...); those are accepted and
ignored because the backend has no equivalent.
"""

from typing import Any, Literal

from typing_extensions import NotRequired, TypedDict


class ContentPart(TypedDict, total=False):
    """A content part of a multi-modal message.

    Attributes:
        type: "text", "image_url", ... Only "text" parts are forwarded.
        text: Text content for "text" parts.
    """
    type: str
    text: str


class ChatMessage(TypedDict, total=False):
    """An inbound chat message.

    Attributes:
        role: "system", "user", "assistant", "tool", ...
        content: Plain string, list of content parts, or None.
    """
    role: str
    content: str | list[ContentPart] | None


class ChatCompletionRequest(TypedDict, total=False):
    model: str
    messages: list[ChatMessage]
    stream: bool
    temperature: float
    max_tokens: int
    reasoning_effort: str
    include_search: bool


class AssistantMessage(TypedDict):
    role: Literal["assistant"]
    content: str


class Choice(TypedDict):
    index: int
    message: AssistantMessage
    finish_reason: str


class Usage(TypedDict):
    """Approximate usage; tokens are estimated as characters / 4."""
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class ChatCompletion(TypedDict):
    id: str
    object: Literal["chat.completion"]
    created: int
    model: str
    choices: list[Choice]
    usage: Usage


class ChunkDelta(TypedDict, total=False):
    role: str
    content: str


class ChunkChoice(TypedDict):
    index: int
    delta: ChunkDelta
    finish_reason: str | None


class ChatCompletionChunk(TypedDict):
    id: str
    object: Literal["chat.completion.chunk"]
    created: int
    model: str
    choices: list[ChunkChoice]


class ModelCard(TypedDict):
    id: str
    object: Literal["model"]
    created: int
    owned_by: str
    permission: list[Any]
    root: str
    parent: NotRequired[str | None]
