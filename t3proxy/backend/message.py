"""Conversation message types and per-request backend options.

Message content is a closed sum type: ``TextContent | ImageContent``.
Consumers handle both variants explicitly (see ``content_text``).
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from typing_extensions import assert_never


class Role(str, Enum):
    """Role of a message sender as understood by the backend."""

    USER = "user"
    ASSISTANT = "assistant"


class ReasoningEffort(str, Enum):
    """Reasoning effort levels accepted by the backend."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class TextContent:
    text: str


@dataclass(frozen=True)
class ImageContent:
    url: str
    base64: Optional[str] = None


MessageContent = Union[TextContent, ImageContent]


def content_text(content: MessageContent) -> str:
    """Return the text the backend sees for a piece of content.

    Image content is sent to the backend (and returned to callers) as its URL.
    """
    if isinstance(content, TextContent):
        return content.text
    if isinstance(content, ImageContent):
        return content.url
    assert_never(content)


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class Message:
    """A single immutable conversation message."""

    role: Role
    content: MessageContent
    id: str = field(default_factory=_new_id)

    @classmethod
    def text(cls, role: Role, text: str) -> "Message":
        """Create a text message with a freshly generated id."""
        return cls(role=Role(role), content=TextContent(text))

    @classmethod
    def image(cls, role: Role, url: str, base64: Optional[str] = None) -> "Message":
        """Create an image message with a freshly generated id."""
        return cls(role=Role(role), content=ImageContent(url=url, base64=base64))

    @classmethod
    def with_id(cls, message_id: str, role: Role, text: str) -> "Message":
        """Create a text message with a caller-supplied id."""
        return cls(role=Role(role), content=TextContent(text), id=message_id)

    @property
    def is_image(self) -> bool:
        return isinstance(self.content, ImageContent)

    @property
    def text_content(self) -> str:
        return content_text(self.content)

    def to_backend(self) -> dict:
        """Serialize into the backend's message schema."""
        return {
            "id": self.id,
            "parts": [{"type": "text", "text": self.text_content}],
            "role": self.role.value,
            "attachments": [],
        }


@dataclass(frozen=True)
class RequestConfig:
    """Per-call backend options."""

    reasoning_effort: ReasoningEffort = ReasoningEffort.MEDIUM
    include_search: bool = False

    def to_model_params(self) -> dict:
        return {
            "reasoningEffort": ReasoningEffort(self.reasoning_effort).value,
            "includeSearch": bool(self.include_search),
        }
