"""Conversation session: ordered message history plus a lazily assigned thread id."""

import asyncio
import uuid
from typing import Iterable, Optional

from .message import Message


class ConversationSession:
    """Holds the state of one logical conversation with the backend.

    ``thread_id`` is set if and only if a send happened since the last reset.
    ``lock`` serializes sends so at most one is in flight per session.
    """

    def __init__(self) -> None:
        self._thread_id: Optional[str] = None
        self._messages: list[Message] = []
        self.lock = asyncio.Lock()

    @property
    def thread_id(self) -> Optional[str]:
        return self._thread_id

    def reset(self) -> None:
        """Start a new conversation, dropping thread id and history together."""
        self._thread_id = None
        self._messages = []

    def append(self, message: Message) -> None:
        # Role alternation is not enforced.
        self._messages.append(message)

    def extend(self, messages: Iterable[Message]) -> None:
        for message in messages:
            self.append(message)

    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def ensure_thread(self) -> str:
        """Return the thread id, generating it on first use after construction or reset."""
        if self._thread_id is None:
            self._thread_id = str(uuid.uuid4())
        return self._thread_id

    def __len__(self) -> int:
        return len(self._messages)
