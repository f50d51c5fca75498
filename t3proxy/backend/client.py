"""Conversation-aware client for the t3.chat backend."""

import logging
import uuid
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, Optional

import httpx

from ..core.exceptions import ClientDisconnected
from .connection import BackendConnection
from .decoder import (
    BackendStreamDecoder,
    ResponseAccumulator,
    StreamComplete,
    StreamEvent,
    decode_response_body,
    iter_stream_events,
)
from .message import Message, RequestConfig, Role
from .session import ConversationSession

logger = logging.getLogger("t3proxy")

DisconnectChecker = Callable[[], Awaitable[bool]]


async def _iter_chunks(
    response: httpx.Response, disconnect_checker: Optional[DisconnectChecker]
) -> AsyncIterator[bytes]:
    stream = response.aiter_bytes()
    while True:
        if disconnect_checker is not None and await disconnect_checker():
            logger.info("Client disconnected; abandoning backend stream")
            raise ClientDisconnected("client disconnected")
        try:
            chunk = await stream.__anext__()
        except StopAsyncIteration:
            break
        if chunk:
            yield chunk


class ChatClient:
    """Sends a conversation session to the backend and records the answers.

    Every send holds ``session.lock`` for its whole duration (including the
    full stream for ``send_stream``), so sends against one session never
    interleave their appends.
    """

    def __init__(
        self,
        connection: BackendConnection,
        session: Optional[ConversationSession] = None,
    ) -> None:
        self.connection = connection
        self.session = session or ConversationSession()

    def new_conversation(self) -> None:
        self.session.reset()

    def append_message(self, message: Message) -> None:
        self.session.append(message)

    def build_payload(self, model: str, config: RequestConfig) -> dict[str, Any]:
        """Build the backend request body from the current session state."""
        thread_id = self.session.ensure_thread()
        return {
            "messages": [message.to_backend() for message in self.session.messages()],
            "threadMetadata": {"id": thread_id},
            "responseMessageId": str(uuid.uuid4()),
            "model": model,
            "convexSessionId": self.connection.credentials.convex_session_id,
            "modelParams": config.to_model_params(),
            "preferences": {
                "name": "",
                "occupation": "",
                "selectedTraits": [],
                "additionalInfo": "",
            },
            "userInfo": {"timezone": self.connection.settings.timezone},
        }

    def _prepare(
        self, new_message: Optional[Message], history: Optional[Iterable[Message]]
    ) -> None:
        if history is not None:
            self.session.reset()
            self.session.extend(history)
        if new_message is not None:
            self.session.append(new_message)

    async def send(
        self,
        model: str,
        new_message: Optional[Message] = None,
        config: Optional[RequestConfig] = None,
        *,
        history: Optional[Iterable[Message]] = None,
    ) -> Message:
        """Send the conversation and return the assistant's reply.

        Args:
            model: Backend model identifier.
            new_message: Optional message appended before sending.
            config: Per-call options; defaults to ``RequestConfig()``.
            history: When given, replaces the conversation before sending.

        Raises:
            BackendRequestError: backend answered non-2xx or was unreachable.
            NoContentError: the answer held neither text nor an image.
        """
        config = config or RequestConfig()
        async with self.session.lock:
            self._prepare(new_message, history)
            payload = self.build_payload(model, config)
            thread_id = payload["threadMetadata"]["id"]
            logger.debug(
                "Sending %d messages to backend model %s (thread %s)",
                len(payload["messages"]),
                model,
                thread_id,
            )
            response = await self.connection.post_chat(payload, thread_id)
            decoded = decode_response_body(response.content)
            if decoded.image_url is not None:
                reply = Message.image(Role.ASSISTANT, decoded.image_url)
            else:
                reply = Message.text(Role.ASSISTANT, decoded.text)
            self.session.append(reply)
            return reply

    async def send_stream(
        self,
        model: str,
        new_message: Optional[Message] = None,
        config: Optional[RequestConfig] = None,
        *,
        history: Optional[Iterable[Message]] = None,
        disconnect_checker: Optional[DisconnectChecker] = None,
    ) -> AsyncIterator[StreamEvent]:
        """Send the conversation and lazily yield decoded stream events.

        The reply is appended to the session just before the final
        ``StreamComplete`` is yielded. Decoding continues until the backend
        closes the stream even if a completion item arrives earlier.
        """
        config = config or RequestConfig()
        async with self.session.lock:
            self._prepare(new_message, history)
            payload = self.build_payload(model, config)
            thread_id = payload["threadMetadata"]["id"]
            decoder = BackendStreamDecoder()
            accumulator = ResponseAccumulator()
            async with self.connection.stream_chat(payload, thread_id) as response:
                logger.info("Streaming from backend model %s (thread %s)", model, thread_id)
                chunks = _iter_chunks(response, disconnect_checker)
                async for event in iter_stream_events(chunks, decoder):
                    accumulator.add(event)
                    if isinstance(event, StreamComplete):
                        self.session.append(accumulator.to_message())
                        logger.debug(
                            "Backend stream finished: %d lines, %d skipped, completion flag=%s",
                            decoder.lines_seen,
                            decoder.lines_skipped,
                            decoder.complete,
                        )
                    yield event
