"""Stream adapter turning decoded backend events into OpenAI chat completion chunks.

Backend events:
    TextDelta("Hello")  ImageResult("https://...")  StreamComplete()

OpenAI Chat Completion SSE frames:
    data: {"object":"chat.completion.chunk","choices":[{"delta":{"role":"assistant"},...}]}
    data: {"object":"chat.completion.chunk","choices":[{"delta":{"content":"Hello"},...}]}
    data: {"object":"chat.completion.chunk","choices":[{"delta":{},"finish_reason":"stop",...}]}
    data: [DONE]

A failure anywhere in the source is reported in-band as
``data: {"error": {...}}`` followed by ``data: [DONE]``, since response headers
have already been sent. When the caller disconnects the stream just stops.
"""

import logging
import time
from typing import Any, AsyncIterator, Optional

from typing_extensions import assert_never

from ..backend.decoder import ImageResult, StreamComplete, StreamEvent, TextDelta
from ..core.exceptions import ClientDisconnected, ProxyError
from ..core.sse import SSE_DONE, format_sse_data
from ..types.chat import ChatCompletionChunk, ChunkDelta
from .translator import new_completion_id

logger = logging.getLogger("t3proxy")


class ChatCompletionStreamAdapter:
    """Encodes one streamed answer as chat completion chunks.

    Tracks the text sent so far so callers can report usage or compare it with
    the stored reply.
    """

    def __init__(
        self,
        model: str,
        completion_id: Optional[str] = None,
        created: Optional[int] = None,
    ) -> None:
        """Initialize the stream adapter.

        Args:
            model: Caller-visible model name echoed in every chunk.
            completion_id: Chunk id; generated when omitted.
            created: Unix timestamp; defaults to now.
        """
        self.model = model
        self.completion_id = completion_id or new_completion_id()
        self.created = created if created is not None else int(time.time())
        self.accumulated_text = ""
        self.image_url: Optional[str] = None
        self.finished = False
        self.error: Optional[BaseException] = None
        self.disconnected = False

    async def adapt_stream(self, events: AsyncIterator[StreamEvent]) -> AsyncIterator[bytes]:
        """Transform decoded backend events into SSE frames.

        Args:
            events: Lazy event source, typically ``ChatClient.send_stream``.

        Yields:
            SSE formatted bytes, ending with ``data: [DONE]`` unless the caller
            disconnected.
        """
        yield self._emit_role()
        try:
            async for event in events:
                if isinstance(event, TextDelta):
                    if event.text:
                        self.accumulated_text += event.text
                        yield self._emit_content(event.text)
                elif isinstance(event, ImageResult):
                    self.image_url = event.url
                    yield self._emit_content(event.url)
                elif isinstance(event, StreamComplete):
                    self.finished = True
                    yield self._emit_finish()
                else:
                    assert_never(event)
        except ClientDisconnected:
            logger.info("Client went away after %d characters", len(self.accumulated_text))
            self.disconnected = True
        except Exception as exc:
            logger.error("Streaming error: %s", exc)
            self.error = exc
            yield self._emit_error(exc)
        finally:
            aclose = getattr(events, "aclose", None)
            if aclose is not None:
                await aclose()

        if self.disconnected:
            return
        if not self.finished and self.error is None:
            self.finished = True
            yield self._emit_finish()
        yield SSE_DONE

    def _chunk(self, delta: ChunkDelta, finish_reason: Optional[str]) -> ChatCompletionChunk:
        return {
            "id": self.completion_id,
            "object": "chat.completion.chunk",
            "created": self.created,
            "model": self.model,
            "choices": [
                {
                    "index": 0,
                    "delta": delta,
                    "finish_reason": finish_reason,
                }
            ],
        }

    def _emit_role(self) -> bytes:
        return format_sse_data(self._chunk({"role": "assistant"}, None))

    def _emit_content(self, text: str) -> bytes:
        return format_sse_data(self._chunk({"content": text}, None))

    def _emit_finish(self) -> bytes:
        return format_sse_data(self._chunk({}, "stop"))

    def _emit_error(self, exc: BaseException) -> bytes:
        if isinstance(exc, ProxyError):
            body: dict[str, Any] = exc.to_dict()
        else:
            body = {
                "error": {
                    "message": str(exc) or exc.__class__.__name__,
                    "type": "internal_server_error",
                    "code": "internal_error",
                }
            }
        return format_sse_data(body)
