"""Incremental decoder for the backend's line-delimited streaming format.

Each backend line has the shape ``<type code>:<json payload>``::

    0:"Hello, "
    0:"world!"
    2:[{"type":"image-gen","content":"\\"https://cdn.example/img.png\\""}]
    2:[{"type":"done"}]

Type ``0`` carries a JSON string of text. Type ``2`` carries a JSON array of
data items; ``image-gen`` items hold a (possibly JSON-encoded) image URL and
``completion``/``done`` items mark the logical end of the answer. Every other
type code is ignored, as are lines without a ``:`` and lines whose payload is
not valid JSON. One bad line never fails the stream.

The decoder buffers bytes rather than text so a chunk boundary falling inside
a multi-byte UTF-8 sequence cannot change the decoded result.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterable, AsyncIterator, Iterable, Optional, Union

from typing_extensions import assert_never

from ..core.exceptions import NoContentError
from .message import Message, Role

logger = logging.getLogger("t3proxy")

TEXT_CODE = "0"
DATA_CODE = "2"
IMAGE_ITEM_TYPE = "image-gen"
COMPLETION_ITEM_TYPES = frozenset({"completion", "done"})


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class ImageResult:
    url: str


@dataclass(frozen=True)
class StreamComplete:
    pass


StreamEvent = Union[TextDelta, ImageResult, StreamComplete]


def _decode_image_url(content: Any) -> Optional[str]:
    if not isinstance(content, str):
        return None
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError:
        return content
    if isinstance(parsed, str):
        return parsed
    return content


class BackendStreamDecoder:
    """State machine turning byte chunks into semantic stream events.

    ``feed`` returns the events of every line completed by the chunk and keeps
    the trailing partial line for the next call; ``flush`` parses whatever is
    left once the source is exhausted. ``complete`` becomes true when a
    completion item has been seen. It does not stop decoding; the caller keeps
    reading until the transport ends.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()
        self.complete = False
        self.lines_seen = 0
        self.lines_skipped = 0

    @property
    def pending(self) -> bytes:
        return bytes(self._buffer)

    def feed(self, chunk: bytes) -> list[StreamEvent]:
        if not chunk:
            return []
        self._buffer.extend(chunk)
        *ready, rest = self._buffer.split(b"\n")
        self._buffer = bytearray(rest)
        events: list[StreamEvent] = []
        for raw_line in ready:
            events.extend(self._parse_raw(raw_line))
        return events

    def flush(self) -> list[StreamEvent]:
        if not self._buffer:
            return []
        raw_line = bytes(self._buffer)
        self._buffer.clear()
        return self._parse_raw(raw_line)

    def _parse_raw(self, raw_line: bytes) -> list[StreamEvent]:
        line = raw_line.decode("utf-8", errors="replace").rstrip("\r")
        return self.parse_line(line)

    def parse_line(self, line: str) -> list[StreamEvent]:
        """Classify a single complete line and return the events it carries."""
        if not line.strip():
            return []
        self.lines_seen += 1

        code, separator, payload = line.partition(":")
        if not separator:
            self._skip(line, "no type separator")
            return []

        if code == TEXT_CODE:
            try:
                text = json.loads(payload)
            except json.JSONDecodeError:
                self._skip(line, "invalid text payload")
                return []
            if isinstance(text, str):
                return [TextDelta(text)]
            return []

        if code == DATA_CODE:
            try:
                items = json.loads(payload)
            except json.JSONDecodeError:
                self._skip(line, "invalid data payload")
                return []
            if not isinstance(items, list):
                return []
            return self._parse_data_items(items)

        return []

    def _parse_data_items(self, items: list) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            item_type = item.get("type")
            if item_type == IMAGE_ITEM_TYPE and item.get("content"):
                url = _decode_image_url(item["content"])
                if url:
                    events.append(ImageResult(url))
            elif item_type in COMPLETION_ITEM_TYPES:
                self.complete = True
        return events

    def _skip(self, line: str, reason: str) -> None:
        self.lines_skipped += 1
        logger.debug("Skipping backend line (%s): %.80r", reason, line)


async def iter_stream_events(
    chunks: AsyncIterable[bytes],
    decoder: Optional[BackendStreamDecoder] = None,
) -> AsyncIterator[StreamEvent]:
    """Lazily decode an async byte source, ending with ``StreamComplete``.

    The sequence is single-use: it consumes ``chunks`` as it is pulled.
    """
    if decoder is None:
        decoder = BackendStreamDecoder()
    async for chunk in chunks:
        for event in decoder.feed(chunk):
            yield event
    for event in decoder.flush():
        yield event
    yield StreamComplete()


def decode_events(chunks: Iterable[bytes]) -> list[StreamEvent]:
    """Decode an already available sequence of chunks in one pass."""
    decoder = BackendStreamDecoder()
    events: list[StreamEvent] = []
    for chunk in chunks:
        events.extend(decoder.feed(chunk))
    events.extend(decoder.flush())
    events.append(StreamComplete())
    return events


@dataclass(frozen=True)
class DecodedResponse:
    text: str
    image_url: Optional[str] = None


class ResponseAccumulator:
    """Aggregates stream events into the final assistant answer.

    Text deltas are concatenated in arrival order; the last image wins.
    """

    def __init__(self) -> None:
        self._parts: list[str] = []
        self.image_url: Optional[str] = None

    def add(self, event: StreamEvent) -> None:
        if isinstance(event, TextDelta):
            self._parts.append(event.text)
        elif isinstance(event, ImageResult):
            self.image_url = event.url
        elif isinstance(event, StreamComplete):
            pass
        else:
            assert_never(event)

    @property
    def text(self) -> str:
        return "".join(self._parts)

    @property
    def has_content(self) -> bool:
        return bool(self.text) or self.image_url is not None

    def result(self) -> DecodedResponse:
        if not self.has_content:
            raise NoContentError()
        return DecodedResponse(text=self.text, image_url=self.image_url)

    def to_message(self) -> Message:
        if self.image_url is not None:
            return Message.image(Role.ASSISTANT, self.image_url)
        return Message.text(Role.ASSISTANT, self.text)


def decode_response_body(body: bytes | str) -> DecodedResponse:
    """Decode a complete (non-streaming) backend body.

    Raises:
        NoContentError: if the body produced neither text nor an image.
    """
    if isinstance(body, str):
        body = body.encode("utf-8")
    accumulator = ResponseAccumulator()
    for event in decode_events([body]):
        accumulator.add(event)
    return accumulator.result()
