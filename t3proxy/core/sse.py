"""SSE (Server-Sent Events) framing for outbound streams."""

import json
from typing import Any, Iterator


SSE_DONE = b"data: [DONE]\n\n"

STREAM_MEDIA_TYPE = "text/event-stream"

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_sse_data(payload: Any) -> bytes:
    """Encode a JSON payload as a single ``data:`` event."""
    json_str = json.dumps(payload, ensure_ascii=False)
    return f"data: {json_str}\n\n".encode("utf-8")


def iter_sse_data(data: bytes | str) -> Iterator[str]:
    """Yield the raw ``data:`` values of a complete SSE body, in order.

    Used to read back what the proxy streamed (tests, manual clients).
    """
    if isinstance(data, bytes):
        data = data.decode("utf-8", errors="replace")
    for block in data.split("\n\n"):
        for line in block.split("\n"):
            line = line.strip()
            if line.startswith("data:"):
                yield line[5:].strip()
