"""Testing utilities for in-process proxy simulations."""

from .fake_backend import (
    BackendReply,
    FakeBackend,
    StreamError,
    build_body,
    completion_line,
    image_line,
    split_chunks,
    text_line,
)

__all__ = [
    "BackendReply",
    "FakeBackend",
    "StreamError",
    "build_body",
    "completion_line",
    "image_line",
    "split_chunks",
    "text_line",
]
