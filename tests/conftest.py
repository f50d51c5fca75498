"""Pytest configuration and fixtures for testing."""

from __future__ import annotations

import json
from typing import Any, Generator, Optional

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from t3proxy.backend import BackendConnection, BackendSettings, ChatClient, Credentials
from t3proxy.config_loader import build_settings
from t3proxy.core.sse import iter_sse_data
from t3proxy.main import create_app
from t3proxy.testing import FakeBackend

TEST_COOKIES = "session=abc123"
TEST_CONVEX_SESSION_ID = "convex-session-1"
TEST_CREDENTIALS = Credentials(cookies=TEST_COOKIES, convex_session_id=TEST_CONVEX_SESSION_ID)
TEST_BASE_URL = "http://backend.local"


# =============================================================================
# Config Builders
# =============================================================================


def build_proxy_config(
    *,
    with_credentials: bool = True,
    model_name: str = "gpt-4o",
    backend_model: str = "gemini-2.5-flash",
    max_sessions: int = 8,
    idle_ttl: float = 3600,
) -> dict[str, Any]:
    """Build a proxy config pointing at the fake backend.

    Args:
        with_credentials: Include process-wide credentials
        model_name: Caller-visible model alias
        backend_model: Backend model the alias maps to
        max_sessions: Registry capacity
        idle_ttl: Registry idle expiry in seconds

    Returns:
        Raw config dict for build_settings
    """
    config: dict[str, Any] = {
        "backend_settings": {
            "base_url": TEST_BASE_URL,
            "timeout": 5,
            "stream_timeout": 5,
        },
        "session_registry": {"max_sessions": max_sessions, "idle_ttl": idle_ttl},
        "model_list": [
            {
                "model_name": model_name,
                "model_params": {"model": backend_model, "created": 1715367049},
            }
        ],
    }
    if with_credentials:
        config["credentials"] = {
            "cookies": TEST_COOKIES,
            "convex_session_id": TEST_CONVEX_SESSION_ID,
        }
    return config


def make_app(fake_backend: FakeBackend, **config_kwargs: Any) -> FastAPI:
    """Create a proxy app whose backend calls go to ``fake_backend``."""
    settings = build_settings(build_proxy_config(**config_kwargs), env={})
    return create_app(settings, transport=fake_backend.transport)


def parse_sse_payloads(text: str) -> list[Any]:
    """Parse every data frame of an SSE body; ``[DONE]`` is kept as a string."""
    payloads: list[Any] = []
    for data in iter_sse_data(text):
        if data == "[DONE]":
            payloads.append(data)
        else:
            payloads.append(json.loads(data))
    return payloads


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def backend_settings() -> BackendSettings:
    return BackendSettings(base_url=TEST_BASE_URL, timeout=5, stream_timeout=5)


@pytest.fixture
def chat_client(fake_backend: FakeBackend, backend_settings: BackendSettings) -> ChatClient:
    """A ChatClient with a fresh session talking to the fake backend."""
    connection = BackendConnection(
        TEST_CREDENTIALS, backend_settings, transport=fake_backend.transport
    )
    return ChatClient(connection)


@pytest.fixture
def proxy_client(fake_backend: FakeBackend) -> Generator[TestClient, None, None]:
    """TestClient for an app with configured credentials."""
    with TestClient(make_app(fake_backend)) as client:
        yield client


@pytest.fixture
def keyless_proxy_client(fake_backend: FakeBackend) -> Generator[TestClient, None, None]:
    """TestClient for an app without configured credentials."""
    with TestClient(make_app(fake_backend, with_credentials=False)) as client:
        yield client


def chat_request(
    content: str = "Say hello",
    *,
    model: str = "gpt-4o",
    stream: bool = False,
    messages: Optional[list[dict[str, Any]]] = None,
    **extra: Any,
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "model": model,
        "messages": messages if messages is not None else [{"role": "user", "content": content}],
        "stream": stream,
    }
    body.update(extra)
    return body
