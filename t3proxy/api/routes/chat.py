"""OpenAI-compatible chat completions endpoint."""

import json
import logging
from typing import Mapping, cast

from fastapi import Request, Response
from fastapi.responses import JSONResponse, StreamingResponse

from ...chat import (
    ChatCompletionStreamAdapter,
    build_completion_response,
    convert_openai_messages,
    count_characters,
    parse_request_config,
    resolve_backend_model,
)
from ...config_loader import ProxySettings
from ...core.exceptions import InvalidRequestError, MissingCredentialsError, ProxyError
from ...core.sse import STREAM_HEADERS, STREAM_MEDIA_TYPE
from ...registry import DEFAULT_KEY, SessionRegistry
from ...types.chat import ChatCompletionRequest

logger = logging.getLogger("t3proxy")


def extract_api_key(request: Request, registry: SessionRegistry) -> str:
    """Return the registry key for a request.

    The bearer token is the key when present. Without one, the configured
    credentials are used under the ``default`` key; if there are none the
    request is rejected before any backend call.
    """
    auth_header = request.headers.get("authorization") or ""
    scheme, _, token = auth_header.partition(" ")
    token = token.strip()
    if scheme.lower() == "bearer" and token:
        return token
    if not registry.has_configured_credentials:
        raise MissingCredentialsError(
            "Authorization header required when COOKIES and CONVEX_SESSION_ID "
            "are not configured"
        )
    return DEFAULT_KEY


def _parse_payload(body: bytes) -> ChatCompletionRequest:
    try:
        payload = json.loads(body or b"{}")
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        logger.error(f"Invalid JSON payload: {exc}")
        raise InvalidRequestError("Invalid JSON payload", code="invalid_json") from exc

    if not isinstance(payload, Mapping):
        logger.error("Payload must be a JSON object")
        raise InvalidRequestError("Request body must be a JSON object", code="invalid_json_shape")

    model_name = payload.get("model")
    if not isinstance(model_name, str) or not model_name.strip():
        logger.error("Request missing model name")
        raise InvalidRequestError("You must provide a model parameter", code="missing_parameter")

    messages = payload.get("messages")
    if not messages or not isinstance(messages, list):
        logger.error("Request missing or invalid messages array")
        raise InvalidRequestError("You must provide a messages array", code="missing_parameter")

    return cast(ChatCompletionRequest, payload)


async def handle_chat_request(request: Request) -> Response:
    """Translate one chat completions request into a backend conversation turn.

    The session for the caller's key is replaced by the request's messages
    (OpenAI clients resend the whole history on every call) and sent without
    a new message. Streaming requests answer with chat completion chunks;
    everything else with a single completion object.
    """
    settings: ProxySettings = request.app.state.settings
    registry: SessionRegistry = request.app.state.registry

    payload = _parse_payload(await request.body())
    model_name = payload["model"].strip()
    is_stream = bool(payload.get("stream"))
    logger.info(f"Processing request for model {model_name}, stream={is_stream}")

    key = extract_api_key(request, registry)
    config = parse_request_config(payload, settings.request_defaults)
    history = convert_openai_messages(payload["messages"])
    backend_model = resolve_backend_model(model_name, settings.model_aliases)
    if backend_model != model_name:
        logger.debug("Mapped model %s to backend model %s", model_name, backend_model)

    entry = await registry.get_or_create(key)

    if is_stream:
        adapter = ChatCompletionStreamAdapter(model_name)
        events = entry.client.send_stream(
            backend_model,
            None,
            config,
            history=history,
            disconnect_checker=request.is_disconnected,
        )
        return StreamingResponse(
            adapter.adapt_stream(events),
            media_type=STREAM_MEDIA_TYPE,
            headers=STREAM_HEADERS,
        )

    reply = await entry.client.send(backend_model, None, config, history=history)
    logger.info(f"Request for model {model_name} completed successfully")
    return JSONResponse(build_completion_response(reply, model_name, count_characters(history)))


async def chat_completions(request: Request) -> Response:
    """Chat completions endpoint - OpenAI compatible.

    POST /v1/chat/completions
    """
    logger.info("Received chat completions request")
    try:
        return await handle_chat_request(request)
    except ProxyError as exc:
        logger.error(f"Chat completions request failed: {exc.message}")
        raise
    except Exception as exc:
        logger.exception("Unexpected error in chat completions")
        raise ProxyError(str(exc) or exc.__class__.__name__) from exc
