"""Liveness and service description endpoints."""

from datetime import datetime, timezone

from fastapi import Request

from ... import __version__


async def health(request: Request) -> dict:
    """GET /health"""
    registry = request.app.state.registry
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "sessions": len(registry),
    }


async def service_info() -> dict:
    """GET /"""
    return {
        "message": "t3proxy OpenAI-Compatible API Server",
        "version": __version__,
        "endpoints": {
            "POST /v1/chat/completions": "Chat completions endpoint",
            "GET /v1/models": "List available models",
            "GET /health": "Health check",
        },
        "documentation": "https://platform.openai.com/docs/api-reference/chat",
    }
