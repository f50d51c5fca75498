"""Models listing endpoint - OpenAI compatible."""

import logging

from fastapi import Request

from ...config_loader import ProxySettings
from ...types.chat import ModelCard

logger = logging.getLogger("t3proxy")

OWNED_BY = "t3proxy"


async def list_models(request: Request) -> dict:
    """List the configured model aliases in OpenAI API format.

    GET /v1/models
    """
    logger.info("Received models list request")

    settings: ProxySettings = request.app.state.settings
    models: list[ModelCard] = []
    for model in settings.models:
        models.append({
            "id": model.name,
            "object": "model",
            "created": model.created,
            "owned_by": OWNED_BY,
            "permission": [],
            "root": model.name,
            "parent": None,
        })

    return {
        "object": "list",
        "data": models
    }
