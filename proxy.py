"""Run the t3 proxy with uvicorn.

    python proxy.py

Host, port and log level come from the YAML config (T3PROXY_CONFIG) or the
T3PROXY_HOST / T3PROXY_PORT / T3PROXY_LOG_LEVEL environment variables.
"""

import uvicorn

from t3proxy.config_loader import load_settings
from t3proxy.logging import setup_logging
from t3proxy.main import create_app


def main() -> None:
    settings = load_settings()
    logger = setup_logging(settings.log_level)
    app = create_app(settings)
    logger.info("Health check: http://%s:%s/health", settings.host, settings.port)
    logger.info("Chat completions: POST http://%s:%s/v1/chat/completions", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
