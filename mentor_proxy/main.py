"""
Main module for the mentor stream proxy.
"""

from __future__ import annotations

import structlog
import uvicorn

from mentor_proxy.app import create_app
from mentor_proxy.config import Configuration
from mentor_proxy.logging_utils import configure_logging

logger = structlog.get_logger(__name__)


def main() -> None:
    """Main entry point - HTTP server for the streamed mentor chat."""
    config = Configuration()

    log_level = config.get_logging_config().get("level", "INFO")
    configure_logging(log_level)

    provider_config = config.get_provider_config()
    if not provider_config.is_configured:
        logger.warning(
            "Provider credential missing, chat requests will fail",
            provider=provider_config.provider,
        )

    server_config = config.get_server_config()
    host = server_config.get("host", "0.0.0.0")
    port = int(server_config.get("port", 8000))

    logger.info(
        "Starting mentor proxy",
        host=host,
        port=port,
        provider=provider_config.provider,
        model=provider_config.model,
    )
    uvicorn.run(
        create_app(provider_config),
        host=host,
        port=port,
        log_level=log_level.lower(),
    )


if __name__ == "__main__":
    main()
