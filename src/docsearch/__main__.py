"""Entry point for the API server."""

import asyncio
import contextlib
import sys

import structlog
import uvicorn

from docsearch.app import create_app
from docsearch.config import Settings
from docsearch.logging import configure_logging

logger = structlog.get_logger()


async def serve(settings: Settings) -> None:
    """Run uvicorn server until it receives SIGTERM/SIGINT.

    Uvicorn handles the signals and then runs the app's lifespan shutdown,
    which drains pending analytics writes.

    Args:
        settings: Server configuration.
    """
    app = create_app(settings)
    logger.info("server_starting", host=settings.host, port=settings.port)

    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_level="warning",
        access_log=False,
        timeout_graceful_shutdown=int(settings.shutdown_timeout),
    )
    server = uvicorn.Server(config)
    await server.serve()


def main() -> None:
    """Entry point for python -m docsearch."""
    settings = Settings()
    configure_logging(debug=settings.debug)

    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(serve(settings))

    sys.exit(0)


if __name__ == "__main__":
    main()
