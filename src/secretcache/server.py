"""Server entry point for the event-driven secret cache."""

import logging
import sys

import uvicorn

from secretcache.api import build_mirror, create_app
from secretcache.config import load_settings
from secretcache.errors import SecretCacheError
from secretcache.logging_utils import configure_logging

logger = logging.getLogger(__name__)


def main():
    """Run the FastAPI server.

    Configuration errors exit with status 1 before bootstrap starts. A
    failed bootstrap aborts application startup, and uvicorn exits non-zero.
    """
    try:
        settings = load_settings()
        configure_logging(settings.log_level)
        mirror = build_mirror(settings)
    except SecretCacheError as e:
        configure_logging()
        logger.error("Startup failed: %s", e)
        sys.exit(1)

    uvicorn.run(
        create_app(mirror=mirror, close_mirror=True),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
