#!/usr/bin/env python3
"""Ink server - HTTP front end for handwriting recognition and page rendering."""

import logging

from ink_config import ServerSettings
from ink_flask import SETTINGS_KEY, app, configure_logging
import ink_routes  # noqa: F401 - registers routes

logger = logging.getLogger(__name__)


def main() -> None:
    settings = ServerSettings.from_env()
    configure_logging(level=settings.log_level, log_file=settings.log_file)
    app.config[SETTINGS_KEY] = settings

    if not settings.has_credentials:
        logger.warning("Recognition credentials not set; /api/hwr will return 500")
    logger.info("Server starting on port %d", settings.port)
    app.run(host='0.0.0.0', port=settings.port)


if __name__ == '__main__':
    main()
