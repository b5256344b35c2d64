"""Shared configuration for the notebook ink tools.

This module centralizes the values used by:
    - ink_rendering.py (page rasterization defaults)
    - ink_recognition.py (recognition service endpoint and request shape)
    - ink_flask.py / ink_server.py (HTTP server settings)
    - ink_cli.py (command line defaults)

Server settings that differ per deployment (port, credentials, log level)
are read from the environment through ServerSettings.from_env().
"""

from __future__ import annotations

import os
from dataclasses import dataclass

# --- Rendering ---
OUTPUT_WIDTH = 1404           # Device screen width in pixels
PADDING_PERCENT = 0.05        # Border added around content, as a fraction
MIN_PADDING = 50              # Floor on the border, in document units
STROKE_WIDTH_SCALE = 0.25     # Pen width -> pixel radius factor
MIN_STROKE_WIDTH = 1
MAX_STROKE_WIDTH = 8
MIN_IMAGE_HEIGHT = 100

# --- Recognition service ---
RECOGNITION_URL = 'https://cloud.myscript.com/api/v4.0/iink/batch'
REQUEST_TIMEOUT = 120.0       # Seconds, per page request
DEFAULT_LANG = 'en_US'
DEFAULT_CONTENT_TYPE = 'text'
DEFAULT_BATCH_SIZE = 3        # Pages in flight at once

# Canvas description sent with every batch request
CANVAS_WIDTH = 1404
CANVAS_HEIGHT = 1872
CANVAS_DPI = 226
SAMPLE_INTERVAL_MS = 16       # Synthetic timestamp step between points

APPLICATION_KEY_ENV = 'RMAPI_HWR_APPLICATIONKEY'
HMAC_KEY_ENV = 'RMAPI_HWR_HMAC'

# --- HTTP server ---
DEFAULT_PORT = 8082
MAX_UPLOAD_BYTES = 100 * 1024 * 1024


@dataclass(frozen=True)
class ServerSettings:
    """Deployment settings for the HTTP server.

    Attributes:
        port: TCP port to listen on.
        application_key: Recognition service application key, '' if unset.
        hmac_key: Recognition service HMAC key, '' if unset.
        log_level: Logging level name passed to configure_logging().
        log_file: Optional log file path.
    """
    port: int = DEFAULT_PORT
    application_key: str = ''
    hmac_key: str = ''
    log_level: str = 'INFO'
    log_file: str | None = None

    @property
    def has_credentials(self) -> bool:
        return bool(self.application_key and self.hmac_key)

    @classmethod
    def from_env(cls, environ=None) -> ServerSettings:
        """Build settings from environment variables.

        Reads PORT, RMAPI_HWR_APPLICATIONKEY, RMAPI_HWR_HMAC, LOG_LEVEL and
        LOG_FILE. A malformed PORT falls back to the default.

        Args:
            environ: Mapping to read from. Defaults to os.environ.
        """
        env = os.environ if environ is None else environ
        try:
            port = int(env.get('PORT', DEFAULT_PORT))
        except ValueError:
            port = DEFAULT_PORT
        return cls(
            port=port,
            application_key=env.get(APPLICATION_KEY_ENV, ''),
            hmac_key=env.get(HMAC_KEY_ENV, ''),
            log_level=env.get('LOG_LEVEL', 'INFO'),
            log_file=env.get('LOG_FILE') or None,
        )
