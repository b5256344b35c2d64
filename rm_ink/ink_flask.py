"""Flask application setup and request helpers for the ink server.

This module is the central hub of the HTTP front end. It provides:

    - The Flask application instance shared by the route module
    - configure_logging() for process-wide logging setup
    - Helpers that validate uploads and form parameters, returning
      ready-made JSON error responses on failure

Architecture:
    - ink_flask.py: App instance, logging and helpers (this module)
    - ink_routes.py: /api/hwr, /api/convert and /health routes
    - ink_server.py: Entry point that configures and runs the app

Example:
    Use the helpers inside a route::

        from ink_flask import app, get_document_or_error

        @app.route('/api/pages', methods=['POST'])
        def api_pages():
            upload, err = get_upload_or_error()
            if err:
                return err
            document, err = get_document_or_error(*upload)
            if err:
                return err
            return jsonify(pages=document.page_count)
"""

from __future__ import annotations

import logging

from flask import Flask, jsonify, request

from ink_archive import UnreadableDocumentError, load_upload
from ink_config import MAX_UPLOAD_BYTES, ServerSettings
from ink_dataclasses import StrokeDocument
from ink_pages import PageRequest, parse_page_option

# Module logger
logger = logging.getLogger(__name__)

SETTINGS_KEY = 'INK_SETTINGS'

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'
QUIET_LOGGERS = ('werkzeug', 'PIL', 'urllib3')


def configure_logging(level: str = 'INFO', log_file: str | None = None) -> None:
    """Route ink logs to stderr and, when ``log_file`` is given, to a file.

    The root logger's handlers are replaced, so calling this twice does not
    duplicate output. An unknown ``level`` name falls back to INFO.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    formatter = logging.Formatter(LOG_FORMAT)
    root = logging.getLogger()
    root.handlers = []
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logger.debug("Logging to %s at %s", log_file or 'stderr', logging.getLevelName(root.level))


# Flask application
app = Flask(__name__)
app.config['MAX_CONTENT_LENGTH'] = MAX_UPLOAD_BYTES


def get_settings() -> ServerSettings:
    """Return the server settings, reading the environment on first use."""
    settings = app.config.get(SETTINGS_KEY)
    if settings is None:
        settings = ServerSettings.from_env()
        app.config[SETTINGS_KEY] = settings
    return settings


def get_upload_or_error():
    """Read the multipart ``file`` field.

    Returns:
        tuple: ((filename, data), None) on success, or
            (None, error_response) when no file was sent.
    """
    upload = request.files.get('file')
    if upload is None:
        return None, (jsonify(error="Missing 'file' upload"), 400)
    data = upload.read()
    if not data:
        return None, (jsonify(error="Uploaded file is empty"), 400)
    return (upload.filename or '', data), None


def get_document_or_error(filename: str, data: bytes):
    """Decode an uploaded notebook.

    Returns:
        tuple: (StrokeDocument, None) on success, or
            (None, error_response) for an unreadable document.
    """
    try:
        document: StrokeDocument = load_upload(data, filename)
    except UnreadableDocumentError as e:
        logger.warning("Unreadable upload %s: %s", filename, e)
        return None, (jsonify(error=f"Error loading document: {e}"), 400)
    return document, None


def parse_page_param(value: str | None):
    """Parse the ``page`` form field (-1 all, 0 last opened, N 1-based).

    A missing or blank field means every page.

    Returns:
        tuple: (PageRequest | int, None) on success, or
            (None, error_response) for a malformed value.
    """
    if value is None or not value.strip():
        return PageRequest.ALL, None
    try:
        return parse_page_option(int(value)), None
    except ValueError:
        return None, (jsonify(error=f"Invalid page: {value}"), 400)
