"""Shared pytest fixtures for the rm_ink test suite.

Fixtures:
    v6_page_bytes: Revision 6 page with two fineliner strokes in one layer
    legacy_page_bytes: Revision 5 page with one ballpoint stroke
    archive_bytes: Three-page zipped notebook, last opened on page 2
    sample_page: Stroke-graph page with ink and a highlighter
    five_page_document: StrokeDocument with five single-stroke pages
    flask_client: Flask test client with routes registered
    restore_logging: Saves and restores root logger handlers and level

Markers:
    slow: Mark test as slow-running (skip with -m "not slow")
    integration: Mark test as integration test
"""

import logging
import sys
from pathlib import Path

import pytest

# Tool directory (modules) and tests directory (builders)
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))

from builders import (  # noqa: E402
    build_archive,
    build_legacy,
    build_v6,
    make_document,
    make_page,
    make_stroke,
    pack_stroke_v6,
)
from ink_dataclasses import PenType  # noqa: E402


# -----------------------------------------------------------------------------
# Pytest Markers
# -----------------------------------------------------------------------------

def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line(
        "markers", "slow: mark test as slow-running (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )


# -----------------------------------------------------------------------------
# Byte Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def v6_page_bytes():
    """Return a revision 6 page with two 3-point fineliner strokes."""
    return build_v6([
        pack_stroke_v6([(100.0, 100.0), (200.0, 200.0), (300.0, 100.0)])
        + pack_stroke_v6([(150.0, 300.0), (250.0, 300.0), (350.0, 320.0)], brush=15, color=6)
    ])


@pytest.fixture
def legacy_page_bytes():
    """Return a revision 5 page with one ballpoint stroke."""
    return build_legacy(5, [[(15, 0, 2.0, [(10.0, 20.0), (30.0, 40.0)])]])


@pytest.fixture
def archive_bytes(v6_page_bytes):
    """Return a zipped notebook with three decodable pages.

    The manifest lists pages p1, p2, p3 and marks p2 as last opened.
    """
    empty_page = build_v6([b''])
    return build_archive(
        [('p1', v6_page_bytes), ('p2', v6_page_bytes), ('p3', empty_page)],
        doc_id='doc-1', last_opened='p2',
    )


# -----------------------------------------------------------------------------
# Stroke Graph Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def sample_page():
    """Return a page with a highlighter under a crossing fineliner stroke."""
    highlighter = make_stroke([(100.0, 500.0), (1100.0, 500.0)],
                              pen_type=PenType.HIGHLIGHTER, color=3)
    ink = make_stroke([(600.0, 400.0), (600.0, 600.0)], pen_type=PenType.FINELINER)
    return make_page([ink], [highlighter])


@pytest.fixture
def five_page_document():
    return make_document(5)


# -----------------------------------------------------------------------------
# Flask Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def flask_client():
    """Create a Flask test client with credentials configured.

    Yields:
        flask.testing.FlaskClient: Test client for making requests.
    """
    from ink_config import ServerSettings
    from ink_flask import SETTINGS_KEY, app
    import ink_routes  # noqa: F401 - registers routes

    app.config['TESTING'] = True
    app.config[SETTINGS_KEY] = ServerSettings(application_key='app-key', hmac_key='hmac-key')

    with app.test_client() as client:
        yield client

    app.config.pop(SETTINGS_KEY, None)


# -----------------------------------------------------------------------------
# Logging Fixtures
# -----------------------------------------------------------------------------

@pytest.fixture
def restore_logging():
    root_logger = logging.getLogger()
    handlers = root_logger.handlers.copy()
    level = root_logger.level
    yield root_logger
    root_logger.handlers = handlers
    root_logger.setLevel(level)
