"""Page selection for multi-page documents.

Resolves a page request against a document's page count. Front ends accept
a single integer for this (``--page`` on the command line, the ``page``
form field over HTTP) with the convention:

    -1  every page, in document order
     0  the page that was last open on the device
     N  page N, 1-based
"""

from __future__ import annotations

import logging
from enum import Enum

from ink_dataclasses import StrokeDocument

logger = logging.getLogger(__name__)


class PageRequest(Enum):
    ALL = 'all'
    LAST_OPENED = 'last-opened'


class PageOutOfRangeError(IndexError):
    """An explicit page number outside [1, page count]."""

    def __init__(self, page: int, page_count: int):
        self.page = page
        self.page_count = page_count
        super().__init__(f"page {page} outside range, document has {page_count} page(s)")


def parse_page_option(value: int) -> PageRequest | int:
    """Map the integer page convention to a request.

    Raises:
        ValueError: For values below -1.
    """
    value = int(value)
    if value == -1:
        return PageRequest.ALL
    if value == 0:
        return PageRequest.LAST_OPENED
    if value > 0:
        return value
    raise ValueError(f"invalid page number: {value}")


def select_pages(document: StrokeDocument, request: PageRequest | int) -> list[int]:
    """Resolve a page request to 0-based page indices.

    Args:
        document: The decoded document.
        request: PageRequest.ALL, PageRequest.LAST_OPENED, or an explicit
            1-based page number.

    Returns:
        Page indices in document order. An empty document yields [] for
        ALL and LAST_OPENED.

    Raises:
        PageOutOfRangeError: An explicit page outside [1, page count].
    """
    page_count = document.page_count

    if request is PageRequest.ALL:
        return list(range(page_count))

    if request is PageRequest.LAST_OPENED:
        if page_count == 0:
            return []
        index = document.last_opened
        if index is None:
            return [0]
        if not 0 <= index < page_count:
            logger.warning("Stored last-opened page %d outside %d page(s), using first page",
                           index, page_count)
            return [0]
        return [index]

    if not 1 <= request <= page_count:
        raise PageOutOfRangeError(request, page_count)
    return [request - 1]
