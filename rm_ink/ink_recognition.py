"""Handwriting recognition through the MyScript iink batch API.

This module maps a decoded page onto the recognition service's batch
request, sends it with an HMAC-signed POST, and pulls plain text back out
of the response. It provides:

- CONTENT_TYPES / resolve_content_type: Output kinds (text, math, diagram,
  jiix) and the request content type and Accept mime for each
- build_batch_input: Page -> batch request dict
- RecognitionClient: requests-based client, one request per page
- extract_text: Plain text from a text or JIIX (JSON) response
- recognize_pages: Bounded concurrent recognition of several pages

The service is reached once per page with no retry; a failed page is
reported in its PageRecognition result rather than aborting the others.

Typical usage:
    from ink_archive import load_document
    from ink_recognition import RecognitionClient, recognize_pages

    document = load_document('notes.rmdoc')
    client = RecognitionClient.from_env()
    for result in recognize_pages(document, [0, 1], client):
        print(result.page_index, result.text)
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

import requests

from ink_config import (
    APPLICATION_KEY_ENV,
    CANVAS_DPI,
    CANVAS_HEIGHT,
    CANVAS_WIDTH,
    DEFAULT_BATCH_SIZE,
    DEFAULT_CONTENT_TYPE,
    DEFAULT_LANG,
    HMAC_KEY_ENV,
    RECOGNITION_URL,
    REQUEST_TIMEOUT,
    SAMPLE_INTERVAL_MS,
)
from ink_dataclasses import Page, PenType, StrokeDocument

logger = logging.getLogger(__name__)

# name -> (request contentType, response mime)
CONTENT_TYPES: dict[str, tuple[str, str]] = {
    'text': ('Text', 'text/plain'),
    'math': ('Math', 'application/x-latex'),
    'diagram': ('Diagram', 'image/svg+xml'),
    'jiix': ('Text', 'application/vnd.myscript.jiix'),
}

DEFAULT_PRESSURE = 0.5
PRESSURE_RESCALE = 10.0


class RecognitionError(Exception):
    """The recognition service answered with a non-200 status."""

    def __init__(self, status_code: int, body: str = ''):
        self.status_code = status_code
        self.body = body
        super().__init__(f"recognition failed with status {status_code}: {body}")


class MissingCredentialsError(RuntimeError):
    """Application key or HMAC key is not configured."""


def resolve_content_type(name: str) -> tuple[str, str]:
    """Return (contentType, mime) for an output kind name.

    Raises:
        ValueError: Unknown name.
    """
    try:
        return CONTENT_TYPES[name.lower()]
    except KeyError:
        raise ValueError(f"unsupported content type: {name}") from None


def normalize_pressure(pressure: float) -> float:
    """Map device pressure into [0, 1]; missing pressure becomes 0.5."""
    if pressure <= 0:
        return DEFAULT_PRESSURE
    if pressure > 1.0:
        return min(pressure / PRESSURE_RESCALE, 1.0)
    return pressure


def build_batch_input(page: Page, content_type: str = DEFAULT_CONTENT_TYPE,
                      lang: str = DEFAULT_LANG) -> dict[str, Any]:
    """Build the batch request body for one page.

    Coordinates pass through unchanged. Erase-area strokes and strokes
    without points are left out; eraser strokes are sent with the ERASER
    pointer type so the service can apply them.

    Args:
        page: Decoded page.
        content_type: Output kind name (see CONTENT_TYPES).
        lang: Recognition language, e.g. 'en_US'.

    Raises:
        ValueError: Unknown content type.
    """
    request_type, _ = resolve_content_type(content_type)
    strokes = []
    for stroke in page.strokes:
        if stroke.pen_type is PenType.ERASE_AREA or not stroke.points:
            continue
        strokes.append({
            'x': [p.x for p in stroke.points],
            'y': [p.y for p in stroke.points],
            'p': [normalize_pressure(p.pressure) for p in stroke.points],
            't': [i * SAMPLE_INTERVAL_MS for i in range(len(stroke.points))],
            'pointerType': 'ERASER' if stroke.pen_type is PenType.ERASER else 'PEN',
        })

    logger.debug("Batch input: %d of %d strokes, contentType=%s, lang=%s",
                 len(strokes), page.stroke_count, request_type, lang)
    return {
        'configuration': {'lang': lang},
        'strokeGroups': [{'strokes': strokes}],
        'contentType': request_type,
        'width': CANVAS_WIDTH,
        'height': CANVAS_HEIGHT,
        'xDPI': CANVAS_DPI,
        'yDPI': CANVAS_DPI,
    }


def encode_batch(batch: dict[str, Any]) -> bytes:
    return json.dumps(batch, separators=(',', ':')).encode('utf-8')


# --- Response parsing ---

def _labels(entries, separator: str) -> str:
    parts = []
    for entry in entries:
        if isinstance(entry, dict):
            label = entry.get('label') or entry.get('text')
            if isinstance(label, str) and label:
                parts.append(label)
        elif isinstance(entry, str):
            parts.append(entry)
    return separator.join(parts)


def _jiix_text(node: dict) -> str:
    """Text from one JIIX object, '' when none of the known fields match."""
    for key in ('text', 'label'):
        value = node.get(key)
        if isinstance(value, str) and value:
            return value

    if isinstance(node.get('words'), list):
        text = _labels(node['words'], ' ')
        if text:
            return text

    if isinstance(node.get('chars'), list):
        text = _labels(node['chars'], '')
        if text:
            return text

    if isinstance(node.get('items'), list):
        text_items = [item for item in node['items']
                      if isinstance(item, dict) and item.get('type') == 'text']
        text = _labels(text_items, ' ')
        if text:
            return text

    if isinstance(node.get('result'), dict):
        return _jiix_text(node['result'])
    return ''


def extract_text(body: bytes | str, mime: str = 'text/plain') -> str:
    """Extract plain text from a recognition response.

    JSON bodies (JIIX) are searched for text, label, words, chars, text
    items and a nested result object; a JSON array joins the text of its
    objects with spaces. When no text field is found, or the body is not
    JSON, the trimmed body is returned as is (LaTeX, SVG, plain text).
    """
    if isinstance(body, bytes):
        body = body.decode('utf-8', errors='replace')
    raw = body.strip()
    if not raw:
        return ''
    if raw[0] not in '{[':
        return raw

    try:
        parsed = json.loads(raw)
    except ValueError:
        logger.warning("Response looks like JSON but does not parse: %.100s", raw)
        return raw

    if isinstance(parsed, dict):
        text = _jiix_text(parsed)
    elif isinstance(parsed, list):
        text = ' '.join(t for t in (_jiix_text(item) for item in parsed
                                    if isinstance(item, dict)) if t)
    else:
        text = ''

    if not text:
        logger.warning("No text found in %s response, returning raw body", mime)
        return raw
    return text


# --- Client ---

class RecognitionClient:
    """HMAC-signing client for the batch recognition endpoint.

    Attributes:
        application_key: Service application key.
        hmac_key: Service HMAC key.
        url: Batch endpoint.
        timeout: Per-request timeout in seconds.
        session: Shared requests.Session.
    """

    def __init__(self, application_key: str, hmac_key: str,
                 url: str = RECOGNITION_URL, timeout: float = REQUEST_TIMEOUT,
                 session: requests.Session | None = None):
        if not application_key or not hmac_key:
            raise MissingCredentialsError(
                f"provide the recognition keys in {APPLICATION_KEY_ENV} and {HMAC_KEY_ENV}")
        self.application_key = application_key
        self.hmac_key = hmac_key
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_env(cls, environ=None, **kwargs) -> RecognitionClient:
        env = os.environ if environ is None else environ
        return cls(env.get(APPLICATION_KEY_ENV, ''), env.get(HMAC_KEY_ENV, ''), **kwargs)

    def sign(self, body: bytes) -> str:
        """Hex HMAC-SHA512 of the body, keyed with application key + HMAC key."""
        key = (self.application_key + self.hmac_key).encode('utf-8')
        return hmac.new(key, body, hashlib.sha512).hexdigest()

    def send(self, body: bytes, mime: str = 'text/plain') -> bytes:
        """POST an encoded batch request and return the response body.

        Raises:
            RecognitionError: Non-200 response.
            requests.RequestException: Transport failure.
        """
        headers = {
            'Accept': f"{mime}, application/json",
            'Content-Type': 'application/json',
            'applicationKey': self.application_key,
            'hmac': self.sign(body),
        }
        response = self.session.post(self.url, data=body, headers=headers,
                                     timeout=self.timeout)
        if response.status_code != 200:
            raise RecognitionError(response.status_code, response.text)
        logger.debug("Recognition response: %d bytes, Content-Type %s",
                     len(response.content), response.headers.get('Content-Type'))
        return response.content

    def recognize_page(self, page: Page, content_type: str = DEFAULT_CONTENT_TYPE,
                       lang: str = DEFAULT_LANG) -> bytes:
        _, mime = resolve_content_type(content_type)
        return self.send(encode_batch(build_batch_input(page, content_type, lang)), mime)


@dataclass
class PageRecognition:
    """Outcome of recognizing one page."""
    page_index: int
    text: str = ''
    raw: bytes = b''
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _recognize_one(client: RecognitionClient, document: StrokeDocument, index: int,
                   content_type: str, lang: str) -> PageRecognition:
    _, mime = resolve_content_type(content_type)
    logger.info("Sending page %d for recognition", index)
    try:
        raw = client.recognize_page(document.pages[index], content_type, lang)
    except (RecognitionError, requests.RequestException) as e:
        logger.error("Recognition failed for page %d: %s", index, e)
        return PageRecognition(index, error=str(e))
    return PageRecognition(index, text=extract_text(raw, mime), raw=raw)


def recognize_pages(document: StrokeDocument, indices: list[int],
                    client: RecognitionClient,
                    content_type: str = DEFAULT_CONTENT_TYPE,
                    lang: str = DEFAULT_LANG,
                    batch_size: int = DEFAULT_BATCH_SIZE) -> list[PageRecognition]:
    """Recognize several pages with at most ``batch_size`` requests in flight.

    Args:
        document: Decoded document.
        indices: 0-based page indices, e.g. from ink_pages.select_pages().
        client: Configured recognition client.
        content_type: Output kind name.
        lang: Recognition language.
        batch_size: Maximum concurrent requests.

    Returns:
        One PageRecognition per index, in the order of ``indices``.

    Raises:
        ValueError: Unknown content type (checked before any request).
    """
    resolve_content_type(content_type)
    results: list[PageRecognition | None] = [None] * len(indices)
    if not indices:
        return []

    with ThreadPoolExecutor(max_workers=max(1, batch_size)) as executor:
        futures = {
            executor.submit(_recognize_one, client, document, index, content_type, lang): slot
            for slot, index in enumerate(indices)
        }
        for future, slot in futures.items():
            results[slot] = future.result()

    failed = sum(1 for r in results if not r.ok)
    logger.info("Recognized %d page(s), %d failed", len(results) - failed, failed)
    return results
