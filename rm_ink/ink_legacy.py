"""Fixed-offset decoder for format revisions 3 and 5.

Older notebook pages store an explicit record table: a padded text header,
a layer count, and for each layer a stroke count followed by that many
stroke records. Nothing needs to be guessed, so unlike the revision 6
decoder this one reads strictly in order and reports truncation as a
StructuralFailure.

Revision 5 adds one reserved float to each stroke header.

Typical usage:
    from ink_legacy import decode_legacy

    result = decode_legacy(blob)
"""

from __future__ import annotations

import logging
import re
import struct

from ink_dataclasses import (
    NOT_THIS_FORMAT,
    UNEXPECTED_EOF,
    Layer,
    Page,
    PenType,
    Stroke,
    StrokeDocument,
    StructuralFailure,
)
from ink_decoder import HEADER_LENGTH, POINT_RECORD_SIZE, decode_point_records

logger = logging.getLogger(__name__)

LEGACY_HEADER_PREFIX = b'reMarkable .lines file, version='
LEGACY_VERSIONS = (3, 5)
_LEGACY_HEADER = re.compile(rb'^reMarkable \.lines file, version=(\d+)')

_U32 = struct.Struct('<I')
# brush u32, color u32, padding u32, size f32
_STROKE_V3 = struct.Struct('<IIIf')
# revision 5 adds a reserved f32
_STROKE_V5 = struct.Struct('<IIIff')


class _Truncated(Exception):
    """Internal signal: a read ran past the end of the buffer."""


class _Reader:
    """Forward-only cursor over an immutable byte buffer."""

    def __init__(self, data: bytes, pos: int = 0):
        self.data = data
        self.pos = pos

    def unpack(self, fmt: struct.Struct) -> tuple:
        if self.pos + fmt.size > len(self.data):
            raise _Truncated(self.pos)
        values = fmt.unpack_from(self.data, self.pos)
        self.pos += fmt.size
        return values

    def u32(self) -> int:
        return self.unpack(_U32)[0]

    def skip(self, size: int) -> int:
        """Advance past ``size`` bytes, returning the offset they start at."""
        if self.pos + size > len(self.data):
            raise _Truncated(self.pos)
        start = self.pos
        self.pos += size
        return start


def legacy_version(data: bytes) -> int | None:
    """Return 3 or 5 for a legacy page header, None otherwise."""
    match = _LEGACY_HEADER.match(bytes(data[:HEADER_LENGTH]))
    if not match:
        return None
    version = int(match.group(1))
    return version if version in LEGACY_VERSIONS else None


def _read_stroke(reader: _Reader, version: int) -> Stroke | None:
    if version == 5:
        brush_code, color, padding, brush_size, unknown = reader.unpack(_STROKE_V5)
    else:
        brush_code, color, padding, brush_size = reader.unpack(_STROKE_V3)
        unknown = 0.0
    point_count = reader.u32()
    offset = reader.skip(point_count * POINT_RECORD_SIZE)
    points = decode_point_records(reader.data, offset, point_count)
    if not points:
        return None
    return Stroke(
        pen_type=PenType.from_code(brush_code),
        color=color,
        brush_size=brush_size,
        points=points,
        brush_code=brush_code,
        padding=padding,
        unknown=unknown,
    )


def decode_legacy(data: bytes) -> StrokeDocument | StructuralFailure:
    """Decode a revision 3 or 5 page.

    Args:
        data: The page's raw bytes.

    Returns:
        A single-page StrokeDocument, or a StructuralFailure. Strokes whose
        points were all rejected are dropped, as in the revision 6 decoder.
    """
    data = bytes(data)
    if len(data) < HEADER_LENGTH:
        return StructuralFailure(NOT_THIS_FORMAT)
    version = legacy_version(data)
    if version is None:
        return StructuralFailure(NOT_THIS_FORMAT)

    reader = _Reader(data, HEADER_LENGTH)
    layers = []
    dropped = 0
    try:
        layer_count = reader.u32()
        for _ in range(layer_count):
            strokes = []
            for _ in range(reader.u32()):
                stroke = _read_stroke(reader, version)
                if stroke is None:
                    dropped += 1
                    continue
                strokes.append(stroke)
            layers.append(Layer(tuple(strokes)))
    except _Truncated as e:
        logger.debug("Legacy v%d page truncated at offset %s", version, e.args[0])
        return StructuralFailure(UNEXPECTED_EOF)

    page = Page(tuple(layers))
    logger.debug("Decoded v%d page: %d layers, %d strokes (%d dropped)",
                 version, len(layers), page.stroke_count, dropped)
    return StrokeDocument(version=version, document_id='', pages=(page,))
