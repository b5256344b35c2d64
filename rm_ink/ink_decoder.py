"""Page decoding for notebook ink files.

This module turns a single page's raw bytes into a StrokeDocument. Format
revision 6 does not expose a verifiable record table, so its decoder is a
recovery parser: it treats each layer's bytes as a search space, proposes a
stroke header at every offset and keeps only candidates that pass a set of
plausibility checks tuned to known value ranges (brush code range, brush
size, point count, page coordinates). A rejected candidate moves the scan
forward by exactly one byte, which bounds the work by the buffer size.

Revisions 3 and 5 have a fixed-offset layout and are handled by
ink_legacy.decode_legacy(); decode_page() reads the revision from the
header and picks the matching decoder.

Key functionality:
    - decode_v6: Resynchronizing decoder for revision 6 pages
    - decode_page: Entry point that dispatches on the sniffed revision
    - sniff_version: Read the revision number from the header
    - scan_strokes: The per-window candidate scan, usable on its own
    - decode_point_records: Vectorized point validation shared with
      the legacy decoder

Decoders never raise on malformed bytes. A buffer that cannot be read as
the format at all yields a StructuralFailure; everything smaller (a bad
header candidate, a non-finite point) is absorbed locally.

Typical usage:
    from ink_decoder import decode_page

    with open('page.rm', 'rb') as f:
        result = decode_page(f.read())
    if not result:
        print(f"Unreadable page: {result}")
"""

from __future__ import annotations

import logging
import re
import struct
import uuid

import numpy as np

from ink_dataclasses import (
    NOT_THIS_FORMAT,
    UNEXPECTED_EOF,
    UNSUPPORTED_FORMAT,
    Layer,
    Page,
    PenType,
    SamplePoint,
    Stroke,
    StrokeDocument,
    StructuralFailure,
)

logger = logging.getLogger(__name__)

# --- Header layout ---
HEADER_LENGTH = 43
VERSION_6_MARKER = b'version=6'
_VERSION_PATTERN = re.compile(rb'version=(\d+)')

# Fixed-size blocks after the 43-byte header, consumed in this order
PREAMBLE_LENGTH = 5
FLAGS_LENGTH = 5
LAYER_COUNT_LENGTH = 4
DOCUMENT_ID_LENGTH = 16
TRAILING_METADATA_LENGTH = 7

# Upper bound on the declared layer count; anything above is clamped
MAX_LAYER_COUNT = 1024

# --- Layer boundaries ---
LAYER_MARKER = b'Layer '
LAYER_NAME_SCAN_LIMIT = 20    # Bytes from the marker start
MARKER_SEARCH_TAIL = 10       # Marker search stops this far from the end
MIN_HEADER_WINDOW = 50        # Bytes a window needs to hold another stroke

# --- Plausibility filters (calibrated constants, keep exact) ---
MAX_BRUSH_CODE = 50
MIN_BRUSH_SIZE = 0.0
MAX_BRUSH_SIZE = 100.0
MAX_POINT_COUNT = 50000
COORD_MIN = -1000.0
COORD_MAX = 20000.0

# brush u32, color u32, padding u32, size f32, unknown f32, point count u32
STROKE_HEADER = struct.Struct('<IIIffI')
POINT_FIELDS = 6              # x, y, speed, direction, width, pressure
POINT_RECORD_SIZE = POINT_FIELDS * 4
_POINT_DTYPE = np.dtype('<f4')


def sniff_version(data: bytes) -> int | None:
    """Return the format revision named in the header, or None."""
    match = _VERSION_PATTERN.search(bytes(data[:HEADER_LENGTH]))
    return int(match.group(1)) if match else None


def decode_point_records(data: bytes, offset: int, count: int) -> tuple[SamplePoint, ...]:
    """Decode ``count`` packed point records and drop implausible ones.

    Each record is six little-endian float32 values. A point is dropped when
    any field is NaN or infinite, or when x or y falls outside
    [COORD_MIN, COORD_MAX]. Survivors keep their file order.

    Args:
        data: Buffer holding the records.
        offset: Byte offset of the first record.
        count: Number of records; the caller guarantees they fit.

    Returns:
        The retained points, possibly empty.
    """
    if count <= 0:
        return ()
    records = np.frombuffer(data, dtype=_POINT_DTYPE, count=count * POINT_FIELDS,
                            offset=offset).reshape(count, POINT_FIELDS)
    keep = np.isfinite(records).all(axis=1)
    with np.errstate(invalid='ignore'):
        xs, ys = records[:, 0], records[:, 1]
        keep &= (xs >= COORD_MIN) & (xs <= COORD_MAX)
        keep &= (ys >= COORD_MIN) & (ys <= COORD_MAX)
    return tuple(SamplePoint(*row) for row in records[keep].astype(np.float64).tolist())


def read_stroke_candidate(data: bytes, start: int, end: int) -> tuple[Stroke, int] | None:
    """Try to read one stroke whose header begins at ``start``.

    The candidate is accepted only if the brush code is at most
    MAX_BRUSH_CODE, the brush size lies in [MIN_BRUSH_SIZE, MAX_BRUSH_SIZE],
    the point count lies in (0, MAX_POINT_COUNT], the point records fit
    before ``end`` and at least one point survives validation.

    Returns:
        (stroke, offset just past its points), or None for a rejected
        candidate.
    """
    if start + STROKE_HEADER.size > end:
        return None
    brush_code, color, padding, brush_size, unknown, point_count = \
        STROKE_HEADER.unpack_from(data, start)

    if brush_code > MAX_BRUSH_CODE:
        return None
    if not MIN_BRUSH_SIZE <= brush_size <= MAX_BRUSH_SIZE:
        return None
    if point_count == 0 or point_count > MAX_POINT_COUNT:
        return None

    points_start = start + STROKE_HEADER.size
    points_end = points_start + point_count * POINT_RECORD_SIZE
    if points_end > end:
        return None

    points = decode_point_records(data, points_start, point_count)
    if not points:
        return None

    stroke = Stroke(
        pen_type=PenType.from_code(brush_code),
        color=color,
        brush_size=brush_size,
        points=points,
        brush_code=brush_code,
        padding=padding,
        unknown=unknown,
    )
    return stroke, points_end


def scan_strokes(data: bytes, start: int, end: int) -> tuple[list[Stroke], int]:
    """Scan ``data[start:end]`` for stroke records.

    Every rejected candidate advances the cursor by one byte; an accepted
    candidate moves it past the stroke's points. The scan stops once fewer
    than MIN_HEADER_WINDOW bytes remain before ``end``.

    Returns:
        (strokes in file order, cursor position where the scan stopped).
    """
    strokes = []
    pos = start
    rejected = 0
    while pos < end - MIN_HEADER_WINDOW:
        candidate = read_stroke_candidate(data, pos, end)
        if candidate is None:
            pos += 1
            rejected += 1
            continue
        stroke, pos = candidate
        strokes.append(stroke)
    logger.debug("Scanned [%d, %d): %d strokes, %d rejected offsets",
                 start, end, len(strokes), rejected)
    return strokes, pos


def _find_layer_marker(data: bytes, pos: int) -> int | None:
    index = data.find(LAYER_MARKER, pos)
    if index < 0 or index >= len(data) - MARKER_SEARCH_TAIL:
        return None
    return index


def _skip_layer_name(data: bytes, marker_pos: int) -> int:
    # Name runs until NUL or '<', bounded by LAYER_NAME_SCAN_LIMIT
    pos = marker_pos + len(LAYER_MARKER) + 1
    limit = min(len(data), marker_pos + LAYER_NAME_SCAN_LIMIT)
    while pos < limit and data[pos] not in (0, ord('<')):
        pos += 1
    return pos


def _read_header(data: bytes) -> tuple[int, str, int] | StructuralFailure:
    """Validate the header and return (layer count, document id, cursor)."""
    if len(data) < HEADER_LENGTH or VERSION_6_MARKER not in data[:HEADER_LENGTH]:
        return StructuralFailure(NOT_THIS_FORMAT)

    pos = HEADER_LENGTH
    for size in (PREAMBLE_LENGTH, FLAGS_LENGTH):
        if pos + size > len(data):
            return StructuralFailure(UNEXPECTED_EOF)
        pos += size

    if pos + LAYER_COUNT_LENGTH > len(data):
        return StructuralFailure(UNEXPECTED_EOF)
    (layer_count,) = struct.unpack_from('<I', data, pos)
    pos += LAYER_COUNT_LENGTH

    if pos + DOCUMENT_ID_LENGTH > len(data):
        return StructuralFailure(UNEXPECTED_EOF)
    document_id = str(uuid.UUID(bytes=data[pos:pos + DOCUMENT_ID_LENGTH]))
    pos += DOCUMENT_ID_LENGTH

    if pos + TRAILING_METADATA_LENGTH > len(data):
        return StructuralFailure(UNEXPECTED_EOF)
    pos += TRAILING_METADATA_LENGTH

    return layer_count, document_id, pos


def decode_v6(data: bytes) -> StrokeDocument | StructuralFailure:
    """Decode a format revision 6 page.

    Layers are delimited by the literal LAYER_MARKER token. For every layer
    but the last, the stroke window ends just before the next marker; the
    last layer's window runs to the end of the buffer. After a layer, the
    cursor moves past the marker and its short name, or to where the stroke
    scan stopped when no marker was found.

    Args:
        data: The page's raw bytes.

    Returns:
        A single-page StrokeDocument (possibly with empty layers), or a
        StructuralFailure when the header is missing or truncated.
    """
    data = bytes(data)
    header = _read_header(data)
    if isinstance(header, StructuralFailure):
        return header
    layer_count, document_id, pos = header

    if layer_count > MAX_LAYER_COUNT:
        logger.warning("Declared layer count %d exceeds %d, clamping",
                       layer_count, MAX_LAYER_COUNT)
        layer_count = MAX_LAYER_COUNT

    layers = []
    for layer_index in range(layer_count):
        marker_pos = _find_layer_marker(data, pos)
        window_end = len(data)
        if marker_pos is not None and layer_index < layer_count - 1:
            window_end = marker_pos

        strokes, scan_end = scan_strokes(data, pos, window_end)
        layers.append(Layer(tuple(strokes)))

        pos = _skip_layer_name(data, marker_pos) if marker_pos is not None else scan_end

    page = Page(tuple(layers))
    logger.debug("Decoded v6 page %s: %d layers, %d strokes",
                 document_id, len(layers), page.stroke_count)
    return StrokeDocument(version=6, document_id=document_id, pages=(page,))


def decode_page(data: bytes) -> StrokeDocument | StructuralFailure:
    """Decode one page of any supported revision.

    The revision named in the header picks the decoder: 6 goes to the
    resynchronizing decoder, 3 and 5 to the fixed-offset legacy decoder.

    Returns:
        The decoded single-page document, or a StructuralFailure. A buffer
        whose header neither decoder accepts yields UNSUPPORTED_FORMAT.
    """
    from ink_legacy import LEGACY_VERSIONS, decode_legacy

    version = sniff_version(data)
    if version == 6:
        result = decode_v6(data)
    elif version in LEGACY_VERSIONS:
        result = decode_legacy(data)
    else:
        logger.debug("Unsupported page revision: %s", version)
        return StructuralFailure(UNSUPPORTED_FORMAT)

    if isinstance(result, StructuralFailure) and result.reason == NOT_THIS_FORMAT:
        return StructuralFailure(UNSUPPORTED_FORMAT)
    return result
