"""Dataclasses and constants for decoded notebook ink.

This module provides the stroke graph produced by the page decoders and
consumed by the renderer and the recognition payload builder:

- SamplePoint: one timestamped stylus capture
- Stroke: one continuous pen-down gesture with its brush metadata
- Layer / Page / StrokeDocument: the ordered containers above strokes
- PenType: the closed enumeration of drawing tools
- StructuralFailure: the value a decoder returns for unreadable bytes

All types are frozen and hold tuples, so a decoded document can be shared
between concurrent renders without copying. Traversal is strictly top-down;
points do not know their stroke and strokes do not know their layer.

Typical usage example:

    from ink_decoder import decode_page
    from ink_dataclasses import StructuralFailure

    result = decode_page(blob)
    if isinstance(result, StructuralFailure):
        print(f"Unreadable page: {result.reason}")
    else:
        for stroke in result.pages[0].strokes:
            print(stroke.pen_type.name, len(stroke.points))
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum


class PenType(Enum):
    """Drawing tool used for a stroke.

    Device brush codes come in two generations (the second set introduced
    with format revision 5); both map onto the same pen type. Use
    ``PenType.from_code`` to resolve a raw code.
    """
    BRUSH = 'brush'
    BALLPOINT = 'ballpoint'
    FINELINER = 'fineliner'
    MARKER = 'marker'
    TILT_PENCIL = 'tilt-pencil'
    MECHANICAL_PENCIL = 'mechanical-pencil'
    HIGHLIGHTER = 'highlighter'
    ERASER = 'eraser'
    ERASE_AREA = 'erase-area'
    UNKNOWN = 'unknown'

    @classmethod
    def from_code(cls, code: int) -> PenType:
        """Resolve a raw device brush code, ``UNKNOWN`` when unlisted."""
        return BRUSH_CODES.get(code, cls.UNKNOWN)


# Raw brush code -> pen type (first generation, then revision 5 codes)
BRUSH_CODES: dict[int, PenType] = {
    0: PenType.BRUSH,
    1: PenType.TILT_PENCIL,
    2: PenType.BALLPOINT,
    3: PenType.MARKER,
    4: PenType.FINELINER,
    5: PenType.HIGHLIGHTER,
    6: PenType.ERASER,
    7: PenType.MECHANICAL_PENCIL,
    8: PenType.ERASE_AREA,
    12: PenType.BRUSH,
    13: PenType.MECHANICAL_PENCIL,
    14: PenType.TILT_PENCIL,
    15: PenType.BALLPOINT,
    16: PenType.MARKER,
    17: PenType.FINELINER,
    18: PenType.HIGHLIGHTER,
}


@dataclass(frozen=True)
class SamplePoint:
    """A single stylus sample.

    Attributes:
        x: Horizontal position in document coordinates.
        y: Vertical position in document coordinates.
        speed: Device-reported pen speed.
        direction: Encoded tilt angle in [0, 255], mapping linearly to
            [0, 2*pi) radians.
        width: Device-reported stroke width at this sample.
        pressure: Device-reported pressure. Not normalized; consumers
            clamp or rescale as they need.
    """
    x: float
    y: float
    speed: float
    direction: float
    width: float
    pressure: float


@dataclass(frozen=True)
class Stroke:
    """One continuous pen-down gesture.

    A stroke that comes out of a decoder always has at least one point;
    decoders drop strokes whose points were all rejected.

    Attributes:
        pen_type: Resolved drawing tool.
        color: Palette color id (small integer).
        brush_size: Nominal brush size from the stroke header.
        points: Ordered samples.
        brush_code: Raw brush code as stored in the file.
        padding: Header padding field, kept verbatim.
        unknown: Reserved header float, kept verbatim (0.0 when absent).
    """
    pen_type: PenType
    color: int
    brush_size: float
    points: tuple[SamplePoint, ...]
    brush_code: int = 0
    padding: int = 0
    unknown: float = 0.0

    @property
    def is_highlighter(self) -> bool:
        return self.pen_type is PenType.HIGHLIGHTER


@dataclass(frozen=True)
class Layer:
    """Ordered strokes drawn together; earlier layers sit underneath."""
    strokes: tuple[Stroke, ...] = ()


@dataclass(frozen=True)
class Page:
    """Ordered layers of one notebook page. Zero layers is a valid page."""
    layers: tuple[Layer, ...] = ()

    @property
    def strokes(self) -> Iterator[Stroke]:
        """Iterate strokes in drawing order (layer, then stroke)."""
        for layer in self.layers:
            yield from layer.strokes

    @property
    def stroke_count(self) -> int:
        return sum(len(layer.strokes) for layer in self.layers)

    @property
    def has_strokes(self) -> bool:
        return any(layer.strokes for layer in self.layers)


@dataclass(frozen=True)
class StrokeDocument:
    """Top-level decode result.

    Attributes:
        version: Format revision the pages were decoded from (3, 5 or 6),
            or None when unknown.
        document_id: Opaque document identifier.
        pages: Pages in display order.
        last_opened: Index of the last opened page, or None if the
            container did not record one.
    """
    version: int | None
    document_id: str
    pages: tuple[Page, ...] = field(default_factory=tuple)
    last_opened: int | None = None

    @property
    def page_count(self) -> int:
        return len(self.pages)

    @property
    def stroke_count(self) -> int:
        return sum(page.stroke_count for page in self.pages)

    @property
    def point_count(self) -> int:
        return sum(len(s.points) for page in self.pages for s in page.strokes)

    @property
    def is_empty(self) -> bool:
        """True when no page holds a single stroke."""
        return not any(page.has_strokes for page in self.pages)


@dataclass(frozen=True)
class StructuralFailure:
    """Returned by a decoder when the bytes are not readable as its format.

    Falsy, so ``if not result`` reads naturally at call sites that only
    care whether decoding worked.
    """
    reason: str

    def __bool__(self) -> bool:
        return False

    def __str__(self) -> str:
        return self.reason


# Failure reasons shared by the decoders
NOT_THIS_FORMAT = 'not this format'
UNEXPECTED_EOF = 'unexpected end of file'
UNSUPPORTED_FORMAT = 'unsupported format'
