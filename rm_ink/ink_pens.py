"""Per-pen ink dynamics for rendering.

Each pen type answers three questions for every sample point: how wide is
the ink, what color is it, and how opaque. The answers reproduce the
device's own pen behavior (pressure, speed and tilt response).

The laws live in three dispatch tables keyed by PenType rather than in a
class hierarchy, so the full set can be enumerated and tested directly.
A PenModel resolves the static per-stroke values (base width, base color,
base opacity) once; PenModel.sample() then evaluates the laws per point.

Typical usage:
    from ink_pens import PenModel

    pen = PenModel.for_stroke(stroke)
    for point in stroke.points:
        width, color, opacity = pen.sample(point)
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, NamedTuple

from ink_dataclasses import PenType, SamplePoint, Stroke

RGB = tuple[int, int, int]

# Color id -> RGB. Unknown ids fall back to black.
PALETTE: dict[int, RGB] = {
    0: (0, 0, 0),            # black
    1: (144, 144, 144),      # gray
    2: (255, 255, 255),      # white
    3: (251, 247, 25),       # yellow
    4: (0, 255, 0),          # green
    5: (255, 192, 203),      # pink
    6: (78, 105, 201),       # blue
    7: (179, 62, 57),        # red
    8: (125, 125, 125),      # gray overlap
    9: (251, 247, 25),       # highlight
    10: (161, 216, 125),     # green 2
    11: (139, 208, 229),     # cyan
    12: (183, 130, 205),     # magenta
    13: (247, 232, 81),      # yellow 2
}
BLACK = PALETTE[0]
WHITE = PALETTE[2]

FINELINER_WIDTH_FACTOR = 1.8
ERASER_WIDTH_FACTOR = 2.0
HIGHLIGHTER_BASE_WIDTH = 15.0

OPACITY_FULL = 1.0
OPACITY_TILT_PENCIL = 0.9
OPACITY_MECHANICAL_PENCIL = 0.7
OPACITY_HIGHLIGHTER = 0.45

# Highlighter pastel mix: c * 0.7 + 255 * 0.3
HIGHLIGHTER_COLOR_KEEP = 0.7
HIGHLIGHTER_WHITE_MIX = 0.3

DIRECTION_RANGE = 255.0


def resolve_color(color_id: int) -> RGB:
    return PALETTE.get(color_id, BLACK)


def lighten_color(color: RGB) -> RGB:
    """Mix a color with white for the highlighter's pastel look."""
    return tuple(int(c * HIGHLIGHTER_COLOR_KEEP + 255 * HIGHLIGHTER_WHITE_MIX)
                 for c in color)


def direction_to_tilt(direction: float) -> float:
    """Convert an encoded direction in [0, 255] to radians in [0, 2*pi)."""
    return direction * 2 * math.pi / DIRECTION_RANGE


def clamp01(value: float) -> float:
    if value < 0.0:
        return 0.0
    if value > 1.0:
        return 1.0
    return value


def _speed_term(speed: float, divisor: float) -> float:
    return (speed / 4) / divisor


class PenSample(NamedTuple):
    """Instantaneous ink at one sample point."""
    width: float
    color: RGB
    opacity: float


# --- Width laws: (pen, point) -> width in device units ---

def _brush_width(pen: PenModel, p: SamplePoint) -> float:
    tilt = direction_to_tilt(p.direction)
    return 0.7 * (((1 + 1.4 * p.pressure) * (p.width / 4))
                  - 0.5 * tilt - _speed_term(p.speed, 50))


def _ballpoint_width(pen: PenModel, p: SamplePoint) -> float:
    return (0.5 + p.pressure) + (p.width / 4) - 0.5 * _speed_term(p.speed, 50)


def _marker_width(pen: PenModel, p: SamplePoint) -> float:
    tilt = direction_to_tilt(p.direction)
    return 0.9 * ((p.width / 4) - 0.4 * tilt)


def _tilt_pencil_width(pen: PenModel, p: SamplePoint) -> float:
    # Negative tilt has no real 1.8th power; treat it as upright
    tilt = max(direction_to_tilt(p.direction), 0.0)
    width = 0.7 * ((((0.8 * pen.base_width) + (0.5 * p.pressure)) * (p.width / 4))
                   - 0.25 * tilt ** 1.8 - 0.6 * _speed_term(p.speed, 50))
    return min(width, pen.base_width * 10)


def _constant_width(pen: PenModel, p: SamplePoint) -> float:
    return pen.base_width


def _pressure_width(pen: PenModel, p: SamplePoint) -> float:
    return pen.base_width * (0.5 + 0.5 * p.pressure)


_WIDTH_LAWS: dict[PenType, Callable[[PenModel, SamplePoint], float]] = {
    PenType.BRUSH: _brush_width,
    PenType.BALLPOINT: _ballpoint_width,
    PenType.FINELINER: _constant_width,
    PenType.MARKER: _marker_width,
    PenType.TILT_PENCIL: _tilt_pencil_width,
    PenType.MECHANICAL_PENCIL: _constant_width,
    PenType.HIGHLIGHTER: _constant_width,
    PenType.ERASER: _constant_width,
    PenType.ERASE_AREA: _constant_width,
    PenType.UNKNOWN: _pressure_width,
}


# --- Color laws: (pen, point) -> RGB ---

def _brush_color(pen: PenModel, p: SamplePoint) -> RGB:
    pressure = max(p.pressure, 0.0)
    intensity = clamp01((pressure ** 1.5 - 0.2 * _speed_term(p.speed, 50)) * 1.5)
    if pen.base_color == WHITE:
        # White brush would vanish on paper; render it as a faint gray
        gray = int(250 - intensity * 15)
        return (gray, gray, gray)
    # Blend from paper white toward the base color
    return tuple(int(255 - intensity * (255 - c)) for c in pen.base_color)


def _ballpoint_color(pen: PenModel, p: SamplePoint) -> RGB:
    intensity = clamp01(0.1 * -_speed_term(p.speed, 35) + 1.2 * p.pressure + 0.5)
    gray = int(min(abs(intensity - 1) * 255, 60))
    return (gray, gray, gray)


def _base_color(pen: PenModel, p: SamplePoint) -> RGB:
    return pen.base_color


def _highlighter_color(pen: PenModel, p: SamplePoint) -> RGB:
    return lighten_color(pen.base_color)


_COLOR_LAWS: dict[PenType, Callable[[PenModel, SamplePoint], RGB]] = {
    PenType.BRUSH: _brush_color,
    PenType.BALLPOINT: _ballpoint_color,
    PenType.FINELINER: _base_color,
    PenType.MARKER: _base_color,
    PenType.TILT_PENCIL: _base_color,
    PenType.MECHANICAL_PENCIL: _base_color,
    PenType.HIGHLIGHTER: _highlighter_color,
    PenType.ERASER: _base_color,
    PenType.ERASE_AREA: _base_color,
    PenType.UNKNOWN: _base_color,
}


# --- Opacity laws: (pen, point) -> [0, 1] ---

def _tilt_pencil_opacity(pen: PenModel, p: SamplePoint) -> float:
    return max(clamp01(0.1 * -_speed_term(p.speed, 35) + p.pressure) - 0.1, 0.0)


def _base_opacity(pen: PenModel, p: SamplePoint) -> float:
    return pen.base_opacity


_OPACITY_LAWS: dict[PenType, Callable[[PenModel, SamplePoint], float]] = {
    pen_type: _base_opacity for pen_type in PenType
}
_OPACITY_LAWS[PenType.TILT_PENCIL] = _tilt_pencil_opacity


@dataclass(frozen=True)
class PenModel:
    """Static per-stroke pen state plus the per-sample laws.

    Attributes:
        pen_type: Drawing tool.
        base_width: Width derived once from the stroke's brush size.
        base_color: Palette color (white for erasers).
        base_opacity: Opacity before any per-sample law.
    """
    pen_type: PenType
    base_width: float
    base_color: RGB
    base_opacity: float = OPACITY_FULL

    @classmethod
    def for_stroke(cls, stroke: Stroke) -> PenModel:
        return cls.create(stroke.pen_type, stroke.color, stroke.brush_size)

    @classmethod
    def create(cls, pen_type: PenType, color_id: int, brush_size: float) -> PenModel:
        """Resolve base width, color and opacity for a pen type."""
        width = float(brush_size)
        color = resolve_color(color_id)
        opacity = OPACITY_FULL

        if pen_type is PenType.FINELINER:
            width = brush_size * FINELINER_WIDTH_FACTOR
        elif pen_type is PenType.TILT_PENCIL:
            opacity = OPACITY_TILT_PENCIL
        elif pen_type is PenType.MECHANICAL_PENCIL:
            width = brush_size * brush_size
            opacity = OPACITY_MECHANICAL_PENCIL
        elif pen_type is PenType.HIGHLIGHTER:
            width = HIGHLIGHTER_BASE_WIDTH
            opacity = OPACITY_HIGHLIGHTER
        elif pen_type is PenType.ERASER:
            width = brush_size * ERASER_WIDTH_FACTOR
            color = WHITE
        elif pen_type is PenType.ERASE_AREA:
            color = WHITE
            opacity = 0.0

        return cls(pen_type, width, color, opacity)

    def width(self, point: SamplePoint) -> float:
        return _WIDTH_LAWS[self.pen_type](self, point)

    def color(self, point: SamplePoint) -> RGB:
        return _COLOR_LAWS[self.pen_type](self, point)

    def opacity(self, point: SamplePoint) -> float:
        return _OPACITY_LAWS[self.pen_type](self, point)

    def sample(self, point: SamplePoint) -> PenSample:
        return PenSample(self.width(point), self.color(point), self.opacity(point))
