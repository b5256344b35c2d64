"""Page rasterization for decoded notebook ink.

This module turns one Page of the stroke graph into an RGB image that looks
like the page on the device: strokes are scaled to a fixed output width,
every pen type gets its own width/color/opacity dynamics (see ink_pens),
and highlighters are composited underneath ink.

Key functionality:
    - render_page: Page -> PIL.Image, deterministic for identical input
    - render_page_png / encode_png: The same, as PNG bytes
    - render_pages: Several pages concurrently, results in input order
    - compute_bounding_box / compute_layout: Geometry helpers, exposed for
      callers that need the page-to-pixel mapping

Drawing happens in two passes over the page in layer-then-stroke order:
first every highlighter as a constant-width translucent ribbon, then every
other stroke as a chain of interpolated discs. Each draw call is
alpha-composited onto the canvas in list order, so overlapping translucent
strokes compound. All drawing clips at the canvas edge.

Typical usage:
    from ink_rendering import RenderConfig, render_page_png

    png_bytes = render_page_png(document.pages[0])

    # Narrower output
    png_bytes = render_page_png(page, target_width=702)
"""

from __future__ import annotations

import io
import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import lru_cache

import numpy as np
from PIL import Image, ImageDraw

from ink_config import (
    MAX_STROKE_WIDTH,
    MIN_IMAGE_HEIGHT,
    MIN_PADDING,
    MIN_STROKE_WIDTH,
    OUTPUT_WIDTH,
    PADDING_PERCENT,
    STROKE_WIDTH_SCALE,
)
from ink_dataclasses import Page, PenType, Stroke
from ink_pens import (
    HIGHLIGHTER_BASE_WIDTH,
    OPACITY_HIGHLIGHTER,
    RGB,
    PenModel,
    lighten_color,
)

logger = logging.getLogger(__name__)

WHITE_PIXEL = (255, 255, 255)

# Highlighter ribbon width in pixels: base * stroke scale * 4, clamped
HIGHLIGHTER_WIDTH_MULTIPLIER = 4.0
HIGHLIGHTER_MIN_WIDTH = 20
HIGHLIGHTER_MAX_WIDTH = 100


@dataclass(frozen=True)
class RenderConfig:
    """Rendering parameters.

    Attributes:
        target_width: Output image width in pixels.
        padding_percent: Border around the content, as a fraction of the
            content extent on each axis.
        min_padding: Floor on the border, in document units.
        stroke_width_scale: Multiplier from pen width to pixel radius.
        min_stroke_width: Smallest disc radius drawn, in pixels.
        max_stroke_width: Largest disc radius drawn, in pixels.
        min_height: Smallest output height; also the blank-page height.
    """
    target_width: int = OUTPUT_WIDTH
    padding_percent: float = PADDING_PERCENT
    min_padding: float = MIN_PADDING
    stroke_width_scale: float = STROKE_WIDTH_SCALE
    min_stroke_width: int = MIN_STROKE_WIDTH
    max_stroke_width: int = MAX_STROKE_WIDTH
    min_height: int = MIN_IMAGE_HEIGHT

    def pixel_radius(self, width: float) -> int:
        """Convert a pen width to a clamped integer disc radius."""
        radius = int(width * self.stroke_width_scale)
        return max(self.min_stroke_width, min(radius, self.max_stroke_width))

    @property
    def highlighter_width(self) -> int:
        width = int(HIGHLIGHTER_BASE_WIDTH * self.stroke_width_scale
                    * HIGHLIGHTER_WIDTH_MULTIPLIER)
        return max(HIGHLIGHTER_MIN_WIDTH, min(width, HIGHLIGHTER_MAX_WIDTH))


DEFAULT_CONFIG = RenderConfig()


@dataclass(frozen=True)
class BoundingBox:
    """Raw content extent plus the padding chosen for it."""
    min_x: float
    min_y: float
    max_x: float
    max_y: float
    padding_x: float
    padding_y: float

    @property
    def content_width(self) -> float:
        return self.max_x - self.min_x

    @property
    def content_height(self) -> float:
        return self.max_y - self.min_y


@dataclass(frozen=True)
class PageLayout:
    """Mapping from document coordinates to output pixels."""
    box: BoundingBox
    scale: float
    width: int
    height: int

    def transform(self, x: float, y: float) -> tuple[int, int]:
        return (int((x - self.box.min_x + self.box.padding_x) * self.scale),
                int((y - self.box.min_y + self.box.padding_y) * self.scale))


def is_drawable(stroke: Stroke) -> bool:
    """Erase-area strokes and strokes with fewer than 2 points are skipped."""
    return stroke.pen_type is not PenType.ERASE_AREA and len(stroke.points) >= 2


def compute_bounding_box(page: Page, config: RenderConfig = DEFAULT_CONFIG) -> BoundingBox | None:
    """Find the padded extent of all drawable strokes.

    Returns:
        The bounding box, or None when no stroke qualifies.
    """
    xs = []
    ys = []
    for stroke in page.strokes:
        if not is_drawable(stroke):
            continue
        xs.extend(p.x for p in stroke.points)
        ys.extend(p.y for p in stroke.points)
    if not xs:
        return None

    min_x, max_x = min(xs), max(xs)
    min_y, max_y = min(ys), max(ys)
    return BoundingBox(
        min_x=min_x,
        min_y=min_y,
        max_x=max_x,
        max_y=max_y,
        padding_x=max((max_x - min_x) * config.padding_percent, config.min_padding),
        padding_y=max((max_y - min_y) * config.padding_percent, config.min_padding),
    )


def compute_layout(box: BoundingBox, target_width: int,
                   config: RenderConfig = DEFAULT_CONFIG) -> PageLayout:
    """Scale the padded content to ``target_width``, preserving aspect ratio."""
    padded_width = box.content_width + 2 * box.padding_x
    padded_height = box.content_height + 2 * box.padding_y
    if padded_width <= 0:
        return PageLayout(box, 1.0, target_width, config.min_height)
    scale = target_width / padded_width
    height = max(int(padded_height * scale), config.min_height)
    return PageLayout(box, scale, target_width, height)


@lru_cache(maxsize=128)
def _disc_mask(radius: int) -> np.ndarray:
    """Boolean (2r+1, 2r+1) mask of pixels with dx*dx + dy*dy <= r*r."""
    offsets = np.arange(-radius, radius + 1)
    mask = offsets[None, :] ** 2 + offsets[:, None] ** 2 <= radius * radius
    mask.setflags(write=False)
    return mask


class _Canvas:
    """White RGB pixel buffer with clipped, alpha-composited fills."""

    def __init__(self, width: int, height: int):
        self.width = width
        self.height = height
        self.pixels = np.full((height, width, 3), 255, dtype=np.uint8)

    def _clip(self, x0: int, y0: int, x1: int, y1: int):
        """Intersect the half-open box with the canvas, None when empty."""
        cx0, cy0 = max(x0, 0), max(y0, 0)
        cx1, cy1 = min(x1, self.width), min(y1, self.height)
        if cx0 >= cx1 or cy0 >= cy1:
            return None
        return cx0, cy0, cx1, cy1

    @staticmethod
    def _composite(region: np.ndarray, mask: np.ndarray, color: RGB, opacity: float):
        # Source-over: fg * a + bg * (1 - a), truncated to uint8
        opacity = min(max(opacity, 0.0), 1.0)
        if opacity <= 0.0 or not mask.any():
            return
        if opacity >= 1.0:
            region[mask] = color
            return
        background = region[mask].astype(np.float64)
        foreground = np.asarray(color, dtype=np.float64)
        region[mask] = (foreground * opacity + background * (1.0 - opacity)).astype(np.uint8)

    def fill_disc(self, cx: int, cy: int, radius: int, color: RGB, opacity: float):
        if radius <= 0:
            return
        x0, y0 = cx - radius, cy - radius
        clipped = self._clip(x0, y0, cx + radius + 1, cy + radius + 1)
        if clipped is None:
            return
        cx0, cy0, cx1, cy1 = clipped
        mask = _disc_mask(radius)[cy0 - y0:cy1 - y0, cx0 - x0:cx1 - x0]
        self._composite(self.pixels[cy0:cy1, cx0:cx1], mask, color, opacity)

    def fill_polygon(self, corners: list[tuple[int, int]], color: RGB, opacity: float):
        xs = [x for x, _ in corners]
        ys = [y for _, y in corners]
        clipped = self._clip(min(xs), min(ys), max(xs) + 1, max(ys) + 1)
        if clipped is None:
            return
        cx0, cy0, cx1, cy1 = clipped
        mask_image = Image.new('L', (cx1 - cx0, cy1 - cy0), 0)
        ImageDraw.Draw(mask_image).polygon(
            [(x - cx0, y - cy0) for x, y in corners], fill=1)
        mask = np.asarray(mask_image, dtype=bool)
        self._composite(self.pixels[cy0:cy1, cx0:cx1], mask, color, opacity)


def _draw_highlighter(canvas: _Canvas, stroke: Stroke, layout: PageLayout,
                      config: RenderConfig):
    """Constant-width translucent ribbon with round caps at both ends."""
    pen = PenModel.for_stroke(stroke)
    color = lighten_color(pen.base_color)
    width = config.highlighter_width
    half = width / 2
    points = [layout.transform(p.x, p.y) for p in stroke.points]

    for (x1, y1), (x2, y2) in zip(points, points[1:]):
        length = math.hypot(x2 - x1, y2 - y1)
        if length == 0:
            continue
        # Unit normal to the segment
        nx, ny = -(y2 - y1) / length, (x2 - x1) / length
        corners = [
            (int(x1 + nx * half), int(y1 + ny * half)),
            (int(x1 - nx * half), int(y1 - ny * half)),
            (int(x2 - nx * half), int(y2 - ny * half)),
            (int(x2 + nx * half), int(y2 + ny * half)),
        ]
        canvas.fill_polygon(corners, color, OPACITY_HIGHLIGHTER)

    cap = width // 2
    canvas.fill_disc(*points[-1], cap, color, OPACITY_HIGHLIGHTER)
    canvas.fill_disc(*points[0], cap, color, OPACITY_HIGHLIGHTER)


def _draw_capsule(canvas: _Canvas, start: tuple[int, int], end: tuple[int, int],
                  r1: int, r2: int, c1: RGB, c2: RGB, o1: float, o2: float):
    """Chain of discs from start to end, interpolating radius, color, opacity."""
    x1, y1 = start
    dx, dy = end[0] - x1, end[1] - y1
    length = math.hypot(dx, dy)
    if length == 0:
        canvas.fill_disc(x1, y1, r1, c1, o1)
        return

    steps = max(int(length) + 1, 2)
    for i in range(steps + 1):
        t = i / steps
        radius = max(int(r1 + (r2 - r1) * t + 0.5), 1)
        color = tuple(int(a + (b - a) * t) for a, b in zip(c1, c2))
        opacity = o1 + (o2 - o1) * t
        canvas.fill_disc(int(x1 + dx * t + 0.5), int(y1 + dy * t + 0.5),
                         radius, color, opacity)


def _draw_ink(canvas: _Canvas, stroke: Stroke, layout: PageLayout,
              config: RenderConfig):
    pen = PenModel.for_stroke(stroke)
    positions = [layout.transform(p.x, p.y) for p in stroke.points]
    samples = [pen.sample(p) for p in stroke.points]
    radii = [config.pixel_radius(s.width) for s in samples]

    first = samples[0]
    canvas.fill_disc(*positions[0], radii[0], first.color, first.opacity)

    for i in range(len(positions) - 1):
        a, b = samples[i], samples[i + 1]
        _draw_capsule(canvas, positions[i], positions[i + 1], radii[i], radii[i + 1],
                      a.color, b.color, a.opacity, b.opacity)


def render_page(page: Page, target_width: int | None = None,
                config: RenderConfig | None = None) -> Image.Image:
    """Render one page to an RGB image.

    Args:
        page: Page to draw.
        target_width: Output width in pixels. Defaults to config.target_width.
        config: Rendering parameters. Defaults to RenderConfig().

    Returns:
        A PIL RGB image of target_width x computed height. A page with no
        drawable strokes gives a white target_width x min_height image.
    """
    config = config or DEFAULT_CONFIG
    width = target_width or config.target_width

    box = compute_bounding_box(page, config)
    if box is None:
        logger.debug("No drawable strokes, emitting blank %dx%d page",
                     width, config.min_height)
        return Image.fromarray(_Canvas(width, config.min_height).pixels)

    layout = compute_layout(box, width, config)
    canvas = _Canvas(layout.width, layout.height)

    drawable = [s for s in page.strokes if is_drawable(s)]
    highlighters = [s for s in drawable if s.is_highlighter]
    for stroke in highlighters:
        _draw_highlighter(canvas, stroke, layout, config)
    for stroke in drawable:
        if not stroke.is_highlighter:
            _draw_ink(canvas, stroke, layout, config)

    logger.debug("Rendered %d strokes (%d highlighters) at %dx%d, scale %.4f",
                 len(drawable), len(highlighters), layout.width, layout.height,
                 layout.scale)
    return Image.fromarray(canvas.pixels)


def encode_png(image: Image.Image) -> bytes:
    buf = io.BytesIO()
    image.save(buf, format='PNG')
    return buf.getvalue()


def render_page_png(page: Page, target_width: int | None = None,
                    config: RenderConfig | None = None) -> bytes:
    """Render one page straight to PNG bytes."""
    return encode_png(render_page(page, target_width, config))


def render_pages(pages, target_width: int | None = None,
                 config: RenderConfig | None = None,
                 max_workers: int = 4) -> list[bytes]:
    """Render several pages to PNG bytes concurrently.

    Each page gets its own canvas, so pages never share mutable state.

    Returns:
        PNG bytes per page, in the order the pages were given.
    """
    pages = list(pages)
    if not pages:
        return []
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(pages)))) as pool:
        return list(pool.map(lambda p: render_page_png(p, target_width, config), pages))
