"""
geometry.py — EMU <-> pixel translation used by screenshots, frame crops and HTML.

EMU is the DrawingML logical unit: 914400 per inch. Pixels are CSS pixels at
96 per inch unless a raster DPI says otherwise.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

EMU_PER_INCH = 914400.0
PX_PER_INCH = 96.0
PT_PER_INCH = 72.0

MIN_RASTER_DPI = 72
MAX_RASTER_DPI = 300
DEFAULT_RASTER_DPI = 150


@dataclass(frozen=True)
class SlideSize:
    width_emu: int = 0
    height_emu: int = 0

    @property
    def known(self) -> bool:
        return self.width_emu > 0 and self.height_emu > 0


@dataclass(frozen=True)
class FrameRect:
    x: int
    y: int
    cx: int
    cy: int

    @property
    def usable(self) -> bool:
        return self.cx > 0 and self.cy > 0


@dataclass(frozen=True)
class PixelRect:
    x: int
    y: int
    width: int
    height: int

    def box(self) -> tuple[int, int, int, int]:
        """(left, upper, right, lower) as Pillow's crop() expects."""
        return (self.x, self.y, self.x + self.width, self.y + self.height)


def px_from_emu(v: float) -> float:
    return v / EMU_PER_INCH * PX_PER_INCH


def px_from_hundredth_point(v: float) -> float:
    return v / 100.0 * PX_PER_INCH / PT_PER_INCH


def px_from_point(v: float) -> float:
    return v * PX_PER_INCH / PT_PER_INCH


def pt_from_emu(v: float) -> float:
    return v * PT_PER_INCH / EMU_PER_INCH


def _clamp(v: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, v))


def clamp_dpi(dpi: int) -> int:
    return _clamp(int(dpi), MIN_RASTER_DPI, MAX_RASTER_DPI)


def resolve_raster_dpi(
    requested: Optional[int],
    slide_size: Optional[SlideSize],
    max_width_px: Optional[int] = None,
    max_height_px: Optional[int] = None,
) -> int:
    """Pick the DPI a PDF page is rendered at.

    An explicit DPI wins (clamped). Otherwise the largest DPI that keeps the
    page inside the requested pixel bounds, falling back to 150 when there is
    nothing to derive it from.
    """
    if requested is not None and requested > 0:
        return clamp_dpi(requested)

    if slide_size is None or not slide_size.known:
        return DEFAULT_RASTER_DPI

    width_in = slide_size.width_emu / EMU_PER_INCH
    height_in = slide_size.height_emu / EMU_PER_INCH

    dpi_x = max_width_px / width_in if max_width_px is not None and max_width_px > 0 else math.inf
    dpi_y = max_height_px / height_in if max_height_px is not None and max_height_px > 0 else math.inf
    dpi = min(dpi_x, dpi_y)

    if not math.isfinite(dpi) or dpi <= 0:
        dpi = DEFAULT_RASTER_DPI

    return clamp_dpi(round(dpi))


def pixel_rect_for_frame(
    frame: FrameRect,
    image_width: int,
    image_height: int,
    slide_size: SlideSize,
) -> Optional[PixelRect]:
    """Map an EMU frame onto a rendered slide bitmap.

    Returns None when the frame has no visible area inside the bitmap.
    """
    if not slide_size.known or image_width <= 0 or image_height <= 0:
        return None

    scale_x = image_width / slide_size.width_emu
    scale_y = image_height / slide_size.height_emu

    x = round(frame.x * scale_x)
    y = round(frame.y * scale_y)
    w = round(frame.cx * scale_x)
    h = round(frame.cy * scale_y)

    if w <= 0 or h <= 0:
        return None

    # Off-canvas on the left/top: keep only the visible part.
    if x < 0:
        w += x
        x = 0
    if y < 0:
        h += y
        y = 0

    if x >= image_width or y >= image_height:
        return None

    w = min(w, image_width - x)
    h = min(h, image_height - y)
    if w <= 0 or h <= 0:
        return None

    return PixelRect(x, y, w, h)


def fit_within(
    width: int,
    height: int,
    max_width: Optional[int],
    max_height: Optional[int],
    allow_upscale: bool = False,
) -> tuple[int, int]:
    """Target size for a "fit inside the box, keep aspect" resize.

    Returns the input size when no resize is needed.
    """
    if width <= 0 or height <= 0:
        return (width, height)

    target_w = max_width if max_width is not None and max_width > 0 else width
    target_h = max_height if max_height is not None and max_height > 0 else height

    should_resize = width > target_w or height > target_h
    if not should_resize and allow_upscale and (width < target_w or height < target_h):
        should_resize = True
    if not should_resize:
        return (width, height)

    scale = min(target_w / width, target_h / height)
    return (max(1, round(width * scale)), max(1, round(height * scale)))


def full_slide_rect(slide_size: SlideSize) -> FrameRect:
    return FrameRect(0, 0, slide_size.width_emu, slide_size.height_emu)
