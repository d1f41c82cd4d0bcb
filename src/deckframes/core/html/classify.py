"""
classify.py — Where an image goes on the reconstructed page.

- background: covers most of the slide (drawn absolutely behind the content)
- flow:       everything else, inserted between text blocks by vertical center
- logo:       small, edge-anchored, repeated on several slides (hoisted once)
"""
from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List, Sequence, Set, Tuple, TypeVar

from deckframes.core.utils.geometry import FrameRect, SlideSize

BACKGROUND_WIDTH_RATIO = 0.9
BACKGROUND_HEIGHT_RATIO = 0.9
BACKGROUND_AREA_RATIO = 0.7

LOGO_MAX_RATIO = 0.25
LOGO_EDGE_RATIO = 0.10

T = TypeVar("T")


def is_background_image(rect: FrameRect, slide_size: SlideSize) -> bool:
    width = max(1, slide_size.width_emu)
    height = max(1, slide_size.height_emu)
    area = float(width) * height

    width_ratio = rect.cx / width
    height_ratio = rect.cy / height
    area_ratio = (rect.cx * float(rect.cy)) / area

    return (
        width_ratio >= BACKGROUND_WIDTH_RATIO
        or height_ratio >= BACKGROUND_HEIGHT_RATIO
        or area_ratio >= BACKGROUND_AREA_RATIO
    )


def is_logo_candidate(rect: FrameRect, slide_size: SlideSize) -> bool:
    if not slide_size.known:
        return True

    w = slide_size.width_emu
    h = slide_size.height_emu
    if rect.cx / w > LOGO_MAX_RATIO or rect.cy / h > LOGO_MAX_RATIO:
        return False

    edge_x = w * LOGO_EDGE_RATIO
    edge_y = h * LOGO_EDGE_RATIO

    left = rect.x <= edge_x
    right = rect.x + rect.cx >= w - edge_x
    top = rect.y <= edge_y
    bottom = rect.y + rect.cy >= h - edge_y

    return (top or bottom) and (left or right)


def reading_order(images: Iterable[T]) -> List[T]:
    """Top-to-bottom, then left-to-right."""
    return sorted(images, key=lambda im: (im.rect.y, im.rect.x))  # type: ignore[attr-defined]


def split_image_layers(images: Sequence[T], slide_size: SlideSize) -> Tuple[List[T], List[T]]:
    """(background, flow), each keeping input order."""
    background: List[T] = []
    flow: List[T] = []
    for im in images:
        if is_background_image(im.rect, slide_size):  # type: ignore[attr-defined]
            background.append(im)
        else:
            flow.append(im)
    return background, flow


def _round_half_up(v: float) -> int:
    return int(math.floor(v + 0.5)) if v >= 0 else -int(math.floor(-v + 0.5))


def flow_insert_index(rect: FrameRect, slide_size: SlideSize, block_count: int) -> int:
    """Block position for a flow image, from its vertical center."""
    if block_count <= 0:
        return 0
    height = max(1, slide_size.height_emu)
    ratio = (rect.y + rect.cy / 2.0) / height
    index = _round_half_up(ratio * block_count)
    return max(0, min(block_count, index))


def find_logo_hashes(slides: Sequence[Any], slide_size: SlideSize) -> Set[str]:
    """Hashes of logo-candidate images that appear on at least two distinct slides.

    Each slide needs `.index` and `.images`; each image `.rect` and `.hash`.
    """
    seen: Dict[str, Set[int]] = {}
    for slide in slides:
        for im in slide.images:
            if not is_logo_candidate(im.rect, slide_size):
                continue
            seen.setdefault(im.hash.lower(), set()).add(slide.index)
    return {h for h, where in seen.items() if len(where) > 1}
