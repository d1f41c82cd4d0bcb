"""
pptx_rebuilder.py — Build a new deck from frames.json.

- one blank slide per slide index (1..max slideIndex), canvas = manifest size
- per slide: "frame" entries in frameIndex order; with none, the whole-slide
  screenshot ("slide" entries) when the fallback is on
- every picture placed at its recorded EMU rect, never rescaled
- image files that no longer exist are skipped
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from pptx import Presentation
from pptx.util import Emu

from deckframes.core.errors import NotFoundError, ValidationError
from deckframes.core.manifest.frames import KIND_FRAME, KIND_SLIDE, FrameScreenshotInfo, read_manifest

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_NAME = "rebuilt.pptx"
BLANK_LAYOUT_INDEX = 6  # "Blank" in the python-pptx default template


@dataclass(frozen=True)
class RebuildResult:
    output_path: str
    slide_count: int
    item_count: int
    placed_count: int = 0


def resolve_image_path(file_path: str, manifest_path: Path) -> Path:
    p = Path(file_path)
    if p.is_absolute():
        return p
    return (manifest_path.parent / p).resolve()


def select_entries(entries: List[FrameScreenshotInfo], use_slide_fallback: bool) -> List[FrameScreenshotInfo]:
    """Frame crops first; whole-slide screenshots only when a slide has no crops."""
    frames = sorted((e for e in entries if e.kind == KIND_FRAME), key=lambda e: e.frame_index)
    if frames:
        return frames
    if not use_slide_fallback:
        return []
    return sorted((e for e in entries if e.kind == KIND_SLIDE), key=lambda e: e.frame_index)


def rebuild_from_frames(
    frames_json_path: str | Path | None,
    output_path: str | Path | None = None,
    *,
    overwrite: bool = False,
    use_slide_fallback: bool = True,
) -> RebuildResult:
    if frames_json_path is None or not str(frames_json_path).strip():
        raise ValidationError("frames.json path must be provided.")

    manifest_path = Path(str(frames_json_path).strip()).expanduser().resolve()
    if not manifest_path.is_file():
        raise NotFoundError("frames.json not found.", manifest_path)

    manifest = read_manifest(manifest_path)

    if output_path is None or not str(output_path).strip():
        out = manifest_path.parent / DEFAULT_OUTPUT_NAME
    else:
        out = Path(str(output_path).strip()).expanduser().resolve()

    if out.exists():
        if not overwrite:
            raise ValidationError(f"Output file already exists: {out}")
        out.unlink()

    entries = list(manifest.frames)
    slide_count = max((e.slide_index for e in entries), default=0)

    prs = Presentation()
    if manifest.slide_size.known:
        prs.slide_width = Emu(manifest.slide_width_emu)
        prs.slide_height = Emu(manifest.slide_height_emu)

    layout = prs.slide_layouts[BLANK_LAYOUT_INDEX]
    slides = {i: prs.slides.add_slide(layout) for i in range(1, slide_count + 1)}

    by_slide: Dict[int, List[FrameScreenshotInfo]] = defaultdict(list)
    for e in entries:
        by_slide[e.slide_index].append(e)

    placed = 0
    for slide_index in sorted(by_slide):
        slide = slides.get(slide_index)
        if slide is None:
            continue

        for e in select_entries(by_slide[slide_index], use_slide_fallback):
            img = resolve_image_path(e.file_path, manifest_path)
            if not img.is_file():
                logger.warning("slide %d: image not found, skipped: %s", slide_index, img)
                continue
            pic = slide.shapes.add_picture(str(img), Emu(e.x), Emu(e.y), width=Emu(e.cx), height=Emu(e.cy))
            pic.name = img.name
            placed += 1

    out.parent.mkdir(parents=True, exist_ok=True)
    prs.save(str(out))
    logger.info("rebuilt %s: %d slide(s), %d picture(s) from %d entries", out, slide_count, placed, len(entries))

    return RebuildResult(
        output_path=str(out),
        slide_count=slide_count,
        item_count=len(entries),
        placed_count=placed,
    )


def rebuild_summary(result: RebuildResult, manifest_path: Optional[Path] = None) -> str:
    src = f" from {manifest_path}" if manifest_path is not None else ""
    return f"{result.output_path}{src} (slides={result.slide_count}, items={result.item_count}, placed={result.placed_count})"
