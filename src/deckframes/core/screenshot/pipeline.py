"""
pipeline.py — Slide screenshots and per-frame crops.

Two strategies produce one raster per slide:

  pdf   deck -> PDF (soffice) -> page N rendered (PyMuPDF) as slide N+1
  png   deck -> PNGs (soffice); when fewer files than slides come back,
        every slide is converted on its own (bounded thread pool, one
        soffice profile per slide, results written into index slots)

Each raster is then either cut into frame crops (slide-NNN-frameKK.jpg) or,
when no crop is usable, saved whole (slide-NNN-screenshot.jpg).
"""
from __future__ import annotations

import logging
import re
import shutil
import tempfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional, Sequence, Tuple

from PIL import Image

from deckframes.core.config import ScreenshotOptions
from deckframes.core.errors import EmptyConversionError
from deckframes.core.manifest.frames import KIND_FRAME, KIND_SLIDE, FrameScreenshotInfo
from deckframes.core.screenshot.converter import (
    MODE_PDF,
    MODE_PNG,
    Converter,
    Rasterizer,
    produced_files,
)
from deckframes.core.screenshot.deck_prep import prepare_for_screenshots, single_slide_copy
from deckframes.core.utils.geometry import (
    FrameRect,
    SlideSize,
    fit_within,
    pixel_rect_for_frame,
    resolve_raster_dpi,
)

logger = logging.getLogger(__name__)

TEMP_PREFIX = "deckframes-"


@dataclass
class ScreenshotRun:
    expected: int
    files: List[Path] = field(default_factory=list)
    frames: List[FrameScreenshotInfo] = field(default_factory=list)


def pdf_timeout_s(slide_count: int) -> int:
    return max(60, slide_count * 5)


def png_timeout_s(slide_count: int) -> int:
    return max(60, slide_count * 10)


def screenshot_name(slide_index: int) -> str:
    return f"slide-{slide_index:03d}-screenshot.jpg"


def frame_name(slide_index: int, frame_index: int) -> str:
    return f"slide-{slide_index:03d}-frame{frame_index:02d}.jpg"


# ---------------------------------------------------------------------------
# image helpers
# ---------------------------------------------------------------------------


def _to_rgb(image: Image.Image) -> Image.Image:
    if image.mode == "RGB":
        return image
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        bg = Image.new("RGB", rgba.size, (255, 255, 255))
        bg.paste(rgba, mask=rgba.split()[-1])
        return bg
    return image.convert("RGB")


def resize_to_fit(
    image: Image.Image,
    max_width: Optional[int],
    max_height: Optional[int],
    allow_upscale: bool = False,
) -> Image.Image:
    w, h = fit_within(image.width, image.height, max_width, max_height, allow_upscale)
    if (w, h) == (image.width, image.height):
        return image
    return image.resize((w, h), Image.Resampling.LANCZOS)


def save_jpeg(image: Image.Image, dest: Path, quality: int) -> Path:
    _to_rgb(image).save(str(dest), "JPEG", quality=quality)
    return dest


# ---------------------------------------------------------------------------
# per-slide output
# ---------------------------------------------------------------------------


def save_frame_screenshots(
    image: Image.Image,
    screenshots_dir: Path,
    slide_index: int,
    frames: Sequence[FrameRect],
    slide_size: SlideSize,
    options: ScreenshotOptions,
) -> List[FrameScreenshotInfo]:
    saved: List[FrameScreenshotInfo] = []
    frame_index = 0
    for frame in frames:
        rect = pixel_rect_for_frame(frame, image.width, image.height, slide_size)
        if rect is None:
            continue

        frame_index += 1
        crop = image.crop(rect.box())
        crop = resize_to_fit(
            crop,
            options.effective_frame_max_width,
            options.effective_frame_max_height,
            options.frame_allow_upscale,
        )
        name = frame_name(slide_index, frame_index)
        save_jpeg(crop, screenshots_dir / name, options.jpeg_quality)
        saved.append(
            FrameScreenshotInfo(
                slide_index=slide_index,
                frame_index=frame_index,
                file_path=name,
                x=frame.x,
                y=frame.y,
                cx=frame.cx,
                cy=frame.cy,
                kind=KIND_FRAME,
            )
        )
    return saved


def _save_slide_raster(
    image: Image.Image,
    slide_index: int,
    screenshots_dir: Path,
    options: ScreenshotOptions,
    frames_by_slide: Optional[Mapping[int, Sequence[FrameRect]]],
    slide_size: Optional[SlideSize],
    run: ScreenshotRun,
) -> None:
    if options.per_frame and frames_by_slide is not None and slide_size is not None:
        frames = frames_by_slide.get(slide_index) or ()
        if frames:
            infos = save_frame_screenshots(image, screenshots_dir, slide_index, frames, slide_size, options)
            if infos:
                run.files.extend(screenshots_dir / i.file_path for i in infos)
                run.frames.extend(infos)
                return

    name = screenshot_name(slide_index)
    whole = resize_to_fit(image, options.max_width, options.max_height, allow_upscale=False)
    save_jpeg(whole, screenshots_dir / name, options.jpeg_quality)
    run.files.append(screenshots_dir / name)

    if slide_size is not None and slide_size.known:
        run.frames.append(
            FrameScreenshotInfo(
                slide_index=slide_index,
                frame_index=0,
                file_path=name,
                x=0,
                y=0,
                cx=slide_size.width_emu,
                cy=slide_size.height_emu,
                kind=KIND_SLIDE,
            )
        )


# ---------------------------------------------------------------------------
# file ordering for the png strategy
# ---------------------------------------------------------------------------

_TRAILING_NUMBER_RE = re.compile(r"(\d+)$")


def _trailing_number(name: str) -> Optional[int]:
    m = _TRAILING_NUMBER_RE.search(name)
    return int(m.group(1)) if m else None


def order_converted_slides(files: Sequence[Path], base_name: str) -> List[Path]:
    """Order soffice PNG output by the slide number encoded in the file name.

    `<base>` is slide 1; `<base>_N` / `<base>-N` is slide N (N+1 when the bare
    `<base>` file exists too); other names use a trailing number. Files without
    a number go last, sorted by name.
    """
    if len(files) <= 1:
        return list(files)

    base = base_name.lower()
    has_base = any(f.stem.lower() == base for f in files)

    indexed: List[tuple[int, Path]] = []
    unindexed: List[Path] = []
    for f in files:
        stem = f.stem
        low = stem.lower()
        index: Optional[int] = None
        if low == base:
            index = 1
        elif low.startswith(base):
            rest = stem[len(base_name):]
            if len(rest) > 1 and rest[0] in "_-" and rest[1:].isdigit():
                n = int(rest[1:])
                index = n + 1 if has_base else n
        else:
            index = _trailing_number(stem)

        if index is None:
            unindexed.append(f)
        else:
            indexed.append((index, f))

    indexed.sort(key=lambda t: t[0])
    unindexed.sort(key=lambda p: str(p).lower())
    return [f for _, f in indexed] + unindexed


# ---------------------------------------------------------------------------
# strategies
# ---------------------------------------------------------------------------


def convert_slides_individually(
    converter: Converter,
    prepared: Path,
    temp_dir: Path,
    expected_slides: int,
    timeout_s: float,
    parallelism: int,
) -> List[Tuple[int, Path]]:
    """One soffice run per slide -> (slide_index, png) pairs; slides without output are left out."""
    slots: List[Optional[Path]] = [None] * expected_slides

    def _one(slide_index: int) -> None:
        single = single_slide_copy(prepared, temp_dir, slide_index)
        out_dir = temp_dir / f"single-{slide_index:03d}"
        profile_dir = temp_dir / f"profile-{slide_index:03d}"
        profile_dir.mkdir(parents=True, exist_ok=True)
        try:
            produced = converter.convert(single, out_dir, MODE_PNG, timeout_s=timeout_s, profile_dir=profile_dir)
        except EmptyConversionError:
            logger.warning("slide %d: no PNG produced", slide_index)
            return
        slots[slide_index - 1] = produced

    with ThreadPoolExecutor(max_workers=max(1, parallelism)) as pool:
        futures = [pool.submit(_one, i) for i in range(1, expected_slides + 1)]
        for fut in futures:
            fut.result()

    return [(i, p) for i, p in enumerate(slots, start=1) if p is not None]


def _run_pdf(
    prepared: Path,
    temp_dir: Path,
    screenshots_dir: Path,
    converter: Converter,
    rasterizer: Rasterizer,
    options: ScreenshotOptions,
    frames_by_slide: Optional[Mapping[int, Sequence[FrameRect]]],
    slide_size: Optional[SlideSize],
    run: ScreenshotRun,
) -> None:
    pdf_path = converter.convert(prepared, temp_dir / "pdf", MODE_PDF, timeout_s=pdf_timeout_s(run.expected))
    dpi = resolve_raster_dpi(options.pdf_dpi, slide_size, options.max_width, options.max_height)
    pages = rasterizer.page_count(pdf_path)
    logger.info("rendering %d page(s) at %d dpi", pages, dpi)

    for page in range(pages):
        image = rasterizer.render_page(pdf_path, page, dpi)
        _save_slide_raster(image, page + 1, screenshots_dir, options, frames_by_slide, slide_size, run)


def _run_png(
    prepared: Path,
    temp_dir: Path,
    screenshots_dir: Path,
    converter: Converter,
    options: ScreenshotOptions,
    frames_by_slide: Optional[Mapping[int, Sequence[FrameRect]]],
    slide_size: Optional[SlideSize],
    run: ScreenshotRun,
) -> None:
    timeout_s = png_timeout_s(run.expected)
    out_dir = temp_dir / "out"
    try:
        converter.convert(prepared, out_dir, MODE_PNG, timeout_s=timeout_s)
        png_files = produced_files(out_dir, MODE_PNG)
    except EmptyConversionError:
        png_files = []

    if run.expected > 0 and len(png_files) < run.expected:
        logger.info(
            "soffice produced %d PNG(s) for %d slide(s); converting slides one by one",
            len(png_files),
            run.expected,
        )
        indexed = convert_slides_individually(
            converter, prepared, temp_dir, run.expected, timeout_s, options.parallelism
        )
    else:
        indexed = list(enumerate(order_converted_slides(png_files, prepared.stem), start=1))

    for index, png in indexed:
        with Image.open(png) as im:
            image = _to_rgb(im.copy())
        _save_slide_raster(image, index, screenshots_dir, options, frames_by_slide, slide_size, run)


def capture_screenshots(
    pptx_path: Path,
    screenshots_dir: Path,
    *,
    converter: Converter,
    rasterizer: Rasterizer,
    expected_slides: int,
    options: ScreenshotOptions,
    frames_by_slide: Optional[Mapping[int, Sequence[FrameRect]]] = None,
    slide_size: Optional[SlideSize] = None,
) -> ScreenshotRun:
    """Render every slide of `pptx_path` into `screenshots_dir`.

    Frame entries in the result carry file names relative to `screenshots_dir`.
    Converter failures propagate as ConverterError.
    """
    screenshots_dir.mkdir(parents=True, exist_ok=True)
    run = ScreenshotRun(expected=expected_slides)

    temp_dir = Path(tempfile.mkdtemp(prefix=TEMP_PREFIX))
    try:
        prepared = prepare_for_screenshots(pptx_path, temp_dir)
        if options.pipeline == MODE_PDF:
            _run_pdf(prepared, temp_dir, screenshots_dir, converter, rasterizer, options, frames_by_slide, slide_size, run)
        else:
            _run_png(prepared, temp_dir, screenshots_dir, converter, options, frames_by_slide, slide_size, run)
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    logger.info("screenshots: %d file(s), %d manifest entries", len(run.files), len(run.frames))
    return run
