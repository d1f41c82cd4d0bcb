from __future__ import annotations

import logging
import zipfile
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from pptx.oxml.ns import qn
from pptx.parts.image import ImagePart
from tqdm import tqdm

from deckframes.core.config import ExtractOptions
from deckframes.core.errors import ValidationError
from deckframes.core.extract.frame_extractor import extract_slide_frames, read_slide_size
from deckframes.core.manifest.frames import MANIFEST_NAME, build_manifest, write_manifest
from deckframes.core.screenshot.converter import Converter, PyMuPdfRasterizer, Rasterizer, default_converter
from deckframes.core.screenshot.pipeline import capture_screenshots
from deckframes.core.utils.paths import open_presentation, part_extension, require_pptx

logger = logging.getLogger(__name__)

# Archive folders copied verbatim into attachments/ (path kept relative to ppt/).
_ARCHIVE_ATTACHMENT_PREFIXES = ("ppt/embeddings/", "ppt/linkedmedia/")


@dataclass
class ExtractResult:
    input_path: str
    output_dir: str
    slide_count: int = 0
    text_files_written: int = 0
    attachment_files: List[str] = field(default_factory=list)
    screenshot_expected: int = 0
    screenshot_files: List[str] = field(default_factory=list)
    frame_metadata_count: int = 0
    frame_metadata_file: Optional[str] = None

    @property
    def attachment_count(self) -> int:
        return len(self.attachment_files)

    @property
    def screenshot_exported(self) -> int:
        return len(self.screenshot_files)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["attachment_count"] = self.attachment_count
        d["screenshot_exported"] = self.screenshot_exported
        return d


@dataclass
class ExtractItemResult:
    input_path: str
    success: bool
    error: Optional[str] = None
    result: Optional[ExtractResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "input_path": self.input_path,
            "success": self.success,
            "error": self.error,
            "result": self.result.to_dict() if self.result is not None else None,
        }


@dataclass
class ExtractBatchResult:
    items: List[ExtractItemResult] = field(default_factory=list)

    @property
    def requested(self) -> int:
        return len(self.items)

    @property
    def succeeded(self) -> int:
        return sum(1 for i in self.items if i.success)

    @property
    def failed(self) -> int:
        return self.requested - self.succeeded

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requested": self.requested,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "items": [i.to_dict() for i in self.items],
        }


# ---------------------------------------------------------------------------
# slide content
# ---------------------------------------------------------------------------


def slide_text_lines(slide: Any) -> List[str]:
    """One stripped line per paragraph that has visible text (tables included)."""
    lines: List[str] = []
    for p in slide._element.iter(qn("a:p")):
        text = "".join(t.text or "" for t in p.iter(qn("a:t")))
        text = text.strip()
        if text:
            lines.append(text)
    return lines


def write_slide_images(slide: Any, slide_index: int, attachments_dir: Path) -> List[Path]:
    """Every a:blip image part the slide references, in document order."""
    saved: List[Path] = []
    image_index = 0
    for blip in slide._element.iter(qn("a:blip")):
        rId = blip.get(qn("r:embed"))
        if not rId:
            continue
        try:
            part = slide.part.related_part(rId)
        except KeyError:
            continue
        if not isinstance(part, ImagePart):
            continue

        image_index += 1
        dest = attachments_dir / f"slide-{slide_index:03d}-attachment{image_index}{part_extension(part, images=True)}"
        dest.write_bytes(part.blob)
        saved.append(dest)
    return saved


def write_archive_attachments(pptx_path: Path, attachments_dir: Path) -> List[Path]:
    """Copy ppt/embeddings/* and ppt/linkedMedia/* out of the zip container."""
    saved: List[Path] = []
    root = attachments_dir.resolve()
    with zipfile.ZipFile(pptx_path, "r") as zf:
        for info in zf.infolist():
            if info.is_dir():
                continue
            name = info.filename
            if not name.lower().startswith(_ARCHIVE_ATTACHMENT_PREFIXES):
                continue

            dest = (attachments_dir / name[len("ppt/"):]).resolve()
            if root not in dest.parents:
                logger.warning("%s: archive member outside attachments/ skipped: %s", pptx_path.name, name)
                continue
            dest.parent.mkdir(parents=True, exist_ok=True)
            dest.write_bytes(zf.read(info))
            saved.append(dest)
    return saved


# ---------------------------------------------------------------------------
# single / batch
# ---------------------------------------------------------------------------


def extract_pptx(
    path: str | Path,
    options: Optional[ExtractOptions] = None,
    *,
    converter: Optional[Converter] = None,
    rasterizer: Optional[Rasterizer] = None,
) -> ExtractResult:
    """Decompose one deck into `<dir>/<stem>/{texts,attachments,screenshots}`."""
    options = options or ExtractOptions()
    full = require_pptx(path)
    prs = open_presentation(full)

    out_dir = full.parent / full.stem
    texts_dir = out_dir / "texts"
    attachments_dir = out_dir / "attachments"
    screenshots_dir = out_dir / "screenshots"
    for d in (texts_dir, attachments_dir, screenshots_dir):
        d.mkdir(parents=True, exist_ok=True)

    result = ExtractResult(input_path=str(full), output_dir=str(out_dir))

    slide_size = read_slide_size(prs)
    frames_by_slide = extract_slide_frames(prs) if options.screenshots.per_frame else None

    for slide_index, slide in enumerate(prs.slides, start=1):
        result.slide_count = slide_index

        lines = slide_text_lines(slide)
        (texts_dir / f"slide-{slide_index:03d}.txt").write_text(
            "".join(line + "\n" for line in lines), encoding="utf-8"
        )
        result.text_files_written += 1

        result.attachment_files.extend(str(p) for p in write_slide_images(slide, slide_index, attachments_dir))

    result.attachment_files.extend(str(p) for p in write_archive_attachments(full, attachments_dir))
    logger.info(
        "%s: %d slide(s), %d attachment(s)", full.name, result.slide_count, result.attachment_count
    )

    if options.generate_screenshots:
        result.screenshot_expected = result.slide_count
        run = capture_screenshots(
            full,
            screenshots_dir,
            converter=converter or default_converter(options.soffice_path),
            rasterizer=rasterizer or PyMuPdfRasterizer(),
            expected_slides=result.slide_count,
            options=options.screenshots,
            frames_by_slide=frames_by_slide,
            slide_size=slide_size,
        )
        result.screenshot_files = [str(p) for p in run.files]

        if run.frames and slide_size.known:
            manifest_path = write_manifest(screenshots_dir / MANIFEST_NAME, build_manifest(slide_size, run.frames))
            result.frame_metadata_count = len(run.frames)
            result.frame_metadata_file = str(manifest_path)

    return result


def collect_pptx_paths(
    path: Optional[str] = None,
    paths: Optional[Iterable[str]] = None,
    directory: Optional[str] = None,
    directories: Optional[Iterable[str]] = None,
) -> List[str]:
    """Flatten the requested inputs; duplicates dropped case-insensitively, first wins."""
    found: List[str] = []

    if path and path.strip():
        found.append(path.strip())
    for p in paths or ():
        if p and p.strip():
            found.append(p.strip())

    dirs = [d for d in ([directory] if directory else []) + list(directories or ()) if d and d.strip()]
    for d in dirs:
        full = Path(d.strip()).expanduser().resolve()
        if not full.is_dir():
            raise ValidationError(f"Directory not found: {full}")
        found.extend(
            str(f) for f in sorted(full.rglob("*")) if f.is_file() and f.suffix.lower() == ".pptx"
        )

    seen: set[str] = set()
    unique: List[str] = []
    for f in found:
        key = f.lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(f)

    if not unique:
        if dirs:
            raise ValidationError("No .pptx files found in the provided directory.")
        raise ValidationError("Provide a non-empty path, paths, directory, or directories value.")
    return unique


def extract_batch(
    paths: Sequence[str],
    options: Optional[ExtractOptions] = None,
    *,
    converter: Optional[Converter] = None,
    rasterizer: Optional[Rasterizer] = None,
    progress: bool = False,
) -> ExtractBatchResult:
    """Extract each path independently; one failure never stops the rest."""
    batch = ExtractBatchResult()
    for p in tqdm(paths, desc="extract", unit="deck", disable=not progress):
        try:
            res = extract_pptx(p, options, converter=converter, rasterizer=rasterizer)
        except Exception as e:
            logger.error("extraction failed for %s: %s", p, e)
            batch.items.append(ExtractItemResult(input_path=p, success=False, error=str(e)))
            continue
        batch.items.append(ExtractItemResult(input_path=p, success=True, result=res))

    logger.info("batch: %d requested, %d succeeded, %d failed", batch.requested, batch.succeeded, batch.failed)
    return batch
