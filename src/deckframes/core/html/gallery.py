from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence


from deckframes.core.config import HtmlExportOptions
from deckframes.core.extract.frame_extractor import extract_slide_frames, read_slide_size
from deckframes.core.manifest.frames import KIND_FRAME, KIND_SLIDE, FrameScreenshotInfo
from deckframes.core.screenshot.converter import Converter, PyMuPdfRasterizer, Rasterizer, default_converter
from deckframes.core.screenshot.pipeline import capture_screenshots
from deckframes.core.utils.paths import ensure_empty_dir, html_relpath, open_presentation, require_pptx

logger = logging.getLogger(__name__)

FRAMES_DIR_NAME = "frames"
INDEX_NAME = "index.html"

_FRAME_FILE_RE = re.compile(r"^slide-(\d{3})-frame(\d+)$", re.IGNORECASE)
_SCREENSHOT_FILE_RE = re.compile(r"^slide-(\d{3})-screenshot$", re.IGNORECASE)

_CSS = """
  <style>
    :root {
      --bg: #f5f3ee;
      --card: #ffffff;
      --border: #dedad4;
      --text: #1f1f1f;
      --muted: #6b6761;
      --gap: 16px;
    }
    * { box-sizing: border-box; }
    body {
      margin: 0;
      font-family: "Fira Sans", "Segoe UI", sans-serif;
      background: var(--bg);
      color: var(--text);
    }
    header { padding: 24px 24px 8px; }
    header h1 { margin: 0 0 6px; font-size: 28px; }
    header p { margin: 0; color: var(--muted); }
    main { padding: 0 24px 32px; }
    .doc-grid { display: grid; grid-template-columns: repeat(auto-fill, minmax(220px, 1fr)); gap: var(--gap); }
    .slide-break { grid-column: 1 / -1; margin-top: 12px; padding: 10px 12px; background: var(--card); border: 1px solid var(--border); border-radius: 10px; color: var(--muted); font-size: 14px; }
    .frame { background: #fff; border: 1px solid var(--border); border-radius: 10px; overflow: hidden; }
    .frame img { width: 100%; height: auto; display: block; }
    .empty { padding: 24px; background: var(--card); border: 1px dashed var(--border); border-radius: 12px; color: var(--muted); }
  </style>
""".strip("\n")


@dataclass
class GalleryResult:
    input_path: str
    output_dir: str
    html_path: str
    slide_count: int = 0
    frame_files: List[str] = field(default_factory=list)

    @property
    def frame_count(self) -> int:
        return len(self.frame_files)


def frames_from_file_names(files: Sequence[Path]) -> List[FrameScreenshotInfo]:
    """Recover entries from slide-NNN-frameKK / slide-NNN-screenshot names (no geometry)."""
    out: List[FrameScreenshotInfo] = []
    for f in files:
        stem = Path(f).stem
        m = _FRAME_FILE_RE.match(stem)
        if m:
            out.append(FrameScreenshotInfo(int(m.group(1)), int(m.group(2)), str(f), 0, 0, 0, 0, KIND_FRAME))
            continue
        m = _SCREENSHOT_FILE_RE.match(stem)
        if m:
            out.append(FrameScreenshotInfo(int(m.group(1)), 0, str(f), 0, 0, 0, 0, KIND_SLIDE))
    return out


def order_gallery_frames(
    frames: Sequence[FrameScreenshotInfo],
    files: Sequence[Path] = (),
) -> List[FrameScreenshotInfo]:
    """(slide, y, x, frameIndex) order; falls back to file names without metadata."""
    items = [f for f in frames if f.kind in (KIND_FRAME, KIND_SLIDE)]
    if not items and files:
        items = frames_from_file_names(files)
    return sorted(items, key=lambda f: (f.slide_index, f.y, f.x, f.frame_index))


def build_gallery_html(title: str, base_dir: Path, frames_dir: Path, frames: Sequence[FrameScreenshotInfo]) -> str:
    safe_title = html.escape(title)
    lines = [
        "<!doctype html>",
        '<html lang="en">',
        "<head>",
        '  <meta charset="utf-8">',
        '  <meta name="viewport" content="width=device-width, initial-scale=1">',
        f"  <title>{safe_title}</title>",
        _CSS,
        "</head>",
        "<body>",
        f"  <header><h1>{safe_title}</h1><p>Generated from PPTX frames</p></header>",
        "  <main>",
    ]

    if not frames:
        lines.append('    <div class="empty">No frames were exported.</div>')
    else:
        lines.append('    <div class="doc-grid">')
        current: Optional[int] = None
        for f in frames:
            if f.slide_index != current:
                current = f.slide_index
                lines.append(f'      <div class="slide-break">Slide {current:03d}</div>')

            src = html.escape(html_relpath(frames_dir / f.file_path, base_dir), quote=True)
            alt = f"Slide {f.slide_index:03d} frame {f.frame_index:02d}"
            lines.append(f'      <div class="frame" data-slide="{f.slide_index:03d}" data-frame="{f.frame_index:02d}">')
            lines.append(f'        <img src="{src}" alt="{alt}" loading="lazy">')
            lines.append("      </div>")
        lines.append("    </div>")

    lines += ["  </main>", "</body>", "</html>"]
    return "\n".join(lines) + "\n"


def export_frames_html(
    path: str | Path,
    options: Optional[HtmlExportOptions] = None,
    *,
    converter: Optional[Converter] = None,
    rasterizer: Optional[Rasterizer] = None,
) -> GalleryResult:
    """Frame crops of every slide into `<output_root>/<stem>/frames/` plus an index.html grid."""
    options = options or HtmlExportOptions()
    full = require_pptx(path)
    prs = open_presentation(full)

    output_dir = Path(options.output_root).expanduser().resolve() / full.stem
    output_dir.mkdir(parents=True, exist_ok=True)
    frames_dir = ensure_empty_dir(output_dir / FRAMES_DIR_NAME)

    slide_count = len(prs.slides)
    slide_size = read_slide_size(prs)
    frames_by_slide = extract_slide_frames(prs)

    run = capture_screenshots(
        full,
        frames_dir,
        converter=converter or default_converter(options.soffice_path),
        rasterizer=rasterizer or PyMuPdfRasterizer(),
        expected_slides=slide_count,
        options=options.screenshots,
        frames_by_slide=frames_by_slide,
        slide_size=slide_size,
    )

    ordered = order_gallery_frames(run.frames, run.files)
    html_path = output_dir / INDEX_NAME
    html_path.write_text(build_gallery_html(full.stem, output_dir, frames_dir, ordered), encoding="utf-8")
    logger.info("gallery written: %s (%d frame(s))", html_path, len(ordered))

    return GalleryResult(
        input_path=str(full),
        output_dir=str(output_dir),
        html_path=str(html_path),
        slide_count=slide_count,
        frame_files=[str(frames_dir / f.file_path) for f in ordered],
    )
