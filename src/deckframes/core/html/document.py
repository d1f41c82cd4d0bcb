"""
document.py — One scrollable HTML page per deck.

LibreOffice's whole-document HTML export supplies the text flow; the deck
itself supplies images, background colors and attachments:

  export.html -> body split into per-slide fragments (page-break h1 markers)
              -> per slide: background images absolutely positioned,
                 flow images inserted between text blocks
              -> repeated edge logos hoisted into one header
              -> attachments list, scale script, style block
"""
from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from deckframes.core.config import HtmlPageOptions
from deckframes.core.html.classify import find_logo_hashes, flow_insert_index, reading_order, split_image_layers
from deckframes.core.html.layout import (
    DeckLayout,
    HtmlAttachment,
    HtmlImageBlock,
    HtmlSlide,
    HtmlTextBlock,
    fmt_num,
    padding_style,
    read_deck_layout,
)
from deckframes.core.screenshot.converter import MODE_HTML, MODE_PDF, Converter, default_converter
from deckframes.core.utils.geometry import SlideSize, px_from_emu
from deckframes.core.utils.paths import ensure_empty_dir, html_relpath, require_pptx

logger = logging.getLogger(__name__)

PAGES_DIR_NAME = "htmlpage"
INDEX_NAME = "index.html"
FALLBACK_CANVAS_PX = (960.0, 540.0)

SLIDE_BREAK = "<!--SLIDE_BREAK-->"

_BODY_OPEN_RE = re.compile(r"<body[^>]*>", re.IGNORECASE)
_BODY_CLOSE_RE = re.compile(r"</body>", re.IGNORECASE)
_HEAD_CLOSE_RE = re.compile(r"</head>", re.IGNORECASE)
_EMPTY_P_RE = re.compile(r"<p>\s*(?:&nbsp;|&#160;|<br\s*/?>|\s)*</p>", re.IGNORECASE)
_PAGE_BREAK_H1_RE = re.compile(r"<h1[^>]*page-break-before[^>]*>(?P<content>.*?)</h1>", re.IGNORECASE | re.DOTALL)
_BLOCK_TAG_RE = re.compile(r"<(/?)(h[1-6]|p|ul|ol|table)[^>]*>", re.IGNORECASE)

_CONTAINER_TAGS = ("ul", "ol", "table")

_SCALE_SCRIPT = (
    "const updateScale=()=>{document.querySelectorAll('.slide').forEach(slide=>{"
    "const baseWidth=parseFloat(slide.dataset.baseWidth||'0');if(!baseWidth)return;"
    "const scale=slide.clientWidth/baseWidth;slide.style.setProperty('--scale',scale.toFixed(4));});};"
    "window.addEventListener('resize',updateScale);window.addEventListener('load',updateScale);updateScale();"
)

_CSS = """
<style>
  body { margin: 0; padding: 0; font-family: "Segoe UI", Arial, sans-serif; background: #ffffff; }
  .document { max-width: 1200px; margin: 0 auto; padding: 24px; display: block; }
  .slide { position: relative; width: 100%; overflow: hidden; margin-bottom: 32px; }
  .slide-background { position: absolute; inset: 0; z-index: 1; pointer-events: none; }
  .slide-content { position: relative; z-index: 2; }
  .pptx-flow-image { display: block; max-width: 100%; height: auto; margin: 0; }
  .pptx-abs-image { position: absolute; max-width: 100%; height: 100%; object-fit: contain; }
  .pptx-text { margin: 0 0 8px; }
  .pptx-list { margin: 0; }
  img { max-width: 100%; height: auto; }
  table { width: 100%; border-collapse: collapse; }
  td, th { vertical-align: top; }
  .logos { display: flex; flex-wrap: wrap; align-items: center; justify-content: center; gap: 16px; padding: 16px; margin-bottom: 24px; }
  .logos img { max-height: 120px; max-width: 40vw; height: auto; width: auto; object-fit: contain; }
  .attachments { padding: 16px 20px; }
  .attachments h2 { margin: 0 0 12px; font-size: 18px; }
  .attachments ul { margin: 0; padding-left: 20px; }
</style>
""".lstrip("\n")


@dataclass
class HtmlPageResult:
    input_path: str
    output_dir: str
    html_path: str
    pdf_path: str
    slide_count: int = 0
    image_files: List[str] = field(default_factory=list)

    @property
    def image_count(self) -> int:
        return len(self.image_files)


def _calc(px: float) -> str:
    return f"calc(var(--scale,1) * {fmt_num(px, 4)}px)"


# ---------------------------------------------------------------------------
# fragments
# ---------------------------------------------------------------------------


def remove_empty_paragraphs(markup: str) -> str:
    if not markup.strip():
        return markup
    return _EMPTY_P_RE.sub("", markup)


def split_slide_fragments(body_inner: str, slide_count: int) -> List[str]:
    """Cut the export body at page-break headings; exactly slide_count fragments when slide_count > 0."""

    def _marker(m: re.Match) -> str:
        content = m.group("content")
        if not content.strip():
            return SLIDE_BREAK
        return f"{SLIDE_BREAK}<h1>{content}</h1>"

    marked = _PAGE_BREAK_H1_RE.sub(_marker, remove_empty_paragraphs(body_inner))
    segments = marked.split(SLIDE_BREAK)

    if len(segments) < slide_count:
        segments.extend([""] * (slide_count - len(segments)))
    elif len(segments) > slide_count > 0:
        overflow = "".join(segments[slide_count:])
        segments = segments[:slide_count]
        segments[-1] += overflow
    return segments


def split_blocks(markup: str) -> List[str]:
    """Top-level blocks: each closed p/h1-6 outside a list or table, or a whole list/table."""
    blocks: List[str] = []
    if not markup.strip():
        return blocks

    last = 0
    current: List[str] = []
    depth = 0
    for m in _BLOCK_TAG_RE.finditer(markup):
        current.append(markup[last:m.end()])
        last = m.end()

        closing = m.group(1) == "/"
        tag = m.group(2).lower()
        if not closing:
            if tag in _CONTAINER_TAGS:
                depth += 1
            continue

        if tag in _CONTAINER_TAGS:
            depth = max(0, depth - 1)
            if depth == 0:
                blocks.append("".join(current))
                current = []
            continue

        if depth == 0:
            blocks.append("".join(current))
            current = []

    if last < len(markup):
        current.append(markup[last:])
    if current:
        blocks.append("".join(current))
    return blocks


# ---------------------------------------------------------------------------
# images
# ---------------------------------------------------------------------------


def flow_image_tag(image: HtmlImageBlock, base_dir: Path, alt: str) -> str:
    src = html.escape(html_relpath(image.file_path, base_dir), quote=True)
    style = (
        f"margin-left:{_calc(px_from_emu(image.rect.x))};"
        f"width:{_calc(px_from_emu(image.rect.cx))};"
        "max-width:100%;height:auto;display:block;"
    )
    return f'<img class="pptx-flow-image" src="{src}" alt="{alt}" loading="lazy" style="{style}">'


def absolute_image_tag(image: HtmlImageBlock, base_dir: Path, alt: str) -> str:
    src = html.escape(html_relpath(image.file_path, base_dir), quote=True)
    style = (
        f"left:{_calc(px_from_emu(image.rect.x))};"
        f"top:{_calc(px_from_emu(image.rect.y))};"
        f"width:{_calc(px_from_emu(image.rect.cx))};"
        f"height:{_calc(px_from_emu(image.rect.cy))};"
    )
    return f'<img class="pptx-abs-image" src="{src}" alt="{alt}" loading="lazy" style="{style}">'


def insert_flow_images(
    segment: str,
    images: Sequence[HtmlImageBlock],
    slide_size: SlideSize,
    base_dir: Path,
    alt: str,
) -> str:
    if not images:
        return segment

    blocks = split_blocks(segment)
    for image in reading_order(images):
        index = flow_insert_index(image.rect, slide_size, len(blocks))
        blocks.insert(index, flow_image_tag(image, base_dir, alt))
    return "".join(blocks)


def max_bottom_px(images: Sequence[HtmlImageBlock]) -> float:
    if not images:
        return 0.0
    return px_from_emu(max(im.rect.y + im.rect.cy for im in images))


def hoist_logos(layout: DeckLayout) -> Tuple[List[HtmlSlide], List[HtmlImageBlock]]:
    """Slides without repeated logos, plus one image per hoisted logo hash."""
    hashes = find_logo_hashes(layout.slides, layout.slide_size)
    if not hashes:
        return list(layout.slides), []

    logos: List[HtmlImageBlock] = []
    taken: set[str] = set()
    for slide in layout.slides:
        for im in slide.images:
            key = im.hash.lower()
            if key in hashes and key not in taken:
                taken.add(key)
                logos.append(im)

    slides = [
        HtmlSlide(
            index=s.index,
            text_blocks=s.text_blocks,
            images=[im for im in s.images if im.hash.lower() not in hashes],
            background_color=s.background_color,
        )
        for s in layout.slides
    ]
    logger.debug("hoisted %d logo(s)", len(logos))
    return slides, logos


# ---------------------------------------------------------------------------
# page
# ---------------------------------------------------------------------------


def text_blocks_html(blocks: Sequence[HtmlTextBlock]) -> str:
    """Fallback body for a slide the export left blank."""
    out: List[str] = []
    for b in reading_order(blocks):
        style = padding_style(b.padding)
        attr = f' style="{style}"' if style else ""
        out.append(f'<div class="pptx-text"{attr}>{b.html}</div>')
    return "".join(out)


def attachments_html(attachments: Sequence[HtmlAttachment], base_dir: Path) -> str:
    if not attachments:
        return ""
    items = sorted(attachments, key=lambda a: (a.slide_index, str(a.file_path).lower()))
    out = ['<section class="attachments">', "<h2>Attachments</h2>", "<ul>"]
    for a in items:
        href = html.escape(html_relpath(a.file_path, base_dir), quote=True)
        name = html.escape(a.file_path.name)
        out.append(f'<li><a href="{href}" target="_blank" rel="noopener">{name}</a> (slide {a.slide_index:03d})</li>')
    out.append("</ul>")
    out.append("</section>")
    return "".join(out)


def insert_style_block(markup: str, style_block: str) -> str:
    m = _HEAD_CLOSE_RE.search(markup)
    if m is None:
        return style_block + markup
    return markup[: m.start()] + style_block + markup[m.start():]


def build_page(
    source_html: str,
    title: str,
    base_dir: Path,
    slide_size: SlideSize,
    slides: Sequence[HtmlSlide],
    logos: Sequence[HtmlImageBlock] = (),
    attachments: Sequence[HtmlAttachment] = (),
) -> str:
    """Rebuild the export's <body>; returned unchanged when it has none."""
    body_open = _BODY_OPEN_RE.search(source_html)
    body_close = _BODY_CLOSE_RE.search(source_html)
    if body_open is None or body_close is None or body_close.start() <= body_open.start():
        return source_html

    if slide_size.known:
        width_px = px_from_emu(slide_size.width_emu)
        height_px = px_from_emu(slide_size.height_emu)
    else:
        width_px, height_px = FALLBACK_CANVAS_PX

    body_start = body_open.end()
    fragments = split_slide_fragments(source_html[body_start:body_close.start()], len(slides))
    alt = html.escape(title, quote=True)

    out: List[str] = ['<main class="document">']

    if logos:
        out.append('<header class="logos">')
        for logo in logos:
            src = html.escape(html_relpath(logo.file_path, base_dir), quote=True)
            out.append(f'<img src="{src}" alt="{alt} logo" loading="lazy">')
        out.append("</header>")

    for slide, fragment in zip(slides, fragments):
        background_images, flow_images = split_image_layers(slide.images, slide_size)
        if not fragment.strip():
            fragment = text_blocks_html(slide.text_blocks)
        content = insert_flow_images(fragment, flow_images, slide_size, base_dir, alt)

        background = slide.background_color or "#ffffff"
        bottom = max_bottom_px(background_images)
        min_height = f"min-height:{_calc(bottom)};" if bottom > 0 else ""

        out.append(
            f'<section class="slide" data-slide="{slide.index:03d}" '
            f'data-base-width="{fmt_num(width_px, 4)}" data-base-height="{fmt_num(height_px, 4)}" '
            f'style="background:{background};{min_height}">'
        )
        if background_images:
            out.append('<div class="slide-background">')
            out.extend(absolute_image_tag(im, base_dir, alt) for im in reading_order(background_images))
            out.append("</div>")
        out.append('<div class="slide-content">')
        out.append(content)
        out.append("</div>")
        out.append("</section>")

    out.append(attachments_html(attachments, base_dir))
    out.append("</main>")
    out.append(f"<script>{_SCALE_SCRIPT}</script>")

    rebuilt = source_html[:body_start] + "".join(out) + source_html[body_close.start():]
    return insert_style_block(rebuilt, _CSS)


def export_html_page(
    path: str | Path,
    options: Optional[HtmlPageOptions] = None,
    *,
    converter: Optional[Converter] = None,
) -> HtmlPageResult:
    """Write `<output_root>/<stem>/<stem>.pdf` and `<output_root>/<stem>/htmlpage/index.html`."""
    options = options or HtmlPageOptions()
    full = require_pptx(path)

    output_dir = Path(options.output_root).expanduser().resolve() / full.stem
    output_dir.mkdir(parents=True, exist_ok=True)
    pages_dir = ensure_empty_dir(output_dir / PAGES_DIR_NAME)

    layout = read_deck_layout(full, pages_dir / "images", pages_dir / "attachments")
    slides, logos = hoist_logos(layout)

    converter = converter or default_converter(options.soffice_path)
    pdf_path = converter.convert(full, output_dir, MODE_PDF, timeout_s=options.timeout_s)

    source_path = converter.convert(full, pages_dir, MODE_HTML, timeout_s=options.timeout_s)
    source_html = source_path.read_text(encoding="utf-8", errors="replace")

    page = build_page(
        source_html,
        full.stem,
        pages_dir,
        layout.slide_size,
        slides,
        logos,
        layout.attachments,
    )
    html_path = pages_dir / INDEX_NAME
    html_path.write_text(page, encoding="utf-8")
    logger.info("html page written: %s", html_path)

    return HtmlPageResult(
        input_path=str(full),
        output_dir=str(output_dir),
        html_path=str(html_path),
        pdf_path=str(pdf_path),
        slide_count=len(layout.slides),
        image_files=[str(p) for p in layout.image_files],
    )
