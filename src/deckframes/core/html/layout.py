"""
layout.py — Read what the HTML page needs from each slide.

Text bodies are rendered to HTML fragments (runs, fields, breaks, lists,
paragraph spacing), pictures are stored once per content hash under
images/, and embedded packages / OLE objects are copied to attachments/.
All lengths are emitted as `calc(var(--scale,1) * Npx)` so a page script can
scale each slide to its rendered width.
"""
from __future__ import annotations

import hashlib
import html
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from pptx.opc.constants import RELATIONSHIP_TYPE as RT
from pptx.oxml.ns import qn
from pptx.parts.image import ImagePart

from deckframes.core.extract.frame_extractor import frame_from_element, read_slide_size
from deckframes.core.html.theme import load_theme_colors, normalize_token, resolve_scheme_color
from deckframes.core.utils.geometry import FrameRect, SlideSize, px_from_emu, px_from_hundredth_point
from deckframes.core.utils.paths import open_presentation, part_extension

logger = logging.getLogger(__name__)

DEFAULT_FONT_PX = 16.0
DEFAULT_TEXT_COLOR = "#000000"
LEVEL_INDENT_PX = 24.0
ASSET_HASH_CHARS = 12

_ATTACHMENT_RELTYPES = (RT.PACKAGE, RT.OLE_OBJECT)


@dataclass(frozen=True)
class HtmlPadding:
    left_px: float = 0.0
    top_px: float = 0.0
    right_px: float = 0.0
    bottom_px: float = 0.0


@dataclass(frozen=True)
class HtmlTextBlock:
    rect: FrameRect
    padding: HtmlPadding
    html: str


@dataclass(frozen=True)
class HtmlImageBlock:
    rect: FrameRect
    file_path: Path
    hash: str


@dataclass(frozen=True)
class HtmlAttachment:
    slide_index: int
    file_path: Path


@dataclass
class HtmlSlide:
    index: int
    text_blocks: List[HtmlTextBlock] = field(default_factory=list)
    images: List[HtmlImageBlock] = field(default_factory=list)
    background_color: Optional[str] = None


@dataclass
class DeckLayout:
    slide_size: SlideSize
    slides: List[HtmlSlide] = field(default_factory=list)
    attachments: List[HtmlAttachment] = field(default_factory=list)
    image_files: List[Path] = field(default_factory=list)


# ---------------------------------------------------------------------------
# small helpers
# ---------------------------------------------------------------------------


def fmt_num(value: float, digits: int = 3) -> str:
    """Fixed-point with trailing zeros dropped: 21.3333 -> '21.333', 24.0 -> '24'."""
    s = f"{value:.{digits}f}".rstrip("0").rstrip(".")
    return "0" if s in ("", "-0") else s


def scaled_px(px: float) -> str:
    return f"calc(var(--scale,1) * {fmt_num(px)}px)"


def _str_attr(el: Any, name: str) -> Optional[str]:
    if el is None:
        return None
    v = el.get(name)
    if v is None or not str(v).strip():
        return None
    return str(v)


def _int_attr(el: Any, name: str) -> Optional[int]:
    v = _str_attr(el, name)
    if v is None:
        return None
    try:
        return int(v)
    except ValueError:
        return None


def _bool_attr(el: Any, name: str) -> Optional[bool]:
    v = _str_attr(el, name)
    if v is None:
        return None
    if v == "1":
        return True
    if v == "0":
        return False
    low = v.strip().lower()
    if low in ("true", "false"):
        return low == "true"
    return None


def _style_attr(style: str) -> str:
    return html.escape(style, quote=False).replace('"', "&quot;")


def _child(el: Any, tag: str) -> Any:
    return None if el is None else el.find(qn(tag))


def solid_fill_color(el: Any, theme: Optional[Dict[str, str]]) -> Optional[str]:
    """'#RRGGBB' from el/a:solidFill (srgbClr, else schemeClr via theme)."""
    fill = _child(el, "a:solidFill")
    if fill is None:
        return None

    srgb = _child(fill, "a:srgbClr")
    if srgb is not None:
        hex_ = _str_attr(srgb, "val")
        return f"#{hex_}" if hex_ else None

    scheme = _child(fill, "a:schemeClr")
    if scheme is not None:
        hex_ = resolve_scheme_color(_str_attr(scheme, "val"), theme)
        return f"#{hex_}" if hex_ else None

    return None


# ---------------------------------------------------------------------------
# runs
# ---------------------------------------------------------------------------


def _typeface(props: Any) -> Optional[str]:
    if props is None:
        return None
    return _str_attr(_child(props, "a:latin"), "typeface") or _str_attr(_child(props, "a:ea"), "typeface")


def run_style(rpr: Any, def_rpr: Any, theme: Optional[Dict[str, str]]) -> str:
    """Inline CSS for one run; each property falls back to the paragraph's a:defRPr."""
    sz = _int_attr(rpr, "sz")
    if sz is None:
        sz = _int_attr(def_rpr, "sz")
    font_px = px_from_hundredth_point(sz) if sz is not None and sz > 0 else DEFAULT_FONT_PX

    family = _typeface(rpr) or _typeface(def_rpr)
    if family is not None and family.startswith("+"):
        family = None  # theme font reference (+mj-lt / +mn-lt)

    fill_owner = rpr if _child(rpr, "a:solidFill") is not None else def_rpr
    color = solid_fill_color(fill_owner, theme) or DEFAULT_TEXT_COLOR

    bold = _bool_attr(rpr, "b")
    if bold is None:
        bold = _bool_attr(def_rpr, "b") or False
    italic = _bool_attr(rpr, "i")
    if italic is None:
        italic = _bool_attr(def_rpr, "i") or False
    underline = normalize_token(_str_attr(rpr, "u") or _str_attr(def_rpr, "u"))

    parts: List[str] = []
    if family:
        parts.append(f"font-family:'{family}', 'Segoe UI', sans-serif")
    if font_px > 0:
        parts.append(f"font-size:{scaled_px(font_px)}")
    parts.append(f"color:{color}")
    if bold:
        parts.append("font-weight:700")
    if italic:
        parts.append("font-style:italic")
    if underline and underline not in ("none", "false", "0"):
        parts.append("text-decoration:underline")
    return ";".join(parts)


def _run_html(el: Any, def_rpr: Any, theme: Optional[Dict[str, str]]) -> str:
    text = "".join(t.text or "" for t in el.iter(qn("a:t")))
    if not text.strip():
        return ""
    encoded = html.escape(text, quote=True)
    style = run_style(_child(el, "a:rPr"), def_rpr, theme)
    if not style:
        return encoded
    return f'<span style="{_style_attr(style)}">{encoded}</span>'


def paragraph_runs_html(p: Any, def_rpr: Any, theme: Optional[Dict[str, str]]) -> str:
    out: List[str] = []
    for child in p:
        if child.tag in (qn("a:r"), qn("a:fld")):
            out.append(_run_html(child, def_rpr, theme))
        elif child.tag == qn("a:br"):
            out.append("<br>")
    return "".join(out)


# ---------------------------------------------------------------------------
# paragraphs
# ---------------------------------------------------------------------------


def list_kind(ppr: Any) -> Optional[str]:
    """'ol' / 'ul' for bulleted paragraphs, None otherwise."""
    if ppr is None:
        return None
    if _child(ppr, "a:buNone") is not None:
        return None
    if _child(ppr, "a:buAutoNum") is not None:
        return "ol"
    if _child(ppr, "a:buChar") is not None or _child(ppr, "a:buBlip") is not None:
        return "ul"
    return None


def _map_alignment(value: Optional[str]) -> Optional[str]:
    token = normalize_token(value)
    if not token:
        return None
    if token in ("ctr", "center", "centre"):
        return "center"
    if token in ("r", "right"):
        return "right"
    if "just" in token or "dist" in token:
        return "justify"
    return "left"


def _spacing_style(spacing: Any, prop: str, pct_unit: str) -> Optional[str]:
    if spacing is None:
        return None
    pts = _int_attr(_child(spacing, "a:spcPts"), "val")
    if pts is not None and pts > 0:
        return f"{prop}:{scaled_px(px_from_hundredth_point(pts))}"
    pct = _int_attr(_child(spacing, "a:spcPct"), "val")
    if pct is not None and pct > 0:
        return f"{prop}:{fmt_num(pct / 100000.0)}{pct_unit}"
    return None


def _emu_style(emu: Optional[int], prop: str) -> Optional[str]:
    if emu is None:
        return None
    px = px_from_emu(emu)
    if abs(px) < 0.001:
        return None
    return f"{prop}:{scaled_px(px)}"


def paragraph_style(ppr: Any) -> str:
    if ppr is None:
        return ""

    styles: List[str] = []
    align = _map_alignment(_str_attr(ppr, "algn"))
    if align:
        styles.append(f"text-align:{align}")

    for s in (
        _spacing_style(_child(ppr, "a:lnSpc"), "line-height", ""),
        _spacing_style(_child(ppr, "a:spcBef"), "margin-top", "em"),
        _spacing_style(_child(ppr, "a:spcAft"), "margin-bottom", "em"),
    ):
        if s:
            styles.append(s)

    margin_left = _emu_style(_int_attr(ppr, "marL"), "margin-left")
    if margin_left:
        styles.append(margin_left)
    indent = _emu_style(_int_attr(ppr, "indent"), "text-indent")
    if indent:
        styles.append(indent)

    if not margin_left:
        level = _int_attr(ppr, "lvl")
        if level is not None and level > 0:
            styles.append(f"margin-left:{scaled_px(level * LEVEL_INDENT_PX)}")

    return ";".join(styles) + ";" if styles else ""


def _open_tag(tag: str, cls: str, style: str) -> str:
    if not style:
        return f'<{tag} class="{cls}">'
    return f'<{tag} class="{cls}" style="{_style_attr(style)}">'


def text_body_html(tx_body: Any, theme: Optional[Dict[str, str]]) -> str:
    """HTML for a p:txBody; consecutive list paragraphs of one kind share a container."""
    out: List[str] = []
    open_list: Optional[str] = None

    for p in tx_body.iter(qn("a:p")):
        ppr = _child(p, "a:pPr")
        def_rpr = _child(ppr, "a:defRPr")
        kind = list_kind(ppr)
        runs = paragraph_runs_html(p, def_rpr, theme)

        if kind is not None:
            if open_list != kind:
                if open_list is not None:
                    out.append(f"</{open_list}>")
                out.append(f'<{kind} class="pptx-list">')
                open_list = kind
            out.append(_open_tag("li", "pptx-list-item", paragraph_style(ppr)))
            out.append(runs)
            out.append("</li>")
        else:
            if open_list is not None:
                out.append(f"</{open_list}>")
                open_list = None
            out.append(_open_tag("div", "pptx-paragraph", paragraph_style(ppr)))
            out.append(runs)
            out.append("</div>")

    if open_list is not None:
        out.append(f"</{open_list}>")
    return "".join(out)


def body_padding(body_pr: Any) -> HtmlPadding:
    if body_pr is None:
        return HtmlPadding()
    return HtmlPadding(
        left_px=px_from_emu(_int_attr(body_pr, "lIns") or 0),
        top_px=px_from_emu(_int_attr(body_pr, "tIns") or 0),
        right_px=px_from_emu(_int_attr(body_pr, "rIns") or 0),
        bottom_px=px_from_emu(_int_attr(body_pr, "bIns") or 0),
    )


def padding_style(padding: HtmlPadding) -> str:
    if max(padding.left_px, padding.top_px, padding.right_px, padding.bottom_px) <= 0:
        return ""
    return "padding:{} {} {} {};".format(
        scaled_px(padding.top_px),
        scaled_px(padding.right_px),
        scaled_px(padding.bottom_px),
        scaled_px(padding.left_px),
    )


# ---------------------------------------------------------------------------
# per slide
# ---------------------------------------------------------------------------


def slide_text_blocks(slide: Any, theme: Optional[Dict[str, str]]) -> List[HtmlTextBlock]:
    blocks: List[HtmlTextBlock] = []
    for sp in slide._element.iter(qn("p:sp")):
        tx_body = _child(sp, "p:txBody")
        if tx_body is None:
            continue
        rect = frame_from_element(sp)
        if rect is None:
            continue

        body = text_body_html(tx_body, theme)
        if not body.strip():
            continue
        blocks.append(HtmlTextBlock(rect=rect, padding=body_padding(_child(tx_body, "a:bodyPr")), html=body))
    return blocks


def slide_image_blocks(slide: Any, images_dir: Path, assets: Dict[str, Path]) -> List[HtmlImageBlock]:
    """Pictures with a transform and an embedded image; `assets` maps sha256 -> stored file."""
    blocks: List[HtmlImageBlock] = []
    for pic in slide._element.iter(qn("p:pic")):
        rect = frame_from_element(pic)
        if rect is None:
            continue

        blip = _child(_child(pic, "p:blipFill"), "a:blip")
        rId = _str_attr(blip, qn("r:embed"))
        if not rId:
            continue
        try:
            part = slide.part.related_part(rId)
        except KeyError:
            continue
        if not isinstance(part, ImagePart):
            continue

        blob = part.blob
        digest = hashlib.sha256(blob).hexdigest()
        stored = assets.get(digest)
        if stored is None:
            stored = images_dir / f"asset-{digest[:ASSET_HASH_CHARS]}{part_extension(part, images=True)}"
            stored.write_bytes(blob)
            assets[digest] = stored

        blocks.append(HtmlImageBlock(rect=rect, file_path=stored, hash=digest))
    return blocks


def slide_background_color(slide: Any, theme: Optional[Dict[str, str]]) -> Optional[str]:
    bg_pr = _child(_child(_child(slide._element, "p:cSld"), "p:bg"), "p:bgPr")
    return solid_fill_color(bg_pr, theme)


def slide_attachments(slide: Any, slide_index: int, attachments_dir: Path) -> List[HtmlAttachment]:
    """Embedded packages and OLE objects, in relationship order."""
    out: List[HtmlAttachment] = []
    attachment_index = 0
    for rel in slide.part.rels.values():
        if rel.is_external or rel.reltype not in _ATTACHMENT_RELTYPES:
            continue
        part = rel.target_part
        if isinstance(part, ImagePart):
            continue

        attachment_index += 1
        dest = attachments_dir / f"slide-{slide_index:03d}-attachment{attachment_index}{part_extension(part)}"
        dest.write_bytes(part.blob)
        out.append(HtmlAttachment(slide_index=slide_index, file_path=dest))
    return out


def read_deck_layout(pptx_path: Path, images_dir: Path, attachments_dir: Path) -> DeckLayout:
    images_dir.mkdir(parents=True, exist_ok=True)
    attachments_dir.mkdir(parents=True, exist_ok=True)

    prs = open_presentation(pptx_path)
    theme = load_theme_colors(pptx_path)
    layout = DeckLayout(slide_size=read_slide_size(prs))
    assets: Dict[str, Path] = {}

    for slide_index, slide in enumerate(prs.slides, start=1):
        layout.slides.append(
            HtmlSlide(
                index=slide_index,
                text_blocks=slide_text_blocks(slide, theme),
                images=slide_image_blocks(slide, images_dir, assets),
                background_color=slide_background_color(slide, theme),
            )
        )
        layout.attachments.extend(slide_attachments(slide, slide_index, attachments_dir))

    layout.image_files = list(assets.values())
    logger.info(
        "%s: %d slide(s), %d image asset(s), %d attachment(s)",
        pptx_path.name,
        len(layout.slides),
        len(layout.image_files),
        len(layout.attachments),
    )
    return layout
