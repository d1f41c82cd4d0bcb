from __future__ import annotations

from typing import Any, Dict, List, Optional

from pptx.oxml.ns import qn

from deckframes.core.utils.geometry import FrameRect, SlideSize

# Shape elements that carry a transform, including ones nested in p:grpSp.
_FRAME_TAGS = (qn("p:sp"), qn("p:pic"), qn("p:graphicFrame"))


def _int_attr(el: Any, name: str) -> int:
    v = el.get(name)
    if v is None:
        return 0
    try:
        return int(v)
    except (TypeError, ValueError):
        return 0


def _xfrm_of(el: Any) -> Optional[Any]:
    """a:xfrm for p:sp / p:pic (under p:spPr), p:xfrm for p:graphicFrame."""
    if el.tag == qn("p:graphicFrame"):
        return el.find(qn("p:xfrm"))
    sp_pr = el.find(qn("p:spPr"))
    if sp_pr is None:
        return None
    return sp_pr.find(qn("a:xfrm"))


def frame_from_element(el: Any) -> Optional[FrameRect]:
    xfrm = _xfrm_of(el)
    if xfrm is None:
        return None

    off = xfrm.find(qn("a:off"))
    ext = xfrm.find(qn("a:ext"))
    if off is None or ext is None:
        return None

    rect = FrameRect(
        x=_int_attr(off, "x"),
        y=_int_attr(off, "y"),
        cx=_int_attr(ext, "cx"),
        cy=_int_attr(ext, "cy"),
    )
    return rect if rect.usable else None


def slide_frames(slide: Any) -> List[FrameRect]:
    """Bounding rectangles of one slide, in document order."""
    out: List[FrameRect] = []
    for el in slide._element.iter(*_FRAME_TAGS):
        rect = frame_from_element(el)
        if rect is not None:
            out.append(rect)
    return out


def extract_slide_frames(prs: Any) -> Dict[int, List[FrameRect]]:
    """Map 1-based slide index -> frames. Slides without usable shapes are absent."""
    frames: Dict[int, List[FrameRect]] = {}
    for slide_idx, slide in enumerate(prs.slides, start=1):
        rects = slide_frames(slide)
        if rects:
            frames[slide_idx] = rects
    return frames


def read_slide_size(prs: Any) -> SlideSize:
    def _emu(v: Any) -> int:
        try:
            iv = int(v or 0)
        except Exception:
            return 0
        return iv if iv >= 0 else 0

    return SlideSize(
        width_emu=_emu(getattr(prs, "slide_width", 0)),
        height_emu=_emu(getattr(prs, "slide_height", 0)),
    )
