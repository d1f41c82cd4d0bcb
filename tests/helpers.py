"""Deck, image and converter fakes shared by the test modules."""
from __future__ import annotations

import threading
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import fitz
from PIL import Image
from pptx import Presentation
from pptx.enum.shapes import MSO_SHAPE_TYPE
from pptx.util import Inches

from deckframes.core.errors import EmptyConversionError
from deckframes.core.screenshot.converter import MODE_HTML, MODE_PDF, MODE_PNG

BLANK = 6

SLIDE_W = 9144000  # python-pptx default template: 10in x 7.5in
SLIDE_H = 6858000


def make_png(path: Path, size: Tuple[int, int] = (64, 32), color: Tuple[int, int, int] = (200, 30, 30)) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, color).save(str(path), "PNG")
    return path


def build_deck(path: Path, image: Optional[Path] = None) -> Path:
    """Three slides:

    1. text box at (1in, 1in, 2in x 1in) with two paragraphs, picture at (4in, 2in, 2in x 1in)
    2. one text box
    3. empty
    """
    prs = Presentation()
    layout = prs.slide_layouts[BLANK]

    s1 = prs.slides.add_slide(layout)
    tb = s1.shapes.add_textbox(Inches(1), Inches(1), Inches(2), Inches(1))
    tb.text_frame.text = "Hello deck"
    p = tb.text_frame.add_paragraph()
    p.text = "  second line  "
    if image is not None:
        s1.shapes.add_picture(str(image), Inches(4), Inches(2), Inches(2), Inches(1))

    s2 = prs.slides.add_slide(layout)
    s2.shapes.add_textbox(Inches(0.5), Inches(3), Inches(5), Inches(1)).text_frame.text = "Slide two"

    prs.slides.add_slide(layout)

    path.parent.mkdir(parents=True, exist_ok=True)
    prs.save(str(path))
    return path


def slide_count(pptx_path: Path) -> int:
    return len(Presentation(str(pptx_path)).slides)


def slide_size(pptx_path: Path) -> Tuple[int, int]:
    prs = Presentation(str(pptx_path))
    return int(prs.slide_width or SLIDE_W), int(prs.slide_height or SLIDE_H)


def default_export_html(n: int) -> str:
    parts = ["<!DOCTYPE html><html><head><title>export</title></head><body>"]
    for i in range(1, n + 1):
        # the first slide starts the body, later ones follow a page break
        h1 = "<h1>" if i == 1 else '<h1 style="page-break-before:always">'
        parts.append(f"{h1}Slide {i}</h1><p>text {i}</p><p>&nbsp;</p>")
    parts.append("</body></html>")
    return "".join(parts)


class FakeConverter:
    """Stands in for soffice: writes PDFs with PyMuPDF, PNGs with Pillow, HTML strings.

    `png_limit` caps how many PNGs a multi-slide conversion produces; inputs named
    in `fail_inputs` produce nothing.
    """

    def __init__(
        self,
        png_limit: Optional[int] = None,
        html: Optional[str] = None,
        png_size=(960, 720),
        fail_inputs: Sequence[str] = (),
    ) -> None:
        self.png_limit = png_limit
        self.fail_inputs = set(fail_inputs)
        self.html = html
        self.png_size = png_size
        self.calls: List[Tuple[str, str, str, Optional[Path]]] = []
        self._lock = threading.Lock()

    def convert(self, input_path, output_dir, mode, *, timeout_s=60, profile_dir=None):
        input_path = Path(input_path)
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        with self._lock:
            self.calls.append((mode, input_path.name, str(output_dir), profile_dir))

        if input_path.name in self.fail_inputs:
            raise EmptyConversionError(f"LibreOffice did not produce a {mode.upper()} file.")

        n = slide_count(input_path)
        stem = input_path.stem

        if mode == MODE_PDF:
            w, h = slide_size(input_path)
            doc = fitz.open()
            for i in range(n):
                page = doc.new_page(width=w / 12700, height=h / 12700)
                page.insert_text((72, 72), f"Slide {i + 1}")
            out = output_dir / f"{stem}.pdf"
            doc.save(str(out))
            doc.close()
            return out

        if mode == MODE_PNG:
            count = n if self.png_limit is None or n <= 1 else min(n, self.png_limit)
            if count == 0:
                raise EmptyConversionError("LibreOffice did not produce a PNG file.")
            names = [f"{stem}.png"] + [f"{stem}_{i}.png" for i in range(1, count)]
            for i, name in enumerate(names):
                make_png(output_dir / name, self.png_size, (10 * i % 255, 120, 200))
            return output_dir / names[0]

        if mode == MODE_HTML:
            out = output_dir / f"{stem}.html"
            out.write_text(self.html if self.html is not None else default_export_html(n), encoding="utf-8")
            return out

        raise ValueError(mode)

    def modes(self) -> List[str]:
        return [c[0] for c in self.calls]


def picture_rects(pptx_path: Path, slide_index: int) -> List[Tuple[int, int, int, int]]:
    prs = Presentation(str(pptx_path))
    slide = prs.slides[slide_index - 1]
    return [
        (int(s.left), int(s.top), int(s.width), int(s.height))
        for s in slide.shapes
        if s.shape_type == MSO_SHAPE_TYPE.PICTURE
    ]


def names(paths: Sequence) -> List[str]:
    return [Path(p).name for p in paths]
