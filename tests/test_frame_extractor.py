from __future__ import annotations

from pptx import Presentation
from pptx.util import Inches

from deckframes.core.extract.frame_extractor import extract_slide_frames, read_slide_size, slide_frames
from deckframes.core.utils.geometry import FrameRect, SlideSize

from helpers import BLANK


def _rect(x, y, cx, cy) -> FrameRect:
    return FrameRect(int(Inches(x)), int(Inches(y)), int(Inches(cx)), int(Inches(cy)))


def test_frames_in_document_order_including_tables_pictures_and_groups(png_image):
    prs = Presentation()
    slide = prs.slides.add_slide(prs.slide_layouts[BLANK])
    slide.shapes.add_textbox(Inches(1), Inches(1), Inches(2), Inches(1))
    slide.shapes.add_picture(str(png_image), Inches(4), Inches(1), Inches(1), Inches(1))
    slide.shapes.add_table(2, 2, Inches(1), Inches(3), Inches(4), Inches(1))
    group = slide.shapes.add_group_shape()
    group.shapes.add_textbox(Inches(6), Inches(5), Inches(1), Inches(1))

    frames = slide_frames(slide)

    assert frames == [
        _rect(1, 1, 2, 1),
        _rect(4, 1, 1, 1),
        _rect(1, 3, 4, 1),
        _rect(6, 5, 1, 1),
    ]


def test_zero_sized_shapes_are_skipped():
    prs = Presentation()
    slide = prs.slides.add_slide(prs.slide_layouts[BLANK])
    slide.shapes.add_textbox(Inches(1), Inches(1), 0, Inches(1))
    slide.shapes.add_textbox(Inches(1), Inches(1), Inches(1), 0)
    slide.shapes.add_textbox(Inches(1), Inches(1), Inches(1), Inches(1))

    assert slide_frames(slide) == [_rect(1, 1, 1, 1)]


def test_placeholders_without_own_transform_are_skipped():
    prs = Presentation()
    slide = prs.slides.add_slide(prs.slide_layouts[1])  # title + content placeholders, inherited xfrm
    slide.shapes.title.text = "Title"

    assert slide_frames(slide) == []


def test_slides_without_frames_are_absent(deck):
    frames = extract_slide_frames(Presentation(str(deck)))

    assert sorted(frames) == [1, 2]
    assert frames[1] == [_rect(1, 1, 2, 1), _rect(4, 2, 2, 1)]
    assert frames[2] == [_rect(0.5, 3, 5, 1)]


def test_read_slide_size(deck):
    assert read_slide_size(Presentation(str(deck))) == SlideSize(9144000, 6858000)
