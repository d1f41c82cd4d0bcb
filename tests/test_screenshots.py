from __future__ import annotations

import os
import time
from pathlib import Path

import pytest
from PIL import Image
from pptx import Presentation

from deckframes.core.config import ScreenshotOptions
from deckframes.core.errors import ConverterError, EmptyConversionError
from deckframes.core.extract.frame_extractor import extract_slide_frames, read_slide_size
from deckframes.core.manifest.frames import KIND_FRAME, KIND_SLIDE
from deckframes.core.screenshot.converter import (
    MODE_PDF,
    MODE_PNG,
    PyMuPdfRasterizer,
    SofficeConverter,
    pick_primary,
    produced_files,
)
from deckframes.core.screenshot.deck_prep import prepare_for_screenshots, single_slide_copy
from deckframes.core.screenshot.pipeline import (
    capture_screenshots,
    order_converted_slides,
    pdf_timeout_s,
    png_timeout_s,
)

from helpers import FakeConverter, make_png, names


def _capture(deck: Path, out: Path, converter, options: ScreenshotOptions):
    prs = Presentation(str(deck))
    return capture_screenshots(
        deck,
        out,
        converter=converter,
        rasterizer=PyMuPdfRasterizer(),
        expected_slides=len(prs.slides),
        options=options,
        frames_by_slide=extract_slide_frames(prs) if options.per_frame else None,
        slide_size=read_slide_size(prs),
    )


def test_pdf_pipeline_cuts_frames_and_falls_back_to_whole_slide(deck, tmp_path, converter):
    out = tmp_path / "shots"
    run = _capture(deck, out, converter, ScreenshotOptions())

    assert converter.modes() == [MODE_PDF]
    assert names(run.files) == [
        "slide-001-frame01.jpg",
        "slide-001-frame02.jpg",
        "slide-002-frame01.jpg",
        "slide-003-screenshot.jpg",
    ]
    assert [(f.slide_index, f.frame_index, f.kind) for f in run.frames] == [
        (1, 1, KIND_FRAME),
        (1, 2, KIND_FRAME),
        (2, 1, KIND_FRAME),
        (3, 0, KIND_SLIDE),
    ]
    # manifest paths are relative to the screenshots directory
    assert all((out / f.file_path).is_file() for f in run.frames)

    # 2in x 1in at the default 150dpi
    with Image.open(out / "slide-001-frame01.jpg") as im:
        assert im.size == (300, 150)
        assert im.format == "JPEG"

    slide = run.frames[-1]
    assert (slide.x, slide.y, slide.cx, slide.cy) == (0, 0, 9144000, 6858000)


def test_frame_rects_carry_shape_geometry(deck, tmp_path, converter):
    run = _capture(deck, tmp_path / "shots", converter, ScreenshotOptions())
    first = run.frames[0]
    assert (first.x, first.y, first.cx, first.cy) == (914400, 914400, 1828800, 914400)


def test_pdf_pipeline_resizes_to_bounds(deck, tmp_path, converter):
    out = tmp_path / "shots"
    _capture(deck, out, converter, ScreenshotOptions(max_width=400, pdf_dpi=150))

    with Image.open(out / "slide-003-screenshot.jpg") as im:
        assert im.size == (400, 300)
    # crops fall back to the slide bounds; 5in at 150dpi is 750px
    with Image.open(out / "slide-002-frame01.jpg") as im:
        assert im.size == (400, 80)
    # smaller crops are not enlarged
    with Image.open(out / "slide-001-frame01.jpg") as im:
        assert im.size == (300, 150)


def test_whole_slide_mode(deck, tmp_path, converter):
    run = _capture(deck, tmp_path / "shots", converter, ScreenshotOptions(per_frame=False))

    assert names(run.files) == [f"slide-00{i}-screenshot.jpg" for i in (1, 2, 3)]
    assert [f.kind for f in run.frames] == [KIND_SLIDE] * 3


def test_png_pipeline_orders_converter_output(deck, tmp_path, converter):
    out = tmp_path / "shots"
    run = _capture(deck, out, converter, ScreenshotOptions(pipeline="png", per_frame=False))

    assert converter.modes() == [MODE_PNG]
    assert names(run.files) == [f"slide-00{i}-screenshot.jpg" for i in (1, 2, 3)]
    # the fake paints output N with red = 10 * N
    for i in range(3):
        with Image.open(out / f"slide-00{i + 1}-screenshot.jpg") as im:
            r, _, _ = im.convert("RGB").getpixel((10, 10))
            assert abs(r - 10 * i) <= 6


def test_png_pipeline_converts_slides_one_by_one_when_output_is_short(deck, tmp_path):
    converter = FakeConverter(png_limit=1)
    run = _capture(deck, tmp_path / "shots", converter, ScreenshotOptions(pipeline="png", per_frame=False, parallelism=2))

    assert converter.modes() == [MODE_PNG] * 4
    singles = sorted(c for c in converter.calls[1:])
    assert [c[1] for c in singles] == [f"single-slide-00{i}.pptx" for i in (1, 2, 3)]
    assert all(c[3] is not None for c in singles)
    assert len({str(c[3]) for c in singles}) == 3  # one profile per slide
    assert names(run.files) == [f"slide-00{i}-screenshot.jpg" for i in (1, 2, 3)]


def test_one_by_one_fallback_keeps_slide_numbers_when_a_slide_fails(deck, tmp_path):
    converter = FakeConverter(png_limit=1, fail_inputs=["single-slide-002.pptx"])
    run = _capture(deck, tmp_path / "shots", converter, ScreenshotOptions(pipeline="png"))

    assert names(run.files) == [
        "slide-001-frame01.jpg",
        "slide-001-frame02.jpg",
        "slide-003-screenshot.jpg",
    ]
    assert [(f.slide_index, f.kind) for f in run.frames] == [
        (1, KIND_FRAME),
        (1, KIND_FRAME),
        (3, KIND_SLIDE),
    ]


def test_png_pipeline_cuts_frames_too(deck, tmp_path, converter):
    run = _capture(deck, tmp_path / "shots", converter, ScreenshotOptions(pipeline="png"))
    # 960px wide raster of a 10in slide: 2in -> 192px
    assert names(run.files)[0] == "slide-001-frame01.jpg"
    with Image.open(tmp_path / "shots" / "slide-001-frame01.jpg") as im:
        assert im.size == (192, 96)


def test_temp_dir_is_removed(deck, tmp_path, converter):
    _capture(deck, tmp_path / "shots", converter, ScreenshotOptions())
    pdf_dir = Path(converter.calls[0][2])
    assert not pdf_dir.exists()


def test_order_converted_slides():
    files = [Path(n) for n in ("deck_2.png", "zz.png", "deck.png", "page7.png", "deck_1.png")]
    assert names(order_converted_slides(files, "deck")) == ["deck.png", "deck_1.png", "deck_2.png", "page7.png", "zz.png"]

    files = [Path(n) for n in ("deck-2.png", "deck-1.png")]
    assert names(order_converted_slides(files, "deck")) == ["deck-1.png", "deck-2.png"]


def test_timeouts_scale_with_slide_count():
    assert pdf_timeout_s(3) == 60
    assert pdf_timeout_s(20) == 100
    assert png_timeout_s(3) == 60
    assert png_timeout_s(10) == 100


def test_prepare_unhides_slides(deck, tmp_path):
    prs = Presentation(str(deck))
    prs.slides[1]._element.set("show", "0")
    prs.save(str(deck))

    work = tmp_path / "work"
    work.mkdir()
    prepared = prepare_for_screenshots(deck, work)

    assert prepared.name == deck.name
    assert all(s._element.get("show") is None for s in Presentation(str(prepared)).slides)
    # the source deck is left alone
    assert Presentation(str(deck)).slides[1]._element.get("show") == "0"


def test_single_slide_copy_keeps_only_the_requested_slide(deck, tmp_path):
    single = single_slide_copy(deck, tmp_path, 2)

    prs = Presentation(str(single))
    assert single.name == "single-slide-002.pptx"
    assert len(prs.slides) == 1
    texts = [sh.text_frame.text for sh in prs.slides[0].shapes if sh.has_text_frame]
    assert texts == ["Slide two"]


def test_pick_primary_prefers_stem_name(tmp_path):
    make_png(tmp_path / "a.png")
    make_png(tmp_path / "deck.png")
    make_png(tmp_path / "nested" / "b.png")

    assert pick_primary(tmp_path, Path("deck.pptx"), MODE_PNG) == tmp_path / "deck.png"
    assert pick_primary(tmp_path, Path("other.pptx"), MODE_PNG) == tmp_path / "a.png"
    assert len(produced_files(tmp_path, MODE_PNG)) == 3
    assert produced_files(tmp_path / "missing", MODE_PNG) == []


def test_soffice_arguments(tmp_path):
    conv = SofficeConverter("soffice")
    args = conv.build_args(Path("in.pptx"), Path("out"), "pdf", tmp_path / "profile")

    assert args[:5] == ["soffice", "--headless", "--nologo", "--nolockcheck", "--norestore"]
    assert args[5].startswith("-env:UserInstallation=file://")
    assert args[5].endswith("/")
    assert args[6:] == ["--convert-to", "pdf", "--outdir", "out", "in.pptx"]
    assert "-env:UserInstallation" not in " ".join(conv.build_args(Path("in.pptx"), Path("out"), "pdf"))


def test_soffice_launch_failure_is_converter_error(tmp_path, deck):
    conv = SofficeConverter(str(tmp_path / "no-such-soffice"))
    with pytest.raises(ConverterError, match="Failed to start"):
        conv.convert(deck, tmp_path / "out", MODE_PDF)


def test_unknown_mode_is_rejected(tmp_path, deck):
    with pytest.raises(ValueError):
        SofficeConverter("soffice").convert(deck, tmp_path, "docx")


def _script(path: Path, body: str) -> str:
    path.write_text("#!/bin/sh\n" + body, encoding="utf-8")
    path.chmod(0o755)
    return str(path)


posix_only = pytest.mark.skipif(os.name != "posix", reason="shell script stands in for soffice")


@posix_only
def test_soffice_timeout_kills_and_raises(tmp_path, deck):
    conv = SofficeConverter(_script(tmp_path / "slow-soffice", "sleep 30\n"))

    started = time.monotonic()
    with pytest.raises(ConverterError, match="timed out after 0.5s"):
        conv.convert(deck, tmp_path / "out", MODE_PDF, timeout_s=0.5)
    assert time.monotonic() - started < 10


@posix_only
def test_soffice_nonzero_exit_carries_stderr(tmp_path, deck):
    conv = SofficeConverter(_script(tmp_path / "bad-soffice", "echo 'filter not found' >&2\nexit 3\n"))

    with pytest.raises(ConverterError, match=r"exit 3") as excinfo:
        conv.convert(deck, tmp_path / "out", MODE_PDF)
    assert excinfo.value.stderr == "filter not found"


@posix_only
def test_soffice_clean_exit_without_output(tmp_path, deck):
    conv = SofficeConverter(_script(tmp_path / "quiet-soffice", "exit 0\n"))

    with pytest.raises(EmptyConversionError, match="PDF"):
        conv.convert(deck, tmp_path / "out", MODE_PDF)
