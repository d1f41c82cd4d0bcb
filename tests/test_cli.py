from __future__ import annotations

import json
from pathlib import Path

import pytest

from deckframes.apps.cli.main import EXIT_FAILED, EXIT_INVALID, EXIT_NOT_FOUND, EXIT_OK, main
from deckframes.core.manifest.frames import KIND_FRAME, FrameScreenshotInfo, build_manifest, manifest_to_dict, write_manifest
from deckframes.core.utils.geometry import SlideSize

from helpers import FakeConverter, make_png


def _run(argv, capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(argv)
    return excinfo.value.code, capsys.readouterr().out


def _manifest(tmp_path: Path) -> Path:
    make_png(tmp_path / "shots" / "slide-001-frame01.jpg")
    m = build_manifest(SlideSize(9144000, 6858000), [
        FrameScreenshotInfo(1, 1, "slide-001-frame01.jpg", 0, 0, 914400, 914400, KIND_FRAME),
    ])
    return write_manifest(tmp_path / "shots" / "frames.json", m)


@pytest.fixture
def fake_soffice(monkeypatch):
    conv = FakeConverter()
    for module in ("extract.pptx_extractor", "html.gallery", "html.document"):
        monkeypatch.setattr(f"deckframes.core.{module}.default_converter", lambda *_a, **_k: conv)
    return conv


def test_paths(capsys):
    code, out = _run(["paths"], capsys)
    assert code == EXIT_OK
    assert "schema.frames:" in out
    assert "frames.schema.json" in out


def test_extract_single_deck(deck, capsys):
    code, out = _run(["extract", str(deck), "--no-screenshots"], capsys)

    assert code == EXIT_OK
    assert out.startswith("[OK] extracted:")
    assert "slides=3 texts=3 attachments=1 screenshots=0/0" in out
    assert (deck.parent / "sample" / "texts" / "slide-001.txt").is_file()


def test_extract_json_output(deck, capsys):
    code, out = _run(["extract", str(deck), "--no-screenshots", "--json"], capsys)

    assert code == EXIT_OK
    doc = json.loads(out[: out.index("[OK]")])
    assert doc["slide_count"] == 3
    assert doc["attachment_count"] == 1


def test_extract_with_screenshots(deck, capsys, fake_soffice):
    code, out = _run(["extract", str(deck), "--screenshots", "--max-width", "400"], capsys)

    assert code == EXIT_OK
    assert "screenshots=4/3" in out
    assert "frames.json:" in out
    assert fake_soffice.modes() == ["pdf"]


def test_extract_missing_file(tmp_path, capsys):
    code, out = _run(["extract", str(tmp_path / "nope.pptx")], capsys)
    assert code == EXIT_NOT_FOUND
    assert out.splitlines()[0] == "[NG] not found"


def test_extract_without_inputs_is_invalid(capsys):
    code, out = _run(["extract"], capsys)
    assert code == EXIT_INVALID
    assert "[NG] invalid input" in out


def test_extract_batch_reports_failures(deck, tmp_path, capsys):
    code, out = _run(["extract", str(deck), str(tmp_path / "nope.pptx"), "--no-screenshots"], capsys)

    assert code == EXIT_FAILED
    assert f"[OK] {deck}" in out
    assert "[NG]" in out
    assert "requested=2 succeeded=1 failed=1" in out


def test_extract_directory(deck, capsys):
    code, out = _run(["extract", "--dir", str(deck.parent), "--no-screenshots"], capsys)
    assert code == EXIT_OK
    assert "requested=1 succeeded=1 failed=0" in out


def test_rebuild(tmp_path, capsys):
    manifest = _manifest(tmp_path)
    out_pptx = tmp_path / "out.pptx"

    code, out = _run(["rebuild", str(manifest), "--out", str(out_pptx)], capsys)

    assert code == EXIT_OK
    assert out.startswith("[OK] rebuilt:")
    assert "placed=1" in out
    assert out_pptx.is_file()

    code, out = _run(["rebuild", str(manifest), "--out", str(out_pptx)], capsys)
    assert code == EXIT_INVALID
    assert "already exists" in out


def test_check_manifest(tmp_path, capsys):
    manifest = _manifest(tmp_path)
    code, out = _run(["check-manifest", str(manifest)], capsys)
    assert code == EXIT_OK
    assert out.startswith("[OK] frames.json:")


def test_check_manifest_lists_schema_errors(tmp_path, capsys):
    doc = manifest_to_dict(build_manifest(SlideSize(1, 1), [
        FrameScreenshotInfo(0, 1, "a.jpg", 0, 0, 1, 1, KIND_FRAME),
    ]))
    path = tmp_path / "frames.json"
    path.write_text(json.dumps(doc), encoding="utf-8")

    code, out = _run(["check-manifest", str(path)], capsys)

    assert code == EXIT_FAILED
    assert out.startswith("[NG] frames.json:")
    assert "  - $['frames'][0]['slideIndex']:" in out


def test_check_manifest_bad_json_and_missing(tmp_path, capsys):
    path = tmp_path / "frames.json"
    path.write_text("{oops", encoding="utf-8")
    code, out = _run(["check-manifest", str(path)], capsys)
    assert code == EXIT_FAILED
    assert out.startswith("[NG] not valid JSON")

    code, out = _run(["check-manifest", str(tmp_path / "none.json")], capsys)
    assert code == EXIT_NOT_FOUND


def test_export_html(deck, tmp_path, capsys, fake_soffice):
    code, out = _run(["export-html", str(deck), "--out-root", str(tmp_path / "site")], capsys)

    assert code == EXIT_OK
    assert "slides=3 frames=4" in out
    assert (tmp_path / "site" / "sample" / "index.html").is_file()


def test_htmlpage(deck, tmp_path, capsys, fake_soffice):
    code, out = _run(["htmlpage", str(deck), "--out-root", str(tmp_path / "site")], capsys)

    assert code == EXIT_OK
    assert "slides=3 images=1" in out
    assert (tmp_path / "site" / "sample" / "htmlpage" / "index.html").is_file()


def test_htmlpage_without_libreoffice(deck, tmp_path, capsys, monkeypatch):
    monkeypatch.setattr("deckframes.core.screenshot.converter.resolve_soffice_path", lambda *_a: None)

    code, out = _run(["htmlpage", str(deck), "--out-root", str(tmp_path / "site")], capsys)

    assert code == EXIT_FAILED
    assert out.splitlines()[0] == "[NG] conversion failed"
    assert "soffice" in out


def test_settings_file_feeds_options(deck, tmp_path, capsys, fake_soffice):
    settings = tmp_path / "settings.json"
    settings.write_text(json.dumps({"output": {"root": str(tmp_path / "configured")}}), encoding="utf-8")

    code, _ = _run(["--config", str(settings), "export-html", str(deck)], capsys)

    assert code == EXIT_OK
    assert (tmp_path / "configured" / "sample" / "index.html").is_file()


def test_missing_settings_file(tmp_path, capsys):
    code, out = _run(["--config", str(tmp_path / "none.json"), "paths"], capsys)
    assert code == EXIT_NOT_FOUND
    assert "[NG] not found" in out


@pytest.mark.parametrize("command", ["extract", "export-html", "htmlpage"])
def test_corrupt_deck_is_invalid_input(command, tmp_path, capsys, fake_soffice):
    broken = tmp_path / "broken.pptx"
    broken.write_bytes(b"this is not a zip package")

    argv = [command, str(broken)]
    if command != "extract":
        argv += ["--out-root", str(tmp_path / "site")]
    code, out = _run(argv, capsys)

    assert code == EXIT_INVALID
    assert out.splitlines()[0] == "[NG] invalid input"
    assert "Not a valid .pptx package" in out
    assert fake_soffice.calls == []
