from __future__ import annotations

import orjson
import pytest

from deckframes.core.errors import ManifestError, NotFoundError
from deckframes.core.manifest.frames import (
    KIND_FRAME,
    KIND_SLIDE,
    FrameScreenshotInfo,
    build_manifest,
    dumps_manifest,
    loads_manifest,
    manifest_from_dict,
    manifest_to_dict,
    read_manifest,
    validation_errors,
    write_manifest,
)
from deckframes.core.utils.geometry import SlideSize


def _manifest():
    return build_manifest(
        SlideSize(12192000, 6858000),
        [
            FrameScreenshotInfo(1, 1, "slide-001-frame01.jpg", 10, 20, 300, 400, KIND_FRAME),
            FrameScreenshotInfo(2, 0, "slide-002-screenshot.jpg", 0, 0, 12192000, 6858000, KIND_SLIDE),
        ],
    )


def test_round_trip_is_lossless():
    m = _manifest()
    assert loads_manifest(dumps_manifest(m)) == m


def test_wire_names_are_camel_case():
    doc = orjson.loads(dumps_manifest(_manifest()))
    assert set(doc) == {"schemaVersion", "slideWidthEmu", "slideHeightEmu", "frames"}
    assert set(doc["frames"][0]) == {"slideIndex", "frameIndex", "filePath", "x", "y", "cx", "cy", "type"}
    assert doc["schemaVersion"] == "1.0"


def test_field_names_and_type_are_case_insensitive():
    doc = {
        "SLIDEWIDTHEMU": 12192000,
        "slideheightemu": 6858000,
        "Frames": [
            {"SlideIndex": 1, "FRAMEINDEX": 1, "filepath": "slide-001-frame01.jpg",
             "X": 10, "Y": 20, "CX": 300, "CY": 400, "Type": "Frame"},
            {"slideIndex": 2, "frameIndex": 0, "filePath": "slide-002-screenshot.jpg",
             "x": 0, "y": 0, "cx": 12192000, "cy": 6858000, "type": "SLIDE"},
        ],
    }
    assert manifest_from_dict(doc) == _manifest()


def test_schema_version_is_optional_on_read():
    doc = manifest_to_dict(_manifest())
    del doc["schemaVersion"]
    assert manifest_from_dict(doc).schema_version == "1.0"


def test_validation_errors_use_json_paths():
    doc = manifest_to_dict(_manifest())
    doc["frames"][0]["slideIndex"] = 0
    doc["frames"][1]["type"] = "thumbnail"

    errs = validation_errors(doc)

    assert any(e.startswith("$['frames'][0]['slideIndex']:") for e in errs)
    assert any(e.startswith("$['frames'][1]['type']:") for e in errs)


def test_missing_required_fields_raise_manifest_error():
    with pytest.raises(ManifestError):
        manifest_from_dict({"frames": []})


def test_duplicate_keys_differing_in_case_are_rejected():
    doc = manifest_to_dict(_manifest())
    doc["SlideWidthEmu"] = 1
    with pytest.raises(ManifestError, match="duplicate"):
        manifest_from_dict(doc)


def test_non_object_root_is_reported():
    assert validation_errors([1, 2]) == ["$: manifest root must be a JSON object"]


def test_invalid_json_raises_manifest_error():
    with pytest.raises(ManifestError, match="not valid JSON"):
        loads_manifest(b"{not json")


def test_write_then_read(tmp_path):
    path = write_manifest(tmp_path / "out" / "frames.json", _manifest())
    assert path.is_file()
    assert read_manifest(path) == _manifest()


def test_read_missing_manifest(tmp_path):
    with pytest.raises(NotFoundError):
        read_manifest(tmp_path / "nope.json")


def test_read_invalid_manifest_names_the_file(tmp_path):
    p = tmp_path / "frames.json"
    p.write_text('{"frames": 3}', encoding="utf-8")
    with pytest.raises(ManifestError, match="frames.json"):
        read_manifest(p)
