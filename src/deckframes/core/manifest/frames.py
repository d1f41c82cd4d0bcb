"""
frames.py — The frames.json manifest: the geometry record written by extraction
and consumed by rebuild, possibly in a different process or on another machine.

Wire format (see core/schemas/frames.schema.json):

    {
      "schemaVersion": "1.0",
      "slideWidthEmu": 12192000,
      "slideHeightEmu": 6858000,
      "frames": [
        {"slideIndex": 1, "frameIndex": 1, "filePath": "slide-001-frame01.jpg",
         "x": 0, "y": 0, "cx": 914400, "cy": 914400, "type": "frame"}
      ]
    }

Field names and the "type" value are matched case-insensitively on read.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable, Tuple

import orjson
from jsonschema import Draft202012Validator

from deckframes.core.errors import ManifestError, NotFoundError
from deckframes.core.utils.geometry import FrameRect, SlideSize

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.0"
MANIFEST_NAME = "frames.json"

KIND_SLIDE = "slide"
KIND_FRAME = "frame"

_SCHEMA_PATH = Path(__file__).resolve().parents[1] / "schemas" / "frames.schema.json"

_ROOT_KEYS = {k.lower(): k for k in ("schemaVersion", "slideWidthEmu", "slideHeightEmu", "frames")}
_FRAME_KEYS = {
    k.lower(): k for k in ("slideIndex", "frameIndex", "filePath", "x", "y", "cx", "cy", "type")
}


@dataclass(frozen=True)
class FrameScreenshotInfo:
    slide_index: int
    frame_index: int
    file_path: str
    x: int
    y: int
    cx: int
    cy: int
    kind: str = KIND_FRAME

    @property
    def rect(self) -> FrameRect:
        return FrameRect(self.x, self.y, self.cx, self.cy)


@dataclass(frozen=True)
class FrameMetadataFile:
    slide_width_emu: int
    slide_height_emu: int
    frames: Tuple[FrameScreenshotInfo, ...] = ()
    schema_version: str = SCHEMA_VERSION

    @property
    def slide_size(self) -> SlideSize:
        return SlideSize(self.slide_width_emu, self.slide_height_emu)


def build_manifest(slide_size: SlideSize, frames: Iterable[FrameScreenshotInfo]) -> FrameMetadataFile:
    return FrameMetadataFile(
        slide_width_emu=slide_size.width_emu,
        slide_height_emu=slide_size.height_emu,
        frames=tuple(frames),
    )


@lru_cache(maxsize=1)
def _validator() -> Draft202012Validator:
    schema = orjson.loads(_SCHEMA_PATH.read_bytes())
    return Draft202012Validator(schema)


def schema_path() -> Path:
    return _SCHEMA_PATH


def _json_path(parts: Iterable[Any]) -> str:
    path = "$"
    for p in parts:
        path += f"[{p!r}]" if isinstance(p, str) else f"[{p}]"
    return path


def _canonical_keys(obj: dict[str, Any], names: dict[str, str]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for k, v in obj.items():
        key = names.get(str(k).lower(), k)
        if key in out:
            raise ManifestError(f"duplicate manifest field (case-insensitive): {k!r}")
        out[key] = v
    return out


def _normalize(doc: Any) -> dict[str, Any]:
    if not isinstance(doc, dict):
        raise ManifestError("manifest root must be a JSON object")

    root = _canonical_keys(doc, _ROOT_KEYS)
    frames = root.get("frames")
    if isinstance(frames, list):
        items: list[Any] = []
        for item in frames:
            if isinstance(item, dict):
                item = _canonical_keys(item, _FRAME_KEYS)
                if isinstance(item.get("type"), str):
                    item["type"] = item["type"].strip().lower()
            items.append(item)
        root["frames"] = items
    return root


def validation_errors(doc: Any) -> list[str]:
    """Human-readable schema violations for an already-parsed manifest ("$[...]: message")."""
    try:
        root = _normalize(doc)
    except ManifestError as e:
        return [f"$: {e}"]

    errors = sorted(_validator().iter_errors(root), key=lambda e: list(e.path))
    return [f"{_json_path(e.path)}: {e.message}" for e in errors]


def manifest_from_dict(doc: Any) -> FrameMetadataFile:
    errs = validation_errors(doc)
    if errs:
        head = "; ".join(errs[:5])
        more = f" ... ({len(errs)} errors)" if len(errs) > 5 else ""
        raise ManifestError(f"manifest does not conform to schema: {head}{more}")

    root = _normalize(doc)
    frames = tuple(
        FrameScreenshotInfo(
            slide_index=int(f["slideIndex"]),
            frame_index=int(f["frameIndex"]),
            file_path=str(f["filePath"]),
            x=int(f["x"]),
            y=int(f["y"]),
            cx=int(f["cx"]),
            cy=int(f["cy"]),
            kind=str(f["type"]),
        )
        for f in root["frames"]
    )
    return FrameMetadataFile(
        slide_width_emu=int(root["slideWidthEmu"]),
        slide_height_emu=int(root["slideHeightEmu"]),
        frames=frames,
        schema_version=str(root.get("schemaVersion") or SCHEMA_VERSION),
    )


def manifest_to_dict(manifest: FrameMetadataFile) -> dict[str, Any]:
    return {
        "schemaVersion": manifest.schema_version,
        "slideWidthEmu": manifest.slide_width_emu,
        "slideHeightEmu": manifest.slide_height_emu,
        "frames": [
            {
                "slideIndex": f.slide_index,
                "frameIndex": f.frame_index,
                "filePath": f.file_path,
                "x": f.x,
                "y": f.y,
                "cx": f.cx,
                "cy": f.cy,
                "type": f.kind,
            }
            for f in manifest.frames
        ],
    }


def dumps_manifest(manifest: FrameMetadataFile) -> bytes:
    return orjson.dumps(manifest_to_dict(manifest), option=orjson.OPT_INDENT_2)


def loads_manifest(data: bytes | str) -> FrameMetadataFile:
    try:
        doc = orjson.loads(data)
    except orjson.JSONDecodeError as e:
        raise ManifestError(f"manifest is not valid JSON: {e}") from e
    return manifest_from_dict(doc)


def write_manifest(path: str | Path, manifest: FrameMetadataFile) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_bytes(dumps_manifest(manifest))
    logger.debug("wrote manifest: %s (%d frames)", p, len(manifest.frames))
    return p


def read_manifest(path: str | Path) -> FrameMetadataFile:
    p = Path(path)
    if not p.is_file():
        raise NotFoundError("Metadata file not found.", p)
    try:
        return loads_manifest(p.read_bytes())
    except ManifestError as e:
        raise ManifestError(f"{p}: {e}") from e
