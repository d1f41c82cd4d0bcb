from __future__ import annotations

import os
import shutil
import zipfile
from pathlib import Path
from typing import Any

from pptx import Presentation
from pptx.exc import PackageNotFoundError

from deckframes.core.errors import NotFoundError, ValidationError

_IMAGE_EXT_BY_CONTENT_TYPE = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/gif": ".gif",
    "image/bmp": ".bmp",
    "image/tiff": ".tif",
    "image/x-emf": ".emf",
    "image/x-wmf": ".wmf",
}

_PART_EXT_BY_CONTENT_TYPE = {
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ".xlsx",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": ".pptx",
    "application/pdf": ".pdf",
    "application/zip": ".zip",
    "application/octet-stream": ".bin",
    "audio/mpeg": ".mp3",
    "audio/wav": ".wav",
    "audio/x-wav": ".wav",
    "audio/mp4": ".m4a",
    "video/mp4": ".mp4",
    "video/quicktime": ".mov",
    "video/x-msvideo": ".avi",
}


def require_pptx(path: str | Path | None) -> Path:
    """Validate a source deck path and return it absolute."""
    if path is None or not str(path).strip():
        raise ValidationError("Path must be a non-empty string.")

    full = Path(str(path).strip()).expanduser().resolve()
    if not full.is_file():
        raise NotFoundError("File not found.", full)
    if full.suffix.lower() != ".pptx":
        raise ValidationError("Only .pptx files are supported.")
    return full


def open_presentation(path: Path) -> Any:
    try:
        return Presentation(str(path))
    except (PackageNotFoundError, zipfile.BadZipFile, KeyError) as e:
        raise ValidationError(f"Not a valid .pptx package: {path}") from e


def part_extension(part: object, *, images: bool = False) -> str:
    """File extension for an OPC part: partname first, content type second."""
    try:
        ext = str(part.partname.ext or "")  # type: ignore[attr-defined]
    except Exception:
        ext = ""
    if ext:
        return "." + ext.lstrip(".")

    ctype = str(getattr(part, "content_type", "") or "")
    table = _IMAGE_EXT_BY_CONTENT_TYPE if images else _PART_EXT_BY_CONTENT_TYPE
    return table.get(ctype, ".bin")


def ensure_empty_dir(directory: Path) -> Path:
    if directory.exists():
        for child in directory.iterdir():
            if child.is_dir() and not child.is_symlink():
                shutil.rmtree(child)
            else:
                child.unlink()
        return directory
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def html_relpath(target: str | Path, start: str | Path) -> str:
    return os.path.relpath(str(target), str(start)).replace("\\", "/")
