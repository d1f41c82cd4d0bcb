"""
config.py — Option records for extraction / HTML export, resolved from
explicit arguments, an optional JSON settings file, and defaults.

Settings file layout (all keys optional):

    {
      "libreoffice": {"soffice_path": "...", "generate_screenshots": true},
      "screenshots": {
        "max_width": 1600, "max_height": null, "jpeg_quality": 70,
        "pipeline": "pdf", "pdf_dpi": null, "per_frame": true,
        "frame_max_width": null, "frame_max_height": null,
        "frame_allow_upscale": false, "parallelism": 4
      },
      "output": {"root": "samples"}
    }
"""
from __future__ import annotations

import json
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from deckframes.core.errors import NotFoundError, ValidationError
from deckframes.core.utils.geometry import clamp_dpi

CONFIG_ENV = "DECKFRAMES_CONFIG"

PIPELINES = ("pdf", "png")

DEFAULT_JPEG_QUALITY = 70
DEFAULT_PARALLELISM = 4
DEFAULT_OUTPUT_ROOT = "samples"


@dataclass(frozen=True)
class ScreenshotOptions:
    max_width: Optional[int] = None
    max_height: Optional[int] = None
    jpeg_quality: int = DEFAULT_JPEG_QUALITY
    pipeline: str = "pdf"
    pdf_dpi: Optional[int] = None
    per_frame: bool = True
    frame_max_width: Optional[int] = None
    frame_max_height: Optional[int] = None
    frame_allow_upscale: bool = False
    parallelism: int = DEFAULT_PARALLELISM

    @property
    def effective_frame_max_width(self) -> Optional[int]:
        return self.frame_max_width if self.frame_max_width is not None else self.max_width

    @property
    def effective_frame_max_height(self) -> Optional[int]:
        return self.frame_max_height if self.frame_max_height is not None else self.max_height


@dataclass(frozen=True)
class ExtractOptions:
    generate_screenshots: bool = False
    soffice_path: Optional[str] = None
    screenshots: ScreenshotOptions = ScreenshotOptions()


@dataclass(frozen=True)
class HtmlExportOptions:
    soffice_path: Optional[str] = None
    output_root: Path = Path(DEFAULT_OUTPUT_ROOT)
    screenshots: ScreenshotOptions = ScreenshotOptions()


@dataclass(frozen=True)
class HtmlPageOptions:
    soffice_path: Optional[str] = None
    output_root: Path = Path(DEFAULT_OUTPUT_ROOT)
    timeout_s: int = 120


def load_settings(path: str | Path | None = None) -> dict[str, Any]:
    """Read the JSON settings file (explicit path, else $DECKFRAMES_CONFIG, else empty)."""
    if path is None:
        env = os.environ.get(CONFIG_ENV)
        if not env:
            return {}
        path = env

    p = Path(path).expanduser()
    if not p.is_file():
        raise NotFoundError("settings file not found", p)
    try:
        obj = json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValidationError(f"settings file is not valid JSON: {p} ({e})") from e
    if not isinstance(obj, dict):
        raise ValidationError(f"expected settings at {p} to be a JSON object")
    return obj


def _section(settings: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    sec = settings.get(name)
    return sec if isinstance(sec, Mapping) else {}


def _pick(explicit: Any, section: Mapping[str, Any], key: str, default: Any = None) -> Any:
    if explicit is not None:
        return explicit
    v = section.get(key)
    return default if v is None else v


def _opt_int(v: Any, key: str) -> Optional[int]:
    if v is None:
        return None
    if isinstance(v, bool):
        raise ValidationError(f"'{key}' must be an integer")
    try:
        return int(v)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"'{key}' must be an integer") from e


def _normalize_dpi(v: Optional[int]) -> Optional[int]:
    if v is None or v <= 0:
        return None
    return clamp_dpi(v)


def build_screenshot_options(
    settings: Mapping[str, Any] | None = None,
    *,
    max_width: Optional[int] = None,
    max_height: Optional[int] = None,
    jpeg_quality: Optional[int] = None,
    pipeline: Optional[str] = None,
    pdf_dpi: Optional[int] = None,
    per_frame: Optional[bool] = None,
    frame_max_width: Optional[int] = None,
    frame_max_height: Optional[int] = None,
    frame_allow_upscale: Optional[bool] = None,
    parallelism: Optional[int] = None,
) -> ScreenshotOptions:
    sec = _section(settings or {}, "screenshots")

    quality = _opt_int(_pick(jpeg_quality, sec, "jpeg_quality", DEFAULT_JPEG_QUALITY), "jpeg_quality")
    quality = max(1, min(100, quality if quality is not None else DEFAULT_JPEG_QUALITY))

    pipe = str(_pick(pipeline, sec, "pipeline", "pdf")).strip().lower()
    if pipe not in PIPELINES:
        raise ValidationError(f"unsupported screenshot pipeline: {pipe!r} (use one of {', '.join(PIPELINES)})")

    workers = _opt_int(_pick(parallelism, sec, "parallelism", DEFAULT_PARALLELISM), "parallelism")

    return ScreenshotOptions(
        max_width=_opt_int(_pick(max_width, sec, "max_width"), "max_width"),
        max_height=_opt_int(_pick(max_height, sec, "max_height"), "max_height"),
        jpeg_quality=quality,
        pipeline=pipe,
        pdf_dpi=_normalize_dpi(_opt_int(_pick(pdf_dpi, sec, "pdf_dpi"), "pdf_dpi")),
        per_frame=bool(_pick(per_frame, sec, "per_frame", True)),
        frame_max_width=_opt_int(_pick(frame_max_width, sec, "frame_max_width"), "frame_max_width"),
        frame_max_height=_opt_int(_pick(frame_max_height, sec, "frame_max_height"), "frame_max_height"),
        frame_allow_upscale=bool(_pick(frame_allow_upscale, sec, "frame_allow_upscale", False)),
        parallelism=max(1, workers if workers is not None else DEFAULT_PARALLELISM),
    )


def build_extract_options(
    settings: Mapping[str, Any] | None = None,
    *,
    generate_screenshots: Optional[bool] = None,
    soffice_path: Optional[str] = None,
    **screenshot_overrides: Any,
) -> ExtractOptions:
    settings = settings or {}
    lo = _section(settings, "libreoffice")

    configured_soffice = soffice_path if soffice_path and soffice_path.strip() else lo.get("soffice_path")

    if generate_screenshots is None:
        gen = lo.get("generate_screenshots")
        # A configured soffice implies the caller wants screenshots.
        generate_screenshots = bool(gen) if gen is not None else bool(configured_soffice)

    return ExtractOptions(
        generate_screenshots=bool(generate_screenshots),
        soffice_path=configured_soffice or None,
        screenshots=build_screenshot_options(settings, **screenshot_overrides),
    )


def build_html_export_options(
    settings: Mapping[str, Any] | None = None,
    *,
    soffice_path: Optional[str] = None,
    output_root: str | Path | None = None,
    **screenshot_overrides: Any,
) -> HtmlExportOptions:
    settings = settings or {}
    lo = _section(settings, "libreoffice")
    out = _section(settings, "output")

    # Frames are always cut per shape in the gallery.
    screenshot_overrides["per_frame"] = True
    screenshot_overrides.setdefault("pipeline", "pdf")
    return HtmlExportOptions(
        soffice_path=(soffice_path if soffice_path and soffice_path.strip() else lo.get("soffice_path")) or None,
        output_root=Path(_pick(output_root, out, "root", DEFAULT_OUTPUT_ROOT)).expanduser(),
        screenshots=build_screenshot_options(settings, **screenshot_overrides),
    )


def build_html_page_options(
    settings: Mapping[str, Any] | None = None,
    *,
    soffice_path: Optional[str] = None,
    output_root: str | Path | None = None,
) -> HtmlPageOptions:
    settings = settings or {}
    lo = _section(settings, "libreoffice")
    out = _section(settings, "output")
    return HtmlPageOptions(
        soffice_path=(soffice_path if soffice_path and soffice_path.strip() else lo.get("soffice_path")) or None,
        output_root=Path(_pick(output_root, out, "root", DEFAULT_OUTPUT_ROOT)).expanduser(),
    )


_KNOWN_SOFFICE_LOCATIONS = (
    "/usr/bin/soffice",
    "/usr/local/bin/soffice",
    "/usr/lib/libreoffice/program/soffice",
    "/opt/libreoffice/program/soffice",
    "/Applications/LibreOffice.app/Contents/MacOS/soffice",
)


def resolve_soffice_path(configured: Optional[str] = None) -> Optional[str]:
    """Locate the LibreOffice binary: configured path, then PATH, then known installs."""
    if configured and configured.strip():
        expanded = os.path.expandvars(os.path.expanduser(configured.strip()))
        if Path(expanded).is_file():
            return expanded

    for name in ("soffice", "libreoffice", "soffice.exe"):
        found = shutil.which(name)
        if found:
            return found

    candidates = list(_KNOWN_SOFFICE_LOCATIONS)
    for env_name in ("ProgramFiles", "ProgramFiles(x86)"):
        base = os.environ.get(env_name)
        if base:
            candidates.append(str(Path(base) / "LibreOffice" / "program" / "soffice.exe"))

    for c in candidates:
        if Path(c).is_file():
            return c
    return None
