"""
converter.py — The two external collaborators behind narrow seams:

- Converter:  convert(input_path, output_dir, mode) -> produced file
              (LibreOffice headless; modes: pdf / png / html)
- Rasterizer: render_page(pdf_path, page_index, dpi) -> PIL image
              (PyMuPDF)

Tests swap both for fakes that write files directly.
"""
from __future__ import annotations

import logging
import os
import shutil
import signal
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

import fitz  # PyMuPDF
from PIL import Image

from deckframes.core.config import resolve_soffice_path
from deckframes.core.errors import ConverterError, EmptyConversionError

logger = logging.getLogger(__name__)

MODE_PDF = "pdf"
MODE_PNG = "png"
MODE_HTML = "html"

# Filters tried in order; the first one that leaves output files wins.
FILTERS_BY_MODE: Dict[str, Tuple[str, ...]] = {
    MODE_PDF: ("pdf",),
    MODE_PNG: ("png:impress_png_Export", "png"),
    MODE_HTML: ("html:impress_html_Export",),
}

_EXTS_BY_MODE: Dict[str, Tuple[str, ...]] = {
    MODE_PDF: (".pdf",),
    MODE_PNG: (".png",),
    MODE_HTML: (".html", ".htm"),
}


class Converter(Protocol):
    def convert(
        self,
        input_path: Path,
        output_dir: Path,
        mode: str,
        *,
        timeout_s: float = 60,
        profile_dir: Optional[Path] = None,
    ) -> Path: ...


class Rasterizer(Protocol):
    def page_count(self, pdf_path: Path) -> int: ...

    def render_page(self, pdf_path: Path, page_index: int, dpi: int) -> Image.Image: ...


def produced_files(output_dir: Path, mode: str) -> List[Path]:
    """All files of the mode's kind under output_dir (recursive, sorted)."""
    exts = _EXTS_BY_MODE.get(mode, ())
    if not output_dir.is_dir():
        return []
    return sorted(p for p in output_dir.rglob("*") if p.is_file() and p.suffix.lower() in exts)


def pick_primary(output_dir: Path, input_path: Path, mode: str) -> Optional[Path]:
    """<stem>.<ext> when present, else the first file of the mode's kind."""
    for ext in _EXTS_BY_MODE.get(mode, ()):
        expected = output_dir / f"{input_path.stem}{ext}"
        if expected.is_file():
            return expected
    files = produced_files(output_dir, mode)
    return files[0] if files else None


def to_file_uri(directory: Path) -> str:
    uri = directory.resolve().as_uri()
    return uri if uri.endswith("/") else uri + "/"


def _reset_dir(directory: Path) -> None:
    if directory.exists():
        shutil.rmtree(directory)
    directory.mkdir(parents=True, exist_ok=True)


def _kill_process_group(proc: subprocess.Popen) -> None:
    try:
        if os.name == "posix":
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()
    except (ProcessLookupError, PermissionError, OSError):
        pass


class SofficeConverter:
    """LibreOffice headless converter."""

    def __init__(self, soffice_path: str) -> None:
        self.soffice_path = soffice_path

    def build_args(self, input_path: Path, output_dir: Path, conversion_filter: str, profile_dir: Optional[Path] = None) -> List[str]:
        args = [self.soffice_path, "--headless", "--nologo", "--nolockcheck", "--norestore"]
        if profile_dir is not None:
            args.append(f"-env:UserInstallation={to_file_uri(profile_dir)}")
        args += ["--convert-to", conversion_filter, "--outdir", str(output_dir), str(input_path)]
        return args

    def _run(self, args: Sequence[str], timeout_s: float) -> None:
        logger.debug("exec: %s", " ".join(args))
        try:
            proc = subprocess.Popen(
                list(args),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=(os.name == "posix"),
            )
        except OSError as e:
            raise ConverterError(f"Failed to start LibreOffice: {e}") from e

        try:
            _, stderr = proc.communicate(timeout=timeout_s)
        except subprocess.TimeoutExpired as e:
            _kill_process_group(proc)
            proc.communicate()
            raise ConverterError(f"LibreOffice export timed out after {timeout_s:g}s.") from e

        err_text = (stderr or b"").decode("utf-8", errors="replace").strip()
        if proc.returncode != 0:
            raise ConverterError(f"LibreOffice export failed (exit {proc.returncode}): {err_text}", stderr=err_text)

    def convert(
        self,
        input_path: Path,
        output_dir: Path,
        mode: str,
        *,
        timeout_s: float = 60,
        profile_dir: Optional[Path] = None,
    ) -> Path:
        filters = FILTERS_BY_MODE.get(mode)
        if filters is None:
            raise ValueError(f"unsupported conversion mode: {mode!r}")

        for conversion_filter in filters:
            if len(filters) > 1:
                # Leftovers from a previous filter would count as output.
                _reset_dir(output_dir)
            else:
                output_dir.mkdir(parents=True, exist_ok=True)
            self._run(self.build_args(input_path, output_dir, conversion_filter, profile_dir), timeout_s)
            produced = pick_primary(output_dir, input_path, mode)
            if produced is not None:
                return produced
            logger.debug("filter %s produced no %s output", conversion_filter, mode)

        raise EmptyConversionError(f"LibreOffice did not produce a {mode.upper()} file.")


def default_converter(soffice_path: Optional[str] = None) -> SofficeConverter:
    soffice = resolve_soffice_path(soffice_path)
    if soffice is None:
        raise ConverterError(
            "LibreOffice (soffice) not found. Pass --soffice or set libreoffice.soffice_path."
        )
    return SofficeConverter(soffice)


class PyMuPdfRasterizer:
    """Render PDF pages with PyMuPDF (annotations included)."""

    def page_count(self, pdf_path: Path) -> int:
        with fitz.open(str(pdf_path)) as doc:
            return doc.page_count

    def render_page(self, pdf_path: Path, page_index: int, dpi: int) -> Image.Image:
        zoom = dpi / 72.0
        with fitz.open(str(pdf_path)) as doc:
            page = doc.load_page(page_index)
            pix = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom), alpha=False, annots=True)
            return Image.frombytes("RGB", (pix.width, pix.height), pix.samples)
