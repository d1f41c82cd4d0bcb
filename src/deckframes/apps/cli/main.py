from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any, Optional, Sequence

import orjson

from deckframes.core.config import (
    CONFIG_ENV,
    PIPELINES,
    build_extract_options,
    build_html_export_options,
    build_html_page_options,
    load_settings,
    resolve_soffice_path,
)
from deckframes.core.errors import (
    ConverterError,
    DeckframesError,
    ManifestError,
    NotFoundError,
    ValidationError,
)
from deckframes.core.extract.pptx_extractor import collect_pptx_paths, extract_batch, extract_pptx
from deckframes.core.html.document import export_html_page
from deckframes.core.html.gallery import export_frames_html
from deckframes.core.manifest.frames import schema_path, validation_errors
from deckframes.core.render.pptx_rebuilder import rebuild_from_frames, rebuild_summary
from deckframes.core.utils.log import configure_logging

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID = 2
EXIT_NOT_FOUND = 3

_MAX_LISTED_ERRORS = 30


def _package_root() -> Path:
    # .../src/deckframes/apps/cli/main.py -> .../src/deckframes
    return Path(__file__).resolve().parents[2]


def _exit_code(e: DeckframesError) -> int:
    if isinstance(e, NotFoundError):
        return EXIT_NOT_FOUND
    if isinstance(e, ValidationError):
        return EXIT_INVALID
    return EXIT_FAILED


def _report(e: DeckframesError) -> int:
    kind = {
        NotFoundError: "not found",
        ValidationError: "invalid input",
        ManifestError: "invalid manifest",
        ConverterError: "conversion failed",
    }
    label = next((v for k, v in kind.items() if isinstance(e, k)), "failed")
    print(f"[NG] {label}")
    print(f"      detail: {e}")
    return _exit_code(e)


def _print_json(obj: Any) -> None:
    print(orjson.dumps(obj, option=orjson.OPT_INDENT_2).decode("utf-8"))


def _add_screenshot_args(p: argparse.ArgumentParser, *, strategy: bool = True) -> None:
    g = p.add_argument_group("screenshots")
    g.add_argument("--soffice", help="path to the LibreOffice binary (default: settings, PATH, known installs)")
    g.add_argument("--max-width", type=int, help="max whole-slide screenshot width in px")
    g.add_argument("--max-height", type=int, help="max whole-slide screenshot height in px")
    g.add_argument("--jpeg-quality", type=int, help="JPEG quality 1-100 (default 70)")
    g.add_argument("--pdf-dpi", type=int, help="raster DPI for the pdf pipeline (72-300)")
    g.add_argument("--frame-max-width", type=int, help="max frame crop width (default: --max-width)")
    g.add_argument("--frame-max-height", type=int, help="max frame crop height (default: --max-height)")
    g.add_argument("--frame-upscale", action="store_true", default=None, help="enlarge crops smaller than the frame bounds")
    if strategy:
        g.add_argument("--pipeline", choices=PIPELINES, help="screenshot strategy (default pdf)")
        g.add_argument("--no-per-frame", dest="per_frame", action="store_false", default=None, help="one screenshot per slide, no frame crops")
        g.add_argument("--parallelism", type=int, help="workers for per-slide png conversion (default 4)")


def _screenshot_overrides(args: argparse.Namespace) -> dict[str, Any]:
    keys = (
        "max_width",
        "max_height",
        "jpeg_quality",
        "pdf_dpi",
        "frame_max_width",
        "frame_max_height",
        "pipeline",
        "per_frame",
        "parallelism",
    )
    out = {k: getattr(args, k) for k in keys if getattr(args, k, None) is not None}
    if args.frame_upscale:
        out["frame_allow_upscale"] = True
    return out


def cmd_paths(args: argparse.Namespace) -> int:
    root = _package_root()
    print(f"package_root: {root}")
    print(f"schema.frames: {schema_path()}")
    print(f"settings: {args.config or '(none)'} (env {CONFIG_ENV})")
    configured = (args.settings.get("libreoffice") or {}).get("soffice_path")
    print(f"soffice: {resolve_soffice_path(configured) or '(not found)'}")
    return EXIT_OK


def cmd_extract(args: argparse.Namespace) -> int:
    paths = collect_pptx_paths(paths=args.inputs, directories=args.dir)
    options = build_extract_options(
        args.settings,
        generate_screenshots=args.screenshots,
        soffice_path=args.soffice,
        **_screenshot_overrides(args),
    )

    if len(paths) == 1 and not args.dir:
        result = extract_pptx(paths[0], options)
        if args.json:
            _print_json(result.to_dict())
        print(f"[OK] extracted: {result.output_dir}")
        print(
            f"      slides={result.slide_count} texts={result.text_files_written} "
            f"attachments={result.attachment_count} "
            f"screenshots={result.screenshot_exported}/{result.screenshot_expected}"
        )
        if result.frame_metadata_file:
            print(f"      frames.json: {result.frame_metadata_file} ({result.frame_metadata_count} entries)")
        return EXIT_OK

    batch = extract_batch(paths, options, progress=args.progress)
    if args.json:
        _print_json(batch.to_dict())
    for item in batch.items:
        if item.success and item.result is not None:
            print(f"[OK] {item.input_path} -> {item.result.output_dir}")
        else:
            print(f"[NG] {item.input_path}")
            print(f"      detail: {item.error}")
    print(f"requested={batch.requested} succeeded={batch.succeeded} failed={batch.failed}")
    return EXIT_FAILED if batch.failed else EXIT_OK


def cmd_rebuild(args: argparse.Namespace) -> int:
    result = rebuild_from_frames(
        args.manifest,
        args.out,
        overwrite=args.overwrite,
        use_slide_fallback=args.slide_fallback,
    )
    print(f"[OK] rebuilt: {rebuild_summary(result)}")
    return EXIT_OK


def cmd_export_html(args: argparse.Namespace) -> int:
    options = build_html_export_options(
        args.settings,
        soffice_path=args.soffice,
        output_root=args.out_root,
        **_screenshot_overrides(args),
    )
    result = export_frames_html(args.input, options)
    print(f"[OK] gallery: {result.html_path}")
    print(f"      slides={result.slide_count} frames={result.frame_count}")
    return EXIT_OK


def cmd_htmlpage(args: argparse.Namespace) -> int:
    options = build_html_page_options(args.settings, soffice_path=args.soffice, output_root=args.out_root)
    result = export_html_page(args.input, options)
    print(f"[OK] html page: {result.html_path}")
    print(f"      pdf: {result.pdf_path}")
    print(f"      slides={result.slide_count} images={result.image_count}")
    return EXIT_OK


def cmd_check_manifest(args: argparse.Namespace) -> int:
    path = Path(args.manifest).expanduser().resolve()
    if not path.is_file():
        print(f"[NG] manifest not found: {path}")
        return EXIT_NOT_FOUND

    try:
        doc = orjson.loads(path.read_bytes())
    except orjson.JSONDecodeError as e:
        print(f"[NG] not valid JSON: {path.as_posix()}")
        print(f"      detail: {e}")
        return EXIT_FAILED

    errs = validation_errors(doc)
    if errs:
        print(f"[NG] frames.json: {path.as_posix()}")
        for m in errs[:_MAX_LISTED_ERRORS]:
            print(f"  - {m}")
        if len(errs) > _MAX_LISTED_ERRORS:
            print(f"  ... ({len(errs)} errors)")
        return EXIT_FAILED

    print(f"[OK] frames.json: {path.as_posix()}")
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="deckframes")
    parser.add_argument("--config", help=f"settings JSON (default: ${CONFIG_ENV})")
    parser.add_argument("--log-level", default="WARNING", help="DEBUG, INFO, WARNING, ERROR (default WARNING)")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_paths = sub.add_parser("paths", help="show package, schema and LibreOffice paths")
    p_paths.set_defaults(func=cmd_paths)

    p_ext = sub.add_parser("extract", help="split decks into texts/, attachments/, screenshots/ next to each .pptx")
    p_ext.add_argument("inputs", nargs="*", help=".pptx files")
    p_ext.add_argument("--dir", action="append", help="directory searched recursively for .pptx (repeatable)")
    p_ext.add_argument(
        "--screenshots",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="render slide screenshots and frames.json (default: on when soffice is configured)",
    )
    p_ext.add_argument("--progress", action="store_true", help="show a progress bar for batches")
    p_ext.add_argument("--json", action="store_true", help="print the result as JSON")
    _add_screenshot_args(p_ext)
    p_ext.set_defaults(func=cmd_extract)

    p_reb = sub.add_parser("rebuild", help="build a .pptx from screenshots/frames.json")
    p_reb.add_argument("manifest", help="path to frames.json")
    p_reb.add_argument("--out", help="output .pptx (default: rebuilt.pptx next to the manifest)")
    p_reb.add_argument("--overwrite", action="store_true", help="replace an existing output file")
    p_reb.add_argument(
        "--no-slide-fallback",
        dest="slide_fallback",
        action="store_false",
        help="leave slides without frame crops empty instead of using the whole-slide screenshot",
    )
    p_reb.set_defaults(func=cmd_rebuild)

    p_gal = sub.add_parser("export-html", help="frame crops + index.html grid under <out-root>/<stem>/")
    p_gal.add_argument("input", help="path to .pptx")
    p_gal.add_argument("--out-root", help="output root (default: settings output.root, else ./samples)")
    _add_screenshot_args(p_gal, strategy=False)
    p_gal.set_defaults(func=cmd_export_html)

    p_page = sub.add_parser("htmlpage", help="single-page HTML reconstruction under <out-root>/<stem>/htmlpage/")
    p_page.add_argument("input", help="path to .pptx")
    p_page.add_argument("--out-root", help="output root (default: settings output.root, else ./samples)")
    p_page.add_argument("--soffice", help="path to the LibreOffice binary")
    p_page.set_defaults(func=cmd_htmlpage)

    p_chk = sub.add_parser("check-manifest", help="validate a frames.json against the schema")
    p_chk.add_argument("manifest", help="path to frames.json")
    p_chk.set_defaults(func=cmd_check_manifest)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    try:
        args.settings = load_settings(args.config)
        code = args.func(args)
    except DeckframesError as e:
        code = _report(e)
    raise SystemExit(code)


if __name__ == "__main__":
    main()
