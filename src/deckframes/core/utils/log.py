"""Logging setup shared by the CLI entry points."""
from __future__ import annotations

import logging
import sys


def configure_logging(level: int | str = logging.WARNING, *, verbose_format: bool = False) -> logging.Logger:
    resolved = level if isinstance(level, int) else getattr(logging, str(level).upper(), logging.WARNING)

    root = logging.getLogger()
    root.setLevel(resolved)
    root.handlers.clear()

    fmt = "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s" if verbose_format else "%(levelname)s: %(message)s"
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt, datefmt="%Y-%m-%d %H:%M:%S" if verbose_format else None))
    root.addHandler(handler)

    return root
