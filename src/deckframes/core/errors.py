"""
errors.py — Exception types shared by the extraction, rebuild and HTML paths.

    DeckframesError
      ValidationError   bad input (empty path, wrong extension, output collision)
      NotFoundError     source deck or manifest does not exist
      ConverterError    soffice missing / failed to launch / non-zero exit / timed out
        EmptyConversionError  clean exit but no output file
      ManifestError     frames.json cannot be parsed as the manifest schema

The CLI maps these onto exit codes; batch extraction records the message per item.
"""
from __future__ import annotations


class DeckframesError(Exception):
    """Base class for all deckframes errors."""


class ValidationError(DeckframesError, ValueError):
    pass


class NotFoundError(DeckframesError, FileNotFoundError):
    def __init__(self, message: str, path: object = None) -> None:
        super().__init__(message)
        self.path = None if path is None else str(path)

    def __str__(self) -> str:
        base = super().__str__()
        if self.path and self.path not in base:
            return f"{base}: {self.path}"
        return base


class ConverterError(DeckframesError, RuntimeError):
    def __init__(self, message: str, stderr: str = "") -> None:
        super().__init__(message)
        self.stderr = stderr


class EmptyConversionError(ConverterError):
    """soffice exited cleanly but wrote no file of the requested kind."""


class ManifestError(DeckframesError, ValueError):
    pass
