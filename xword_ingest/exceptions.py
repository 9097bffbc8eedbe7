"""
Custom exception hierarchy for xword-ingest.

Why a custom hierarchy:
- Callers can catch specific exceptions (e.g., UnsupportedPuzzleTypeError vs
  PuzParseError) without relying on generic ValueError/RuntimeError.
- Every error carries a machine-readable ``code`` and an optional
  ``ErrorContext`` (line / column / offset / field), so tools can point at the
  broken spot of a puzzle file.
- Every error answers ``is_format_mismatch()``. The dispatcher in
  ``_dispatch.py`` uses that single boolean to decide between "this is not
  format X, try the next one" and "this is format X but it is broken, stop".

The mismatch classification is keyed on the error code, not on the class,
so one class (e.g. ``PuzParseError``) can raise both kinds.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Symbolic error codes shared by all decoders."""

    FORMAT_DETECTION_FAILED = "FORMAT_DETECTION_FAILED"
    INVALID_FILE = "INVALID_FILE"
    UNSUPPORTED_PUZZLE_TYPE = "UNSUPPORTED_PUZZLE_TYPE"
    INVALID_OPTIONS = "INVALID_OPTIONS"
    BINARY_BOUNDS = "BINARY_BOUNDS"

    PUZ_PARSE_ERROR = "PUZ_PARSE_ERROR"
    PUZ_INVALID_HEADER = "PUZ_INVALID_HEADER"
    PUZ_INVALID_GRID = "PUZ_INVALID_GRID"
    PUZ_CHECKSUM_MISMATCH = "PUZ_CHECKSUM_MISMATCH"

    IPUZ_PARSE_ERROR = "IPUZ_PARSE_ERROR"
    IPUZ_INVALID_JSON = "IPUZ_INVALID_JSON"
    IPUZ_MISSING_REQUIRED_FIELD = "IPUZ_MISSING_REQUIRED_FIELD"
    IPUZ_INVALID_DATA_TYPE = "IPUZ_INVALID_DATA_TYPE"
    IPUZ_INVALID_GRID_SIZE = "IPUZ_INVALID_GRID_SIZE"

    JPZ_PARSE_ERROR = "JPZ_PARSE_ERROR"
    JPZ_INVALID_XML = "JPZ_INVALID_XML"
    JPZ_UNKNOWN_ROOT = "JPZ_UNKNOWN_ROOT"
    JPZ_MISSING_GRID = "JPZ_MISSING_GRID"
    JPZ_INVALID_GRID = "JPZ_INVALID_GRID"

    XD_PARSE_ERROR = "XD_PARSE_ERROR"
    XD_INVALID_FORMAT = "XD_INVALID_FORMAT"
    XD_INVALID_GRID = "XD_INVALID_GRID"
    XD_MISSING_CLUES = "XD_MISSING_CLUES"


# Codes meaning "this input probably is not the format being attempted".
FORMAT_MISMATCH_CODES: frozenset[ErrorCode] = frozenset({
    ErrorCode.FORMAT_DETECTION_FAILED,
    ErrorCode.UNSUPPORTED_PUZZLE_TYPE,
    ErrorCode.PUZ_INVALID_HEADER,
    ErrorCode.IPUZ_INVALID_JSON,
    ErrorCode.JPZ_INVALID_XML,
    ErrorCode.JPZ_UNKNOWN_ROOT,
    ErrorCode.XD_INVALID_FORMAT,
})


@dataclass(frozen=True)
class ErrorContext:
    """Where in the input an error was found.

    Attributes:
        line: 1-based line number (text formats).
        column: 1-based column number (text formats).
        offset: Byte offset (binary format).
        field: Name of the offending field or element.
        details: Any further structured data (sizes, attempted formats, ...).
    """
    line: int | None = None
    column: int | None = None
    offset: int | None = None
    field: str | None = None
    details: dict[str, Any] = dataclasses.field(default_factory=dict)


class XwordIngestError(Exception):
    """Base exception for all xword-ingest errors.

    Args:
        message: Human-readable description.
        code: Symbolic ``ErrorCode``.
        context: Optional location information.
        cause: Optional lower-level exception; also stored as ``__cause__``.
    """

    default_code: ErrorCode = ErrorCode.INVALID_FILE

    def __init__(
        self,
        message: str,
        code: ErrorCode | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code if code is not None else self.default_code
        self.context = context
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def is_format_mismatch(self) -> bool:
        """True if the error means "wrong format", False if "broken file"."""
        return self.code in FORMAT_MISMATCH_CODES

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, code={self.code.value})"


class FormatDetectionError(XwordIngestError):
    """Raised when no decoder recognised the input.

    ``context.details["attempts"]`` lists the ``(format, code)`` pairs the
    dispatcher recorded before giving up.
    """

    default_code = ErrorCode.FORMAT_DETECTION_FAILED

    def __init__(
        self,
        message: str = "Unable to detect puzzle format. Supported formats: iPUZ, PUZ, JPZ, XD",
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.FORMAT_DETECTION_FAILED, context, cause)


class InvalidFileError(XwordIngestError):
    """Raised for generic structural corruption or unusable input objects."""

    default_code = ErrorCode.INVALID_FILE

    def __init__(
        self,
        format_name: str,
        message: str,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(
            f"Invalid {format_name} file: {message}", ErrorCode.INVALID_FILE, context, cause
        )


class UnsupportedPuzzleTypeError(XwordIngestError):
    """Raised when a file is a recognised container for a non-crossword puzzle.

    For example a JPZ file holding a sudoku, or an ipuz file whose ``kind``
    names a word search.
    """

    default_code = ErrorCode.UNSUPPORTED_PUZZLE_TYPE

    def __init__(
        self,
        puzzle_type: str,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(
            f"{puzzle_type} puzzles are not supported",
            ErrorCode.UNSUPPORTED_PUZZLE_TYPE,
            context,
            cause,
        )
        self.puzzle_type = puzzle_type


class InvalidOptionsError(XwordIngestError):
    """Raised when ``ParseOptions`` fail validation."""

    default_code = ErrorCode.INVALID_OPTIONS


class BinaryBoundsError(XwordIngestError):
    """Raised by ``BinaryReader`` when a read or seek leaves the buffer."""

    default_code = ErrorCode.BINARY_BOUNDS


class PuzParseError(XwordIngestError):
    """Raised by the binary (.puz) decoder."""

    default_code = ErrorCode.PUZ_PARSE_ERROR


class IpuzParseError(XwordIngestError):
    """Raised by the JSON (.ipuz) decoder."""

    default_code = ErrorCode.IPUZ_PARSE_ERROR


class JpzParseError(XwordIngestError):
    """Raised by the XML (.jpz) decoder."""

    default_code = ErrorCode.JPZ_PARSE_ERROR


class XdParseError(XwordIngestError):
    """Raised by the line-text (.xd) decoder."""

    default_code = ErrorCode.XD_PARSE_ERROR
