"""
Base parser protocol / ABC for xword-ingest.

All format-specific parsers implement this interface. The contract is:
1. decode() takes raw input plus ParseOptions and returns that format's
   intermediate representation (IR), a dataclass preserving every field
   the source format can express.
2. convert() maps the IR onto the canonical ``Puzzle``.
3. parse() is decode() followed by convert().

Both steps run inside ``decode_guard`` so that no low-level fault
(IndexError, KeyError, pydantic ValidationError, ...) escapes a parser:
each is re-raised as the parser's own error class, chained to the cause.

Why an ABC:
- Enforces a consistent interface across parsers.
- Lets the dispatcher drive any format generically through a name -> class map.
"""

from __future__ import annotations

import codecs
import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, ClassVar, Generic, TypeVar

from xword_ingest.config import ParseOptions
from xword_ingest.exceptions import (
    ErrorCode,
    ErrorContext,
    InvalidFileError,
    XwordIngestError,
)
from xword_ingest.models import Puzzle

logger = logging.getLogger(__name__)

IR = TypeVar("IR")

_LEADING_INT = re.compile(r"^\s*(\d+)")

# Low-level faults that must never escape a decoder untyped.
_LOW_LEVEL_ERRORS = (
    IndexError,
    KeyError,
    TypeError,
    ValueError,
    AttributeError,
    UnicodeError,
    RecursionError,
    OverflowError,
)


@contextmanager
def decode_guard(
    error_cls: type[XwordIngestError],
    code: ErrorCode,
    what: str,
) -> Iterator[None]:
    """Re-raise unexpected low-level faults as ``error_cls(code)``.

    Package errors pass through untouched.
    """
    try:
        yield
    except XwordIngestError:
        raise
    except _LOW_LEVEL_ERRORS as e:
        raise error_cls(
            f"Failed to {what}: {type(e).__name__}: {e}", code, cause=e
        ) from e


def coerce_bytes(data: Any, format_name: str) -> bytes:
    """Turn any supported binary input into ``bytes``.

    Raises:
        InvalidFileError: If ``data`` does not support the buffer protocol.
    """
    if isinstance(data, bytes):
        return data
    try:
        return memoryview(data).tobytes()
    except TypeError as e:
        raise InvalidFileError(
            format_name, f"unsupported input type {type(data).__name__}", cause=e
        ) from e


def decode_text(
    content: Any,
    encoding: str,
    error_cls: type[XwordIngestError],
    code: ErrorCode,
    format_name: str,
) -> str:
    """Return ``content`` as text, decoding byte input with ``encoding``.

    A leading byte-order mark is dropped. Undecodable bytes raise
    ``error_cls(code)``; for every text format that code is its
    "does not look like this format" code.
    """
    if isinstance(content, str):
        return content[1:] if content.startswith("\ufeff") else content

    raw = coerce_bytes(content, format_name)
    if codecs.lookup(encoding).name == "utf-8":
        encoding = "utf-8-sig"
    try:
        return raw.decode(encoding)
    except UnicodeDecodeError as e:
        raise error_cls(
            f"Input is not valid {encoding} text: {e.reason} at byte {e.start}",
            code,
            ErrorContext(offset=e.start),
            cause=e,
        ) from e


def leading_int(value: Any) -> int | None:
    """Parse a clue/cell number the lenient way ("12", 12, "12a" -> 12).

    Returns None for anything without a leading run of digits, for
    booleans, and for non-positive numbers.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, float):
        return int(value) if value.is_integer() and value > 0 else None
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        if match:
            number = int(match.group(1))
            return number if number > 0 else None
    return None


def opaque(**items: Any) -> dict[str, Any] | None:
    """Build an ``additional_properties`` bag, dropping empty entries."""
    bag = {k: v for k, v in items.items() if v is not None and v != {} and v != []}
    return bag or None


class BaseParser(ABC, Generic[IR]):
    """Abstract base class for puzzle format parsers.

    Subclasses set ``format_name``/``error_cls``/``parse_error_code`` and
    implement ``_decode()`` and ``_convert()``.
    """

    format_name: ClassVar[str]
    error_cls: ClassVar[type[XwordIngestError]]
    parse_error_code: ClassVar[ErrorCode]

    def decode(self, content: Any, options: ParseOptions | None = None) -> IR:
        """Decode raw input into this format's IR.

        Raises:
            XwordIngestError: A subclass describing why decoding failed.
        """
        options = options or ParseOptions()
        with decode_guard(self.error_cls, self.parse_error_code, f"decode {self.format_name}"):
            return self._decode(content, options)

    def convert(self, ir: IR) -> Puzzle:
        """Map this format's IR onto the canonical model."""
        with decode_guard(self.error_cls, self.parse_error_code, f"convert {self.format_name}"):
            return self._convert(ir)

    def parse(self, content: Any, options: ParseOptions | None = None) -> Puzzle:
        return self.convert(self.decode(content, options))

    @abstractmethod
    def _decode(self, content: Any, options: ParseOptions) -> IR:
        ...

    @abstractmethod
    def _convert(self, ir: IR) -> Puzzle:
        ...
