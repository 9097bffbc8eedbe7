"""
xword-ingest: Python library for decoding crossword puzzle files.

Public API surface:

- ``parse(data, options=None, **overrides)`` -- **recommended entry point**.
  Accepts text or bytes in any supported format (.ipuz JSON, .puz binary,
  .jpz XML, .xd text), works out which one it is, and returns a canonical
  ``Puzzle``.

- ``decode_<format>(data, options=None)`` / ``convert_<format>(ir)`` --
  per-format two-step access: decode to the format's own intermediate
  representation (keeping everything the file says), then convert to the
  canonical model.

All failures raise a subclass of ``XwordIngestError``; its
``is_format_mismatch()`` tells "not this format" apart from "broken file".
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from xword_ingest._dispatch import run_dispatch
from xword_ingest.config import GridSize, ParseOptions, resolve_options
from xword_ingest.exceptions import (
    BinaryBoundsError,
    ErrorCode,
    ErrorContext,
    FormatDetectionError,
    InvalidFileError,
    InvalidOptionsError,
    IpuzParseError,
    JpzParseError,
    PuzParseError,
    UnsupportedPuzzleTypeError,
    XdParseError,
    XwordIngestError,
)
from xword_ingest.models import Cell, Clue, Clues, Grid, Puzzle
from xword_ingest.parsers.ipuz import IpuzPuzzle, convert_ipuz, decode_ipuz
from xword_ingest.parsers.jpz import JpzPuzzle, convert_jpz, decode_jpz
from xword_ingest.parsers.puz import PuzPuzzle, convert_puz, decode_puz
from xword_ingest.parsers.xd import XdPuzzle, convert_xd, decode_xd

__all__ = [
    "parse",
    "ParseOptions",
    "GridSize",
    "Puzzle",
    "Grid",
    "Cell",
    "Clue",
    "Clues",
    "decode_ipuz",
    "convert_ipuz",
    "decode_puz",
    "convert_puz",
    "decode_jpz",
    "convert_jpz",
    "decode_xd",
    "convert_xd",
    "IpuzPuzzle",
    "PuzPuzzle",
    "JpzPuzzle",
    "XdPuzzle",
    "ErrorCode",
    "ErrorContext",
    "XwordIngestError",
    "FormatDetectionError",
    "InvalidFileError",
    "UnsupportedPuzzleTypeError",
    "InvalidOptionsError",
    "BinaryBoundsError",
    "PuzParseError",
    "IpuzParseError",
    "JpzParseError",
    "XdParseError",
]

logger = logging.getLogger(__name__)


def parse(
    data: Any,
    options: ParseOptions | Mapping[str, Any] | None = None,
    **overrides: Any,
) -> Puzzle:
    """Decode a crossword in any supported format.

    Formats are tried most-likely first: a matching filename extension,
    then content sniffing, then the default order (ipuz, puz, jpz, xd).
    The first decoder that accepts the input wins.

    Args:
        data: ``str``, ``bytes``, ``bytearray``, ``memoryview`` or any
            buffer-protocol object.
        options: ``ParseOptions`` or an equivalent mapping.
        **overrides: Individual option fields, e.g. ``filename="x.puz"``.

    Returns:
        The canonical ``Puzzle``.

    Raises:
        FormatDetectionError: No decoder recognised the input.
        InvalidOptionsError: ``options`` failed validation.
        XwordIngestError: A recognised file was broken (format-specific
            subclass, e.g. ``PuzParseError``).

    Examples::

        with open("puzzle.puz", "rb") as f:
            puzzle = xword_ingest.parse(f.read(), filename="puzzle.puz")

        puzzle.grid.width, puzzle.clues.across[0].text
    """
    resolved = resolve_options(options, **overrides)
    logger.debug(
        "parse() -- %s, filename=%s",
        type(data).__name__, resolved.filename,
    )
    return run_dispatch(data, resolved)
