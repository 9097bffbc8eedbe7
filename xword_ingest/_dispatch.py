"""
Internal format dispatch for xword-ingest.

Walks the try-order produced by ``detect.get_ordered_formats`` and hands
the input to each candidate parser until one succeeds. The errors raised
by the parsers decide what happens next:

- success: the canonical ``Puzzle`` is returned immediately;
- a format-mismatch error: the attempt is recorded and the next format
  is tried;
- any other error: the input was recognised but is broken, so the error
  propagates unchanged and no further formats are tried.

This module is **not** part of the public API.
"""

from __future__ import annotations

import logging
from typing import Any

from xword_ingest.config import ParseOptions
from xword_ingest.detect import get_ordered_formats
from xword_ingest.exceptions import (
    ErrorContext,
    FormatDetectionError,
    XwordIngestError,
)
from xword_ingest.format_registry import FormatSpec, default_formats, get_format
from xword_ingest.models import Puzzle
from xword_ingest.parsers.base import BaseParser, coerce_bytes

logger = logging.getLogger(__name__)

# Format name -> parser class, populated lazily
_PARSER_MAP: dict[str, type[BaseParser]] = {}


def _get_parser_map() -> dict[str, type[BaseParser]]:
    """Lazily build the parser map to avoid circular imports."""
    if not _PARSER_MAP:
        from xword_ingest.parsers.ipuz import IpuzParser
        from xword_ingest.parsers.jpz import JpzParser
        from xword_ingest.parsers.puz import PuzParser
        from xword_ingest.parsers.xd import XdParser

        for parser_cls in (IpuzParser, PuzParser, JpzParser, XdParser):
            _PARSER_MAP[parser_cls.format_name] = parser_cls
    return _PARSER_MAP


def _prepare_input(content: str | bytes, spec: FormatSpec) -> str | bytes:
    """Shape the input the way a format's parser expects it.

    Text input offered to a binary format is encoded as Latin-1 (one byte
    per code point). Input that cannot be encoded that way cannot be that
    format, which is reported as a mismatch.
    """
    if spec.content_type == "binary" and isinstance(content, str):
        try:
            return content.encode("latin-1")
        except UnicodeEncodeError as e:
            raise FormatDetectionError(
                f"Text input cannot be read as {spec.display_name or spec.format_name}: "
                f"character {content[e.start]!r} at position {e.start} is outside Latin-1",
                ErrorContext(offset=e.start, field=spec.format_name),
                cause=e,
            ) from e
    return content


def run_dispatch(content: Any, options: ParseOptions) -> Puzzle:
    """Decode ``content`` with the first format that accepts it.

    Args:
        content: ``str``, ``bytes`` or any buffer-protocol object.
        options: Validated parse options.

    Returns:
        The canonical ``Puzzle``.

    Raises:
        FormatDetectionError: If every format reported a mismatch.
            ``context.details["attempts"]`` lists each attempt.
        XwordIngestError: The first non-mismatch error, unchanged.
    """
    if not isinstance(content, (str, bytes)):
        content = coerce_bytes(content, "puzzle")

    formats = default_formats()
    parser_map = _get_parser_map()
    order = get_ordered_formats(content, options.filename, formats, options.encoding)

    attempts: list[dict[str, str]] = []
    last_error: XwordIngestError | None = None

    for name in order:
        parser_cls = parser_map.get(name)
        if parser_cls is None:
            logger.warning("Format '%s' has a descriptor but no parser", name)
            continue

        logger.debug("Trying format %s", name)
        try:
            payload = _prepare_input(content, get_format(name, formats))
            puzzle = parser_cls().parse(payload, options)
        except XwordIngestError as e:
            if not e.is_format_mismatch():
                logger.debug("Format %s recognised the input but failed: %s", name, e.code.value)
                raise
            logger.debug("Format %s does not match: %s", name, e.message)
            attempts.append({"format": name, "code": e.code.value, "message": e.message})
            last_error = e
            continue

        logger.info(
            "Parsed %s puzzle (%dx%d, %d across, %d down)",
            name,
            puzzle.grid.width,
            puzzle.grid.height,
            len(puzzle.clues.across),
            len(puzzle.clues.down),
        )
        return puzzle

    raise FormatDetectionError(
        context=ErrorContext(details={"attempts": attempts}),
        cause=last_error,
    )
