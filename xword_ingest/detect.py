"""
Format detection for crossword puzzle input.

Detection never decides on its own: it only produces an ordered,
duplicate-free try-list that always names every known format. The
dispatcher (``_dispatch.py``) walks that list and lets the decoders'
errors settle the question.

Detection algorithm:
1. Load all format descriptors from xword_ingest/formats/.
2. Filename hint: an exact extension match puts that format first.
3. Content hints: for each descriptor (in priority order), test its sniff
   rules against the first ``_SNIFF_CHARS`` characters of the input
   (JSON-looking prefix, XML declaration / root markers, known text
   header lines, the binary magic marker).
4. If nothing matched and the input is bytes, formats with a
   ``binary_fallback`` rule are hinted ("probably binary").
5. Every remaining format is appended in default priority order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import PurePath
from typing import Literal

from xword_ingest.format_registry import FormatSpec, default_formats

logger = logging.getLogger(__name__)

# Only the head of the input is inspected for content hints
_SNIFF_CHARS = 64 * 1024

Confidence = Literal["high", "medium", "low"]


@dataclass(frozen=True)
class FormatHint:
    """A reason to try a format early."""
    format: str
    confidence: Confidence
    reason: str


def _sniff_text(content: str | bytes, encoding: str) -> str:
    """Decode the head of the input for sniffing; never raises."""
    head = content[:_SNIFF_CHARS]
    if isinstance(head, str):
        return head
    try:
        return head.decode(encoding, errors="replace")
    except LookupError:
        return head.decode("latin-1")


def _extension(filename: str | None) -> str | None:
    if not filename:
        return None
    suffix = PurePath(filename).suffix
    return suffix.lower().lstrip(".") or None


def detect_format_hints(
    content: str | bytes,
    filename: str | None = None,
    formats: list[FormatSpec] | None = None,
    encoding: str = "utf-8",
) -> list[FormatHint]:
    """Collect format hints from the filename and the content.

    Args:
        content: Raw puzzle input.
        filename: Optional filename whose extension is used as a hint.
        formats: Pre-loaded descriptors (optional; uses the built-ins if None).
        encoding: Encoding used to peek at byte input.

    Returns:
        Hints in the order they should be tried; a format may appear more
        than once if several signals point at it.
    """
    if formats is None:
        formats = default_formats()

    hints: list[FormatHint] = []

    ext = _extension(filename)
    if ext is not None:
        for spec in formats:
            if ext in spec.extensions:
                hints.append(FormatHint(spec.format_name, "high", f"extension .{ext}"))

    text = _sniff_text(content, encoding)
    stripped = text.lstrip("\ufeff \t\r\n")
    lines = stripped.splitlines()

    content_hinted = False
    for spec in formats:
        for rule in spec.sniff:
            if rule.matches(stripped, lines):
                hints.append(FormatHint(spec.format_name, rule.confidence, "content"))
                content_hinted = True
                break

    if not content_hinted and isinstance(content, bytes):
        for spec in formats:
            fallback = next((r for r in spec.sniff if r.binary_fallback), None)
            if fallback is not None:
                hints.append(FormatHint(spec.format_name, fallback.confidence, "binary content"))

    return hints


def get_ordered_formats(
    content: str | bytes,
    filename: str | None = None,
    formats: list[FormatSpec] | None = None,
    encoding: str = "utf-8",
) -> list[str]:
    """Return every known format name, most likely first.

    Hinted formats come first (filename, then content), then all remaining
    formats in default priority order. No name appears twice.
    """
    if formats is None:
        formats = default_formats()

    ordered: list[str] = []
    for hint in detect_format_hints(content, filename, formats, encoding):
        if hint.format not in ordered:
            ordered.append(hint.format)

    for spec in formats:
        if spec.format_name not in ordered:
            ordered.append(spec.format_name)

    logger.debug("Format try-order for %s: %s", filename or "<input>", ordered)
    return ordered
