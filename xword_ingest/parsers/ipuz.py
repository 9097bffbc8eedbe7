"""
JSON (.ipuz) parser for xword-ingest.

Input structure:
  A JSON object, optionally wrapped as ``ipuz(...)`` (JSONP). Required:
  ``kind`` (list naming a crossword variant), ``dimensions`` and ``puzzle``.
  ``solution``, ``clues`` and a long tail of optional metadata may follow;
  keys that look like URIs or contain a colon are vendor extensions.

Cells in ``puzzle`` are polymorphic (null, "#", numbers, numeric strings,
letters, objects wrapping any of those). ``normalize_cell`` collapses them
into one tagged ``IpuzCell`` at the IR boundary; nothing downstream
re-inspects raw JSON values.

Numbers are authoritative here: the converter passes them through and
never runs the neighbour-based numbering rule.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from xword_ingest.config import ParseOptions, resolve_options
from xword_ingest.exceptions import (
    ErrorCode,
    ErrorContext,
    IpuzParseError,
    UnsupportedPuzzleTypeError,
)
from xword_ingest.models import Cell, Clue, Clues, Grid, Puzzle
from xword_ingest.parsers.base import BaseParser, decode_text, leading_int, opaque

logger = logging.getLogger(__name__)

_JSONP = re.compile(r"^ipuz\((.*)\)\s*;?$", re.DOTALL)

BLOCK = "#"
CIRCLE = "circle"

# Optional top-level keys copied to the IR as-is
_OPTIONAL_FIELDS = (
    "title", "author", "copyright", "publisher", "publication", "url",
    "uniqueid", "intro", "explanation", "annotation", "notes", "difficulty",
    "origin", "date", "empty", "charset", "block", "answer", "answers",
    "enumeration", "enumerations", "showenumerations", "clueplacement",
    "volatile", "checksum", "zones", "styles", "misses", "saved",
)

# Optional keys surfaced in the canonical additional_properties
_PASSTHROUGH_FIELDS = (
    "publisher", "publication", "url", "uniqueid", "intro", "explanation",
    "annotation", "difficulty", "origin",
)

_CLUE_EXTRAS = ("cells", "references", "continued", "highlight", "image", "enumeration")


class CellType(str, Enum):
    NORMAL = "normal"
    BLOCK = "block"
    VOID = "void"


@dataclass
class IpuzCell:
    """A normalized ipuz cell.

    ``value`` is a letter pre-printed in the grid; ``solution`` comes from
    the separate solution grid.
    """
    type: CellType = CellType.NORMAL
    number: int | str | None = None
    value: str | None = None
    solution: str | None = None
    style: dict[str, Any] | None = None
    continued: Any = None
    directions: list[Any] | None = None
    given: bool | None = None


@dataclass
class IpuzClue:
    number: Any
    text: str
    extras: dict[str, Any] = field(default_factory=dict)


@dataclass
class IpuzPuzzle:
    """Intermediate representation of an ipuz document."""
    version: str
    kind: list[str]
    width: int
    height: int
    puzzle: list[list[IpuzCell]]
    clues: dict[str, list[IpuzClue]] = field(default_factory=dict)
    raw_clues: dict[str, Any] = field(default_factory=dict)
    fields: dict[str, Any] = field(default_factory=dict)
    extensions: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def normalize_cell(raw: Any, block: str = BLOCK, empty: Any = 0) -> IpuzCell:
    """Collapse one raw ``puzzle`` entry into an ``IpuzCell``.

    Args:
        raw: The JSON value found in the ``puzzle`` grid.
        block: The document's block character (``"#"`` unless overridden).
        empty: The document's empty-cell marker (``0`` unless overridden).
    """
    if raw is None or raw == "null":
        return IpuzCell(type=CellType.VOID)

    if isinstance(raw, dict):
        cell = normalize_cell(raw.get("cell"), block, empty) if "cell" in raw else IpuzCell()
        if isinstance(raw.get("style"), dict):
            cell.style = dict(raw["style"])
        if isinstance(raw.get("value"), str):
            cell.value = raw["value"]
        if raw.get("continued") is not None:
            cell.continued = raw["continued"]
        if isinstance(raw.get("directions"), list):
            cell.directions = list(raw["directions"])
        if isinstance(raw.get("given"), bool):
            cell.given = raw["given"]
        return cell

    if isinstance(raw, bool):
        return IpuzCell()

    if raw == block or raw == BLOCK:
        return IpuzCell(type=CellType.BLOCK)

    if raw == empty or raw == 0 or raw == "0":
        return IpuzCell()

    if isinstance(raw, (int, float)):
        number = leading_int(raw)
        return IpuzCell(number=number)

    if isinstance(raw, str):
        if raw.strip().isdigit():
            return IpuzCell(number=raw.strip() if leading_int(raw) else None)
        return IpuzCell(value=raw)

    return IpuzCell()


def _solution_value(raw: Any, block: str) -> str | None:
    if isinstance(raw, dict):
        raw = raw.get("value")
    if not isinstance(raw, str) or raw in (BLOCK, block, "null", ""):
        return None
    return raw


def _parse_clue(item: Any) -> IpuzClue | None:
    if isinstance(item, list) and len(item) >= 2:
        extras: dict[str, Any] = {}
        for extra in item[2:]:
            if isinstance(extra, dict):
                extras.update({k: v for k, v in extra.items() if k in _CLUE_EXTRAS})
        return IpuzClue(number=item[0], text=_clue_text(item[1]), extras=extras)

    if isinstance(item, dict):
        return IpuzClue(
            number=item.get("number"),
            text=_clue_text(item.get("clue")),
            extras={k: item[k] for k in _CLUE_EXTRAS if item.get(k) is not None},
        )

    return None


def _parse_clue_sections(raw_clues: Any) -> dict[str, list[IpuzClue]]:
    sections: dict[str, list[IpuzClue]] = {}
    if not isinstance(raw_clues, dict):
        return sections
    for name, entries in raw_clues.items():
        if not isinstance(entries, list):
            continue
        parsed = (_parse_clue(item) for item in entries)
        sections[name] = [clue for clue in parsed if clue is not None]
    return sections


def _clue_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def _load_document(text: str) -> dict[str, Any]:
    body = text.strip()
    match = _JSONP.match(body)
    if match:
        body = match.group(1)

    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        raise IpuzParseError(
            f"Invalid JSON: {e.msg}",
            ErrorCode.IPUZ_INVALID_JSON,
            ErrorContext(line=e.lineno, column=e.colno, offset=e.pos),
            cause=e,
        ) from e

    if not isinstance(data, dict):
        raise IpuzParseError(
            f"Invalid ipuz document: expected a JSON object, got {type(data).__name__}",
            ErrorCode.IPUZ_INVALID_JSON,
        )
    return data


def _check_kind(data: dict[str, Any]) -> list[str]:
    kind = data.get("kind")
    if not isinstance(kind, list) or not any(
        isinstance(k, str) and "crossword" in k.lower() for k in kind
    ):
        raise UnsupportedPuzzleTypeError(
            "Non-crossword",
            ErrorContext(field="kind", details={"kind": kind}),
        )
    return [k for k in kind if isinstance(k, str)]


def _check_dimensions(data: dict[str, Any], options: ParseOptions) -> tuple[int, int]:
    dims = data.get("dimensions")
    if not isinstance(dims, dict) or dims.get("width") is None or dims.get("height") is None:
        raise IpuzParseError(
            "Missing width or height in dimensions",
            ErrorCode.IPUZ_MISSING_REQUIRED_FIELD,
            ErrorContext(field="dimensions"),
        )

    width, height = dims["width"], dims["height"]
    for name, value in (("width", width), ("height", height)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise IpuzParseError(
                f"Dimension {name} must be an integer, got {value!r}",
                ErrorCode.IPUZ_INVALID_DATA_TYPE,
                ErrorContext(field=f"dimensions.{name}"),
            )

    if not options.grid_fits(width, height):
        max_w, max_h = options.effective_limits()
        raise IpuzParseError(
            f"Invalid grid dimensions: {width}x{height}. "
            f"Maximum supported size is {max_w}x{max_h}",
            ErrorCode.IPUZ_INVALID_GRID_SIZE,
            ErrorContext(field="dimensions", details={"width": width, "height": height}),
        )
    return width, height


def _check_grid_shape(raw_grid: Any, width: int, height: int) -> list[list[Any]]:
    if not isinstance(raw_grid, list):
        raise IpuzParseError(
            "Missing or invalid puzzle grid",
            ErrorCode.IPUZ_MISSING_REQUIRED_FIELD,
            ErrorContext(field="puzzle"),
        )
    if len(raw_grid) != height:
        raise IpuzParseError(
            f"Puzzle grid has {len(raw_grid)} rows, dimensions say {height}",
            ErrorCode.IPUZ_INVALID_GRID_SIZE,
            ErrorContext(field="puzzle"),
        )
    for y, row in enumerate(raw_grid):
        if not isinstance(row, list) or len(row) != width:
            found = len(row) if isinstance(row, list) else type(row).__name__
            raise IpuzParseError(
                f"Puzzle grid row {y} has {found} cells, dimensions say {width}",
                ErrorCode.IPUZ_INVALID_GRID_SIZE,
                ErrorContext(field=f"puzzle[{y}]"),
            )
    return raw_grid


def _is_extension_key(key: str) -> bool:
    return key.startswith(("http://", "https://")) or ":" in key


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

class IpuzParser(BaseParser[IpuzPuzzle]):
    """Parser for ipuz JSON documents."""

    format_name = "ipuz"
    error_cls = IpuzParseError
    parse_error_code = ErrorCode.IPUZ_PARSE_ERROR

    def _decode(self, content: Any, options: ParseOptions) -> IpuzPuzzle:
        text = decode_text(
            content, options.encoding, IpuzParseError, ErrorCode.IPUZ_INVALID_JSON, "IPUZ"
        )
        data = _load_document(text)
        kind = _check_kind(data)
        width, height = _check_dimensions(data, options)
        raw_grid = _check_grid_shape(data.get("puzzle"), width, height)

        block = data["block"] if isinstance(data.get("block"), str) else BLOCK
        empty = data.get("empty", 0)
        raw_solution = data.get("solution") if isinstance(data.get("solution"), list) else []

        grid: list[list[IpuzCell]] = []
        for y, raw_row in enumerate(raw_grid):
            solution_row = raw_solution[y] if y < len(raw_solution) else None
            cells: list[IpuzCell] = []
            for x, raw_cell in enumerate(raw_row):
                cell = normalize_cell(raw_cell, block, empty)
                if isinstance(solution_row, list) and x < len(solution_row):
                    cell.solution = _solution_value(solution_row[x], block)
                cells.append(cell)
            grid.append(cells)

        raw_clues = data.get("clues") if isinstance(data.get("clues"), dict) else {}
        version = data.get("version")

        puzzle = IpuzPuzzle(
            version=version if isinstance(version, str) else "",
            kind=kind,
            width=width,
            height=height,
            puzzle=grid,
            clues=_parse_clue_sections(raw_clues),
            raw_clues=dict(raw_clues),
            fields={k: data[k] for k in _OPTIONAL_FIELDS if data.get(k) is not None},
            extensions={k: v for k, v in data.items() if _is_extension_key(k)},
        )
        logger.debug(
            "Decoded IPUZ %dx%d with clue sections %s",
            width, height, sorted(puzzle.clues),
        )
        return puzzle

    def _convert(self, ir: IpuzPuzzle) -> Puzzle:
        rows: list[list[Cell]] = []
        for ipuz_row in ir.puzzle:
            rows.append([self._convert_cell(cell) for cell in ipuz_row])

        across: list[Clue] = []
        down: list[Clue] = []
        other_sections: dict[str, Any] = {}
        for name, entries in ir.clues.items():
            if name == "Across":
                across.extend(self._convert_clues(entries))
            elif name == "Down":
                down.extend(self._convert_clues(entries))
            else:
                other_sections[name] = ir.raw_clues.get(name)

        fields = ir.fields
        return Puzzle(
            title=_text(fields.get("title")),
            author=_text(fields.get("author")),
            copyright=_text(fields.get("copyright")),
            notes=_text(fields.get("notes")),
            date=_text(fields.get("date")),
            grid=Grid(width=ir.width, height=ir.height, cells=rows),
            clues=Clues(across=across, down=down, additional_properties=opaque(**other_sections)),
            additional_properties=opaque(
                **{k: fields.get(k) for k in _PASSTHROUGH_FIELDS},
                styles=fields.get("styles"),
                zones=fields.get("zones"),
                extensions=ir.extensions,
            ),
        )

    @staticmethod
    def _convert_cell(cell: IpuzCell) -> Cell:
        if cell.type is CellType.BLOCK:
            return Cell(is_black=True, additional_properties=opaque(style=cell.style))

        solution = cell.solution if cell.solution is not None else cell.value
        style = cell.style
        is_circled = None
        if style and style.get("shapebg") == CIRCLE:
            is_circled = True
            if len(style) == 1:
                style = None

        return Cell(
            is_black=False,
            solution=solution,
            number=leading_int(cell.number),
            is_circled=is_circled,
            additional_properties=opaque(
                is_void=True if cell.type is CellType.VOID else None,
                style=style,
                continued=cell.continued,
                directions=cell.directions,
                given=cell.given,
            ),
        )

    @staticmethod
    def _convert_clues(entries: list[IpuzClue]) -> list[Clue]:
        clues = []
        for entry in entries:
            number = leading_int(entry.number)
            if number is None:
                logger.debug("Skipping ipuz clue with unusable number %r", entry.number)
                continue
            clues.append(Clue(
                number=number,
                text=entry.text,
                additional_properties=opaque(**entry.extras),
            ))
        return clues


def _text(value: Any) -> str | None:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def decode_ipuz(data: Any, options: Any = None) -> IpuzPuzzle:
    """Decode ipuz JSON text (str or bytes) into an ``IpuzPuzzle``."""
    return IpuzParser().decode(data, resolve_options(options))


def convert_ipuz(puzzle: IpuzPuzzle) -> Puzzle:
    """Convert an ``IpuzPuzzle`` into the canonical ``Puzzle``."""
    return IpuzParser().convert(puzzle)
