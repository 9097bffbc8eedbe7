"""
Line-text (.xd) parser for xword-ingest.

Input structure (no explicit section markers):

    Title: Example
    Author: Someone
    Rebus: 1=ONE


    CAT#1
    A.E#S
    b_D#T


    A1. Feline ~ CAT
    A4. ... ~ ONE

    D1. ... ~ CAB

Sections are separated by blank lines. Two or more blank lines always end
a section; a single blank line ends it only when the next line has a
different shape than the section's first line (metadata / grid / clue /
prose). The resulting blocks are then classified greedily, in order:
metadata (some line has a colon), grid (every line is grid characters),
clue blocks (some line looks like ``A1.``), and everything else is notes.

Grid characters: ``#`` block, ``_`` void, ``.`` open without a solution,
letters are solutions (lower case marks a circled cell), and characters
declared in the ``Rebus:`` header stand for multi-letter entries.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from xword_ingest.config import ParseOptions, resolve_options
from xword_ingest.exceptions import ErrorCode, ErrorContext, XdParseError
from xword_ingest.models import Cell, Clue, Clues, Grid, Puzzle
from xword_ingest.numbering import number_grid
from xword_ingest.parsers.base import BaseParser, decode_text, leading_int, opaque

logger = logging.getLogger(__name__)

GRID_LINE = re.compile(r"^[A-Za-z0-9#._]+$")
CLUE_START = re.compile(r"^[AD]\d+\.")
CLUE_LINE = re.compile(r"^([AD])(\d+)\.\s+(.+?)(?:\s+~\s+(.+))?$")

BLOCK = "#"
VOID = "_"
OPEN = "."

# Canonical Puzzle fields filled straight from headers
_DIRECT_FIELDS = ("title", "author", "copyright", "date")

Line = tuple[int, str]


@dataclass
class XdClue:
    direction: str
    number: str
    text: str
    answer: str | None = None
    line: int | None = None


@dataclass
class XdPuzzle:
    """Intermediate representation of an .xd document."""
    width: int
    height: int
    metadata: dict[str, str] = field(default_factory=dict)
    grid: list[list[str]] = field(default_factory=list)
    across: list[XdClue] = field(default_factory=list)
    down: list[XdClue] = field(default_factory=list)
    notes: str | None = None


# ---------------------------------------------------------------------------
# Section splitting
# ---------------------------------------------------------------------------

def line_shape(line: str) -> str:
    """Classify one non-blank line as "clue", "grid", "meta" or "prose"."""
    if CLUE_START.match(line):
        return "clue"
    if GRID_LINE.match(line):
        return "grid"
    if ":" in line:
        return "meta"
    return "prose"


def split_sections(text: str) -> list[list[Line]]:
    """Split text into blocks of ``(line_number, stripped_line)`` pairs."""
    sections: list[list[Line]] = []
    current: list[Line] = []
    blanks = 0

    for number, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line:
            blanks += 1
            if blanks >= 2 and current:
                sections.append(current)
                current = []
            continue

        if blanks == 1 and current and line_shape(line) != line_shape(current[0][1]):
            sections.append(current)
            current = []
        blanks = 0
        current.append((number, line))

    if current:
        sections.append(current)
    return sections


def classify_sections(
    sections: list[list[Line]],
) -> tuple[list[Line], list[Line], list[Line], list[list[Line]]]:
    """Assign blocks to (metadata, grid, clues, notes), greedily and in order."""
    index = 0
    metadata: list[Line] = []
    grid: list[Line] = []
    clues: list[Line] = []

    if index < len(sections) and any(":" in line for _, line in sections[index]):
        metadata = sections[index]
        index += 1

    if index < len(sections) and all(GRID_LINE.match(line) for _, line in sections[index]):
        grid = sections[index]
        index += 1

    while index < len(sections) and any(CLUE_START.match(line) for _, line in sections[index]):
        clues.extend(sections[index])
        index += 1

    return metadata, grid, clues, sections[index:]


# ---------------------------------------------------------------------------
# Block parsers
# ---------------------------------------------------------------------------

def _parse_metadata(lines: list[Line]) -> dict[str, str]:
    metadata: dict[str, str] = {}
    for _, line in lines:
        key, sep, value = line.partition(":")
        key, value = key.strip(), value.strip()
        if sep and key and value:
            metadata[key[0].lower() + key[1:]] = value
    return metadata


def _parse_grid(lines: list[Line], options: ParseOptions) -> list[list[str]]:
    first_line, first = lines[0]
    width = len(first)
    if width == 0:
        raise XdParseError(
            "Grid has zero columns",
            ErrorCode.XD_INVALID_GRID,
            ErrorContext(line=first_line),
        )

    for line_number, row in lines:
        if len(row) != width:
            raise XdParseError(
                f"Ragged grid: row has {len(row)} columns, expected {width}",
                ErrorCode.XD_INVALID_GRID,
                ErrorContext(line=line_number, details={"expected": width, "found": len(row)}),
            )

    if not options.grid_fits(width, len(lines)):
        max_w, max_h = options.effective_limits()
        raise XdParseError(
            f"Invalid grid dimensions: {width}x{len(lines)}. "
            f"Maximum supported size is {max_w}x{max_h}",
            ErrorCode.XD_INVALID_GRID,
            ErrorContext(line=first_line, details={"width": width, "height": len(lines)}),
        )
    return [list(row) for _, row in lines]


def _parse_clues(lines: list[Line]) -> tuple[list[XdClue], list[XdClue]]:
    across: list[XdClue] = []
    down: list[XdClue] = []
    for line_number, line in lines:
        match = CLUE_LINE.match(line)
        if not match:
            continue
        direction, number, text, answer = match.groups()
        clue = XdClue(
            direction=direction,
            number=number,
            text=text.strip(),
            answer=answer.strip() if answer else None,
            line=line_number,
        )
        (across if direction == "A" else down).append(clue)
    return across, down


def parse_rebus_header(value: str | None) -> dict[str, str]:
    """``"1=ONE 2=TWO"`` -> ``{"1": "ONE", "2": "TWO"}`` in header order."""
    rebus: dict[str, str] = {}
    for token in (value or "").split():
        key, sep, expansion = token.partition("=")
        if sep and key and expansion:
            rebus[key] = expansion
    return rebus


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

class XdParser(BaseParser[XdPuzzle]):
    """Parser for .xd text files."""

    format_name = "xd"
    error_cls = XdParseError
    parse_error_code = ErrorCode.XD_PARSE_ERROR

    def _decode(self, content: Any, options: ParseOptions) -> XdPuzzle:
        text = decode_text(
            content, options.encoding, XdParseError, ErrorCode.XD_INVALID_FORMAT, "XD"
        )
        meta_lines, grid_lines, clue_lines, note_blocks = classify_sections(split_sections(text))

        if not grid_lines:
            raise XdParseError(
                "Invalid XD file: no grid section found",
                ErrorCode.XD_INVALID_FORMAT,
            )

        grid = _parse_grid(grid_lines, options)
        across, down = _parse_clues(clue_lines)
        if not across and not down:
            raise XdParseError(
                "No clues found in XD file",
                ErrorCode.XD_MISSING_CLUES,
                ErrorContext(line=grid_lines[-1][0]),
            )

        notes = "\n\n".join("\n".join(line for _, line in block) for block in note_blocks)
        puzzle = XdPuzzle(
            width=len(grid[0]),
            height=len(grid),
            metadata=_parse_metadata(meta_lines),
            grid=grid,
            across=across,
            down=down,
            notes=notes or None,
        )
        logger.debug(
            "Decoded XD %dx%d: %d across, %d down",
            puzzle.width, puzzle.height, len(across), len(down),
        )
        return puzzle

    def _convert(self, ir: XdPuzzle) -> Puzzle:
        rebus = parse_rebus_header(ir.metadata.get("rebus"))
        rebus_keys = {char: index for index, char in enumerate(rebus)}

        open_grid = [[char not in (BLOCK, VOID) for char in row] for row in ir.grid]
        numbers = number_grid(open_grid)

        rows: list[list[Cell]] = []
        for y, row in enumerate(ir.grid):
            rows.append([
                self._convert_cell(char, numbers[y][x], rebus, rebus_keys)
                for x, char in enumerate(row)
            ])

        extra = {k: v for k, v in ir.metadata.items() if k not in _DIRECT_FIELDS}
        return Puzzle(
            title=ir.metadata.get("title"),
            author=ir.metadata.get("author"),
            copyright=ir.metadata.get("copyright"),
            date=ir.metadata.get("date"),
            notes=ir.notes,
            grid=Grid(width=ir.width, height=ir.height, cells=rows),
            clues=Clues(
                across=self._convert_clues(ir.across),
                down=self._convert_clues(ir.down),
            ),
            rebus_table={rebus_keys[k]: v for k, v in rebus.items()} or None,
            additional_properties=opaque(**extra),
        )

    @staticmethod
    def _convert_cell(
        char: str,
        number: int | None,
        rebus: dict[str, str],
        rebus_keys: dict[str, int],
    ) -> Cell:
        if char == BLOCK:
            return Cell(is_black=True)
        if char == VOID:
            return Cell(is_black=False, additional_properties={"is_void": True})
        if char == OPEN:
            return Cell(is_black=False, number=number)
        if char in rebus:
            return Cell(
                is_black=False,
                solution=rebus[char],
                number=number,
                has_rebus=True,
                rebus_key=rebus_keys[char],
            )
        if char.islower():
            return Cell(is_black=False, solution=char.upper(), number=number, is_circled=True)
        return Cell(is_black=False, solution=char, number=number)

    @staticmethod
    def _convert_clues(entries: list[XdClue]) -> list[Clue]:
        clues = []
        for entry in entries:
            number = leading_int(entry.number)
            if number is None:
                logger.debug("Skipping XD clue with number %r on line %s", entry.number, entry.line)
                continue
            clues.append(Clue(
                number=number,
                text=entry.text,
                additional_properties=opaque(answer=entry.answer),
            ))
        return clues


def decode_xd(data: Any, options: Any = None) -> XdPuzzle:
    """Decode .xd text (str or bytes) into an ``XdPuzzle``."""
    return XdParser().decode(data, resolve_options(options))


def convert_xd(puzzle: XdPuzzle) -> Puzzle:
    """Convert an ``XdPuzzle`` into the canonical ``Puzzle``."""
    return XdParser().convert(puzzle)
