"""
XML (.jpz, Crossword Compiler) parser for xword-ingest.

Input structure (namespaces vary between exporters and are ignored):

    <crossword-compiler-applet>           (or crossword-compiler / puzzle / crossword)
      <rectangular-puzzle>
        <metadata> title, creator, copyright, description, ... </metadata>
        <crossword>
          <grid width="15" height="15">
            <cell x="1" y="1" solution="A" number="1"/>   (1-based, sparse)
            <cell x="2" y="1" type="block"/>
          </grid>
          <word id="1" x="1-5" y="1"/>                 (or <words><word>...)
          <clues><title>Across</title><clue number="1" word="1">...</clue></clues>
        </crossword>
      </rectangular-puzzle>
    </crossword-compiler-applet>

Only ``<crossword>`` payloads are accepted; other rectangular-puzzle kinds
(coded, sudoku, kakuro, word search) are rejected before the grid is read.
Cell numbers come from the file and are passed through untouched.
"""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Any

from xword_ingest.config import ParseOptions, resolve_options
from xword_ingest.exceptions import (
    ErrorCode,
    ErrorContext,
    JpzParseError,
    UnsupportedPuzzleTypeError,
)
from xword_ingest.models import Cell, Clue, Clues, Grid, Puzzle
from xword_ingest.parsers.base import BaseParser, decode_text, leading_int, opaque

logger = logging.getLogger(__name__)

ROOT_ELEMENTS = frozenset({
    "crossword-compiler-applet",
    "crossword-compiler",
    "puzzle",
    "crossword",
    "rectangular-puzzle",
})

# Payload child -> description used in UnsupportedPuzzleTypeError
UNSUPPORTED_KINDS = {
    "coded": "Coded/cipher crosswords (Kaidoku)",
    "sudoku": "Number puzzles",
    "kakuro": "Number puzzles",
    "word-search": "Word search",
    "wordsearch": "Word search",
}

_PLAIN_CLUE = re.compile(r"^(\d+)\.\s*(.+)$", re.DOTALL)
_BARS = ("top-bar", "bottom-bar", "left-bar", "right-bar")


@dataclass
class JpzMetadata:
    title: str | None = None
    creator: str | None = None
    copyright: str | None = None
    description: str | None = None
    publisher: str | None = None
    identifier: str | None = None


@dataclass
class JpzCell:
    """A grid square; ``x``/``y`` are the file's 1-based coordinates."""
    x: int
    y: int
    type: str = "cell"
    solution: str | None = None
    number: str | None = None
    is_circled: bool = False
    background_color: str | None = None
    bars: list[str] = field(default_factory=list)
    is_given: bool = False


@dataclass
class JpzClue:
    number: str | None
    text: str
    format: str | None = None
    word: str | None = None


@dataclass
class JpzWord:
    id: str
    cells: list[tuple[int, int]] = field(default_factory=list)


@dataclass
class JpzPuzzle:
    """Intermediate representation of a .jpz document."""
    width: int
    height: int
    metadata: JpzMetadata
    grid: list[list[JpzCell]]
    across: list[JpzClue] = field(default_factory=list)
    down: list[JpzClue] = field(default_factory=list)
    words: list[JpzWord] = field(default_factory=list)
    root: str = ""


# ---------------------------------------------------------------------------
# Element helpers
# ---------------------------------------------------------------------------

def _local(tag: Any) -> str:
    """``{namespace}name`` -> ``name``; comments and PIs have no name."""
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def _child(node: ET.Element, *names: str) -> ET.Element | None:
    for child in node:
        if _local(child.tag) in names:
            return child
    return None


def _children(node: ET.Element, *names: str) -> list[ET.Element]:
    return [child for child in node if _local(child.tag) in names]


def _text_of(node: ET.Element | None) -> str | None:
    if node is None:
        return None
    text = "".join(node.itertext()).strip()
    return text or None


def _attr(node: ET.Element, name: str) -> str | None:
    """Attribute lookup that ignores namespace prefixes on attribute names."""
    if name in node.attrib:
        return node.attrib[name]
    for key, value in node.attrib.items():
        if _local(key) == name:
            return value
    return None


def _int_attr(node: ET.Element, name: str) -> int | None:
    value = _attr(node, name)
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def _span(value: str | None, limit: int) -> list[int]:
    """Expand ``"3"`` or ``"1-5"`` into coordinates clamped to ``[1, limit]``."""
    if not value:
        return []
    start_s, sep, end_s = value.partition("-")
    try:
        start = int(start_s.strip())
        end = int(end_s.strip()) if sep else start
    except ValueError:
        return []
    lo, hi = max(min(start, end), 1), min(max(start, end), limit)
    return list(range(lo, hi + 1))


# ---------------------------------------------------------------------------
# Decoding steps
# ---------------------------------------------------------------------------

def _parse_xml(text: str) -> ET.Element:
    try:
        return ET.fromstring(text.strip())
    except ET.ParseError as e:
        line, column = getattr(e, "position", (None, None))
        raise JpzParseError(
            f"Invalid XML: {e}",
            ErrorCode.JPZ_INVALID_XML,
            ErrorContext(line=line, column=column),
            cause=e,
        ) from e


def _find_payload(root: ET.Element) -> ET.Element:
    rect = _child(root, "rectangular-puzzle")
    if rect is None:
        inner = _child(root, "puzzle")
        if inner is not None:
            rect = _child(inner, "rectangular-puzzle")
    return rect if rect is not None else root


def _check_supported(payload: ET.Element) -> None:
    for child in payload:
        kind = UNSUPPORTED_KINDS.get(_local(child.tag))
        if kind is not None:
            raise UnsupportedPuzzleTypeError(
                kind, ErrorContext(field=_local(child.tag))
            )


def _parse_metadata(payload: ET.Element) -> JpzMetadata:
    node = _child(payload, "metadata")
    if node is None:
        return JpzMetadata()
    return JpzMetadata(
        title=_text_of(_child(node, "title")),
        creator=_text_of(_child(node, "creator")) or _text_of(_child(node, "author")),
        copyright=_text_of(_child(node, "copyright")),
        description=_text_of(_child(node, "description")),
        publisher=_text_of(_child(node, "publisher")),
        identifier=_text_of(_child(node, "identifier")),
    )


def _grid_dimensions(grid_node: ET.Element, options: ParseOptions) -> tuple[int, int]:
    width = _int_attr(grid_node, "width")
    height = _int_attr(grid_node, "height")
    if width is None or height is None or not options.grid_fits(width, height):
        max_w, max_h = options.effective_limits()
        raise JpzParseError(
            f"Invalid grid dimensions: {_attr(grid_node, 'width')}x{_attr(grid_node, 'height')}. "
            f"Maximum supported size is {max_w}x{max_h}",
            ErrorCode.JPZ_INVALID_GRID,
            ErrorContext(
                field="grid",
                details={"width": _attr(grid_node, "width"), "height": _attr(grid_node, "height")},
            ),
        )
    return width, height


def _parse_cell(node: ET.Element, x: int, y: int) -> JpzCell:
    cell_type = (_attr(node, "type") or "cell").lower()
    return JpzCell(
        x=x,
        y=y,
        type=cell_type if cell_type in ("block", "void") else "cell",
        solution=_attr(node, "solution") or _attr(node, "letter") or None,
        number=_attr(node, "number"),
        is_circled=(_attr(node, "background-shape") or "").lower() == "circle",
        background_color=_attr(node, "background-color"),
        bars=[bar for bar in _BARS if (_attr(node, bar) or "").lower() == "true"],
        is_given=(_attr(node, "hint") or "").lower() == "true",
    )


def _parse_grid(grid_node: ET.Element, width: int, height: int) -> list[list[JpzCell]]:
    grid = [[JpzCell(x=x + 1, y=y + 1) for x in range(width)] for y in range(height)]
    for node in _children(grid_node, "cell"):
        x, y = _int_attr(node, "x"), _int_attr(node, "y")
        if x is None or y is None or not (1 <= x <= width and 1 <= y <= height):
            logger.debug("Skipping JPZ cell outside the grid: x=%s y=%s", x, y)
            continue
        grid[y - 1][x - 1] = _parse_cell(node, x, y)
    return grid


def _group_title(group: ET.Element) -> str:
    title = _child(group, "title")
    if title is not None:
        return _text_of(title) or ""
    return _attr(group, "title") or ""


def _clue_text(node: ET.Element) -> str:
    text_node = _child(node, "text")
    if text_node is not None:
        return _text_of(text_node) or ""
    text_attr = _attr(node, "text")
    if text_attr is not None:
        return text_attr
    parts = [node.text or ""]
    for child in node:
        if _local(child.tag) != "number":
            parts.append("".join(child.itertext()))
        parts.append(child.tail or "")
    return "".join(parts).strip()


def _parse_clue(node: ET.Element) -> JpzClue | None:
    number = _attr(node, "number") or _text_of(_child(node, "number"))
    word = _attr(node, "word")
    if number is None and word is None and len(node) == 0:
        match = _PLAIN_CLUE.match((node.text or "").strip())
        if not match:
            return None
        return JpzClue(number=match.group(1), text=match.group(2).strip())

    return JpzClue(
        number=number,
        text=_clue_text(node),
        format=_attr(node, "format"),
        word=word,
    )


def _parse_clues(groups: list[ET.Element]) -> tuple[list[JpzClue], list[JpzClue]]:
    across: list[JpzClue] = []
    down: list[JpzClue] = []
    for group in groups:
        target = across if "across" in _group_title(group).lower() else down
        for node in _children(group, "clue"):
            clue = _parse_clue(node)
            if clue is not None:
                target.append(clue)
    return across, down


def _parse_words(container: ET.Element, width: int, height: int) -> list[JpzWord]:
    nodes = _children(container, "word")
    for words_node in _children(container, "words", "Words"):
        nodes.extend(_children(words_node, "word"))

    words = []
    for node in nodes:
        word = JpzWord(id=_attr(node, "id") or "")
        xs, ys = _span(_attr(node, "x"), width), _span(_attr(node, "y"), height)
        if len(xs) > 1 and len(ys) == 1:
            word.cells.extend((x, ys[0]) for x in xs)
        elif len(ys) > 1 and len(xs) == 1:
            word.cells.extend((xs[0], y) for y in ys)
        elif xs and ys:
            word.cells.append((xs[0], ys[0]))
        # <cells x y/> per square, or a <cells> wrapper around <cell x y/>
        cell_nodes = _children(node, "cell")
        for cells_node in _children(node, "cells"):
            if _attr(cells_node, "x") is not None:
                cell_nodes.append(cells_node)
            cell_nodes.extend(_children(cells_node, "cell"))
        for cell in cell_nodes:
            x, y = _int_attr(cell, "x"), _int_attr(cell, "y")
            if x is not None and y is not None:
                word.cells.append((x, y))
        words.append(word)
    return words


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

class JpzParser(BaseParser[JpzPuzzle]):
    """Parser for Crossword Compiler XML documents."""

    format_name = "jpz"
    error_cls = JpzParseError
    parse_error_code = ErrorCode.JPZ_PARSE_ERROR

    def _decode(self, content: Any, options: ParseOptions) -> JpzPuzzle:
        text = decode_text(
            content, options.encoding, JpzParseError, ErrorCode.JPZ_INVALID_XML, "JPZ"
        )
        root = _parse_xml(text)
        root_name = _local(root.tag)
        if root_name not in ROOT_ELEMENTS:
            raise JpzParseError(
                f"Unrecognized JPZ root element <{root_name}>",
                ErrorCode.JPZ_UNKNOWN_ROOT,
                ErrorContext(field=root_name),
            )

        payload = _find_payload(root)
        _check_supported(payload)

        crossword = _child(payload, "crossword", "puzzle")
        if crossword is None:
            crossword = payload
        grid_node = _child(crossword, "grid", "Grid")
        if grid_node is None:
            grid_node = _child(payload, "grid")
        if grid_node is None:
            raise JpzParseError(
                "No grid found in JPZ document",
                ErrorCode.JPZ_MISSING_GRID,
                ErrorContext(field="grid"),
            )

        width, height = _grid_dimensions(grid_node, options)
        grid = _parse_grid(grid_node, width, height)

        groups = _children(crossword, "clues", "Clues")
        if not groups and crossword is not payload:
            groups = _children(payload, "clues", "Clues")
        across, down = _parse_clues(groups)

        puzzle = JpzPuzzle(
            width=width,
            height=height,
            metadata=_parse_metadata(payload),
            grid=grid,
            across=across,
            down=down,
            words=_parse_words(crossword, width, height),
            root=root_name,
        )
        logger.debug(
            "Decoded JPZ <%s> %dx%d: %d across, %d down, %d words",
            root_name, width, height, len(across), len(down), len(puzzle.words),
        )
        return puzzle

    def _convert(self, ir: JpzPuzzle) -> Puzzle:
        rows = [[self._convert_cell(cell) for cell in row] for row in ir.grid]

        words = [
            {"id": word.id, "cells": [{"x": x, "y": y} for x, y in word.cells]}
            for word in ir.words
        ]
        meta = ir.metadata
        return Puzzle(
            title=meta.title,
            author=meta.creator,
            copyright=meta.copyright,
            grid=Grid(width=ir.width, height=ir.height, cells=rows),
            clues=Clues(
                across=self._convert_clues(ir.across),
                down=self._convert_clues(ir.down),
            ),
            additional_properties=opaque(
                description=meta.description,
                publisher=meta.publisher,
                identifier=meta.identifier,
                words=words,
            ),
        )

    @staticmethod
    def _convert_cell(cell: JpzCell) -> Cell:
        is_black = cell.type == "block"
        return Cell(
            is_black=is_black,
            solution=None if is_black else cell.solution,
            number=leading_int(cell.number),
            is_circled=True if cell.is_circled else None,
            additional_properties=opaque(
                is_void=True if cell.type == "void" else None,
                background_color=cell.background_color,
                bars=cell.bars,
                given=True if cell.is_given else None,
            ),
        )

    @staticmethod
    def _convert_clues(entries: list[JpzClue]) -> list[Clue]:
        clues = []
        for entry in entries:
            number = leading_int(entry.word)
            if number is None:
                number = leading_int(entry.number)
            if number is None:
                logger.debug("Skipping JPZ clue without a usable number: %r", entry.text)
                continue
            clues.append(Clue(
                number=number,
                text=entry.text,
                additional_properties=opaque(format=entry.format, word=entry.word, number=entry.number),
            ))
        return clues


def decode_jpz(data: Any, options: Any = None) -> JpzPuzzle:
    """Decode JPZ XML text (str or bytes) into a ``JpzPuzzle``."""
    return JpzParser().decode(data, resolve_options(options))


def convert_jpz(puzzle: JpzPuzzle) -> Puzzle:
    """Convert a ``JpzPuzzle`` into the canonical ``Puzzle``."""
    return JpzParser().convert(puzzle)
