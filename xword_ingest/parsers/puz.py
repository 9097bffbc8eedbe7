"""
Binary (.puz, Across Lite) parser for xword-ingest.

Input structure:
  - Optional vendor preamble (anything before the header).
  - 0x34-byte header, located by scanning for the ``ACROSS&DOWN`` marker;
    the header starts 2 bytes before it.
  - Solution string and player-fill string, ``width * height`` bytes each.
    ``.`` in the solution is a black cell; ``-`` or ``.`` in the fill means
    "not filled in yet".
  - NUL-terminated title, author, copyright, ``num_clues`` clues, notes.
  - Optional tagged sections: tag(4) + length(u16) + checksum(u16) + payload,
    usually NUL-padded. GRBS / RTBL (rebus), GEXT (circles), LTIM (timer).

Clue strings carry no numbers. They are matched to the positions produced
by the standard numbering rule in two passes: every across start in
row-major order first, then every down start.

Error policy:
  - Header problems (no marker, truncated header) are PUZ_INVALID_HEADER,
    a format mismatch: the input probably is not a .puz file at all.
  - Anything after a well-formed header (bad dimensions, truncated body,
    checksum failures) means a broken .puz file and is not a mismatch.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass, field
from typing import Any

from xword_ingest.binary_reader import BinaryReader
from xword_ingest.config import ParseOptions, resolve_options
from xword_ingest.exceptions import (
    BinaryBoundsError,
    ErrorCode,
    ErrorContext,
    PuzParseError,
)
from xword_ingest.models import Cell, Clue, Clues, Grid, Puzzle
from xword_ingest.numbering import compute_numbering, number_grid
from xword_ingest.parsers.base import BaseParser, coerce_bytes, opaque

logger = logging.getLogger(__name__)

MAGIC = b"ACROSS&DOWN"
MAGIC_STRING = "ACROSS&DOWN"

# Offsets relative to the start of the header
_CIB_OFFSET = 0x2C
_CIB_LENGTH = 8

_BLACK = "."
_UNFILLED = ("-", ".")

_GEXT_CIRCLED = 0x80


@dataclass
class PuzHeader:
    """Raw header fields, kept for round-trip fidelity and checksum checks."""
    offset: int
    checksum: int
    magic: str
    cib_checksum: int
    masked_low_checksums: bytes
    masked_high_checksums: bytes
    version: str
    reserved_1c: int
    scrambled_checksum: int
    reserved_20: bytes
    width: int
    height: int
    num_clues: int
    puzzle_type: int
    scrambled_tag: int


@dataclass
class PuzMetadata:
    title: str | None = None
    author: str | None = None
    copyright: str | None = None
    notes: str | None = None


@dataclass
class PuzCell:
    """One square as stored in the file.

    ``player_state`` is the solver's fill (None when unfilled);
    ``gext_flags`` is the raw GEXT byte (0 when absent).
    """
    is_black: bool
    solution: str | None = None
    player_state: str | None = None
    is_circled: bool = False
    has_rebus: bool = False
    rebus_key: int | None = None
    gext_flags: int = 0


@dataclass
class PuzClue:
    number: int
    text: str


@dataclass
class PuzTimer:
    elapsed_seconds: int
    running: bool


@dataclass
class PuzPuzzle:
    """Intermediate representation of a .puz file."""
    width: int
    height: int
    header: PuzHeader
    metadata: PuzMetadata
    grid: list[list[PuzCell]]
    across: list[PuzClue] = field(default_factory=list)
    down: list[PuzClue] = field(default_factory=list)
    rebus_table: dict[int, str] | None = None
    is_scrambled: bool = False
    timer: PuzTimer | None = None
    unknown_sections: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Checksums
# ---------------------------------------------------------------------------

def puz_checksum(data: bytes, seed: int = 0) -> int:
    """The .puz rotating 16-bit checksum of ``data``, starting from ``seed``."""
    cksum = seed
    for byte in data:
        if cksum & 1:
            cksum = (cksum >> 1) | 0x8000
        else:
            cksum >>= 1
        cksum = (cksum + byte) & 0xFFFF
    return cksum


def _version_tuple(version: str) -> tuple[int, ...]:
    parts = []
    for piece in version.split("."):
        digits = "".join(ch for ch in piece if ch.isdigit())
        if not digits:
            break
        parts.append(int(digits))
    return tuple(parts)


def _text_checksum(
    strings: dict[str, bytes],
    clue_bytes: list[bytes],
    version: str,
    seed: int,
) -> int:
    cksum = seed
    for key in ("title", "author", "copyright"):
        if strings[key]:
            cksum = puz_checksum(strings[key] + b"\x00", cksum)
    for clue in clue_bytes:
        if clue:
            cksum = puz_checksum(clue, cksum)
    version_key = _version_tuple(version)
    if strings["notes"] and (not version_key or version_key >= (1, 3)):
        cksum = puz_checksum(strings["notes"] + b"\x00", cksum)
    return cksum


# ---------------------------------------------------------------------------
# Decoding steps
# ---------------------------------------------------------------------------

def _read_header(reader: BinaryReader) -> PuzHeader:
    magic_offset = reader.find(MAGIC)
    if magic_offset == -1:
        raise PuzParseError(
            f'Invalid PUZ file: magic string "{MAGIC_STRING}" not found',
            ErrorCode.PUZ_INVALID_HEADER,
        )

    start = magic_offset - 2
    if start < 0:
        raise PuzParseError(
            "Invalid PUZ file: magic string found too early in file",
            ErrorCode.PUZ_INVALID_HEADER,
            ErrorContext(offset=magic_offset),
        )

    try:
        reader.seek(start)
        header = PuzHeader(
            offset=start,
            checksum=reader.read_u16le(),
            magic=reader.read_fixed_string(12),
            cib_checksum=reader.read_u16le(),
            masked_low_checksums=reader.read_bytes(4),
            masked_high_checksums=reader.read_bytes(4),
            version=reader.read_fixed_string(4),
            reserved_1c=reader.read_u16le(),
            scrambled_checksum=reader.read_u16le(),
            reserved_20=reader.read_bytes(12),
            width=reader.read_u8(),
            height=reader.read_u8(),
            num_clues=reader.read_u16le(),
            puzzle_type=reader.read_u16le(),
            scrambled_tag=reader.read_u16le(),
        )
    except BinaryBoundsError as e:
        raise PuzParseError(
            f"Invalid PUZ header: {e.message}",
            ErrorCode.PUZ_INVALID_HEADER,
            e.context,
            cause=e,
        ) from e

    if header.magic != MAGIC_STRING:
        raise PuzParseError(
            f'Invalid PUZ header: expected "{MAGIC_STRING}", got "{header.magic}"',
            ErrorCode.PUZ_INVALID_HEADER,
            ErrorContext(offset=start + 2),
        )
    return header


def _build_grid(solution: str, fill: str, width: int, height: int) -> list[list[PuzCell]]:
    grid: list[list[PuzCell]] = []
    for row in range(height):
        cells: list[PuzCell] = []
        for col in range(width):
            index = row * width + col
            sol_char = solution[index]
            fill_char = fill[index]
            is_black = sol_char == _BLACK
            cells.append(PuzCell(
                is_black=is_black,
                solution=None if is_black else sol_char,
                player_state=None if fill_char in _UNFILLED else fill_char,
            ))
        grid.append(cells)
    return grid


def _assign_clues(
    grid: list[list[PuzCell]],
    clue_strings: list[str],
) -> tuple[list[PuzClue], list[PuzClue]]:
    """Match the flat clue list to numbered positions: all across, then all down."""
    open_grid = [[not cell.is_black for cell in row] for row in grid]
    positions = sorted(compute_numbering(open_grid), key=lambda p: (p.row, p.col))

    remaining = iter(clue_strings)
    across = []
    for pos in positions:
        if pos.across:
            text = next(remaining, None)
            if text is None:
                break
            across.append(PuzClue(pos.number, text))

    down = []
    for pos in positions:
        if pos.down:
            text = next(remaining, None)
            if text is None:
                break
            down.append(PuzClue(pos.number, text))

    leftover = sum(1 for _ in remaining)
    expected = sum(p.across for p in positions) + sum(p.down for p in positions)
    if leftover or len(clue_strings) < expected:
        logger.debug(
            "PUZ clue count %d does not match %d numbered entries",
            len(clue_strings), expected,
        )
    return across, down


def _apply_per_cell(grid: list[list[PuzCell]], payload: bytes, apply) -> None:
    width = len(grid[0]) if grid else 0
    for index, value in enumerate(payload[:width * len(grid)]):
        if value:
            apply(grid[index // width][index % width], value)


def _set_rebus(cell: PuzCell, value: int) -> None:
    cell.has_rebus = True
    cell.rebus_key = value - 1


def _set_extras(cell: PuzCell, value: int) -> None:
    cell.gext_flags = value
    if value & _GEXT_CIRCLED:
        cell.is_circled = True


def _parse_rebus_table(payload: bytes) -> dict[int, str]:
    table: dict[int, str] = {}
    for entry in payload.decode("latin-1").split(";"):
        key, sep, value = entry.partition(":")
        if not sep:
            continue
        try:
            table[int(key.strip())] = value
        except ValueError:
            logger.debug("Skipping malformed RTBL entry %r", entry)
    return table


def _parse_timer(payload: bytes) -> PuzTimer:
    elapsed, _, running = payload.decode("latin-1").partition(",")
    try:
        seconds = int(elapsed.strip())
    except ValueError:
        seconds = 0
    return PuzTimer(elapsed_seconds=seconds, running=running.strip() not in ("", "0"))


def _read_trailing_string(reader: BinaryReader) -> bytes:
    """Read the notes string, which some writers leave unterminated at EOF."""
    if reader.find(b"\x00", reader.position) == -1:
        return reader.read_bytes(reader.remaining)
    return reader.read_null_terminated_bytes()

def _read_sections(reader: BinaryReader, puzzle: PuzPuzzle) -> None:
    """Consume optional trailing sections until the data runs out.

    A truncated section header or payload ends the scan silently.
    """
    while True:
        reader.skip_while(0)
        if reader.remaining < 8:
            break
        tag = reader.read_bytes(4).decode("latin-1")
        length = reader.read_u16le()
        reader.read_u16le()  # section checksum, not verified
        if length > reader.remaining:
            logger.debug("PUZ section %r truncated (%d > %d bytes)", tag, length, reader.remaining)
            break
        payload = reader.read_bytes(length)

        if tag == "GRBS":
            _apply_per_cell(puzzle.grid, payload, _set_rebus)
        elif tag == "RTBL":
            puzzle.rebus_table = _parse_rebus_table(payload)
        elif tag == "GEXT":
            _apply_per_cell(puzzle.grid, payload, _set_extras)
        elif tag == "LTIM":
            puzzle.timer = _parse_timer(payload)
        else:
            logger.debug("Skipping unknown PUZ section %r (%d bytes)", tag, length)
            puzzle.unknown_sections.append(tag)


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

class PuzParser(BaseParser[PuzPuzzle]):
    """Parser for Across Lite .puz files."""

    format_name = "puz"
    error_cls = PuzParseError
    parse_error_code = ErrorCode.PUZ_PARSE_ERROR

    def _decode(self, content: Any, options: ParseOptions) -> PuzPuzzle:
        if isinstance(content, str):
            try:
                data = base64.b64decode(content)
            except (binascii.Error, ValueError) as e:
                raise PuzParseError(
                    f"Invalid PUZ input: string is not base64 ({e})",
                    ErrorCode.PUZ_INVALID_HEADER,
                    cause=e,
                ) from e
        else:
            data = coerce_bytes(content, "PUZ")

        reader = BinaryReader(data)
        header = _read_header(reader)

        if not options.grid_fits(header.width, header.height):
            max_w, max_h = options.effective_limits()
            raise PuzParseError(
                f"Invalid grid dimensions: {header.width}x{header.height}. "
                f"Maximum supported size is {max_w}x{max_h}",
                ErrorCode.PUZ_INVALID_GRID,
                ErrorContext(
                    offset=header.offset + _CIB_OFFSET,
                    details={"width": header.width, "height": header.height},
                ),
            )

        text_encoding = "utf-8" if header.version.startswith("2.") else "latin-1"
        size = header.width * header.height
        try:
            solution_bytes = reader.read_bytes(size)
            fill_bytes = reader.read_bytes(size)
            raw_strings = {
                "title": reader.read_null_terminated_bytes(),
                "author": reader.read_null_terminated_bytes(),
                "copyright": reader.read_null_terminated_bytes(),
            }
            clue_bytes = [reader.read_null_terminated_bytes() for _ in range(header.num_clues)]
            raw_strings["notes"] = _read_trailing_string(reader)
        except BinaryBoundsError as e:
            raise PuzParseError(
                f"Truncated PUZ body: {e.message}",
                ErrorCode.PUZ_PARSE_ERROR,
                e.context,
                cause=e,
            ) from e

        if options.verify_checksums:
            self._verify_checksums(reader, header, solution_bytes, fill_bytes, raw_strings, clue_bytes)

        def text(raw: bytes) -> str:
            return raw.decode(text_encoding, errors="replace")

        grid = _build_grid(
            solution_bytes.decode("latin-1"),
            fill_bytes.decode("latin-1"),
            header.width,
            header.height,
        )
        across, down = _assign_clues(grid, [text(c) for c in clue_bytes])

        puzzle = PuzPuzzle(
            width=header.width,
            height=header.height,
            header=header,
            metadata=PuzMetadata(
                title=text(raw_strings["title"]) or None,
                author=text(raw_strings["author"]) or None,
                copyright=text(raw_strings["copyright"]) or None,
                notes=text(raw_strings["notes"]) or None,
            ),
            grid=grid,
            across=across,
            down=down,
            is_scrambled=header.scrambled_tag != 0,
        )
        _read_sections(reader, puzzle)

        logger.debug(
            "Decoded PUZ %dx%d: %d across, %d down, scrambled=%s",
            puzzle.width, puzzle.height, len(across), len(down), puzzle.is_scrambled,
        )
        return puzzle

    @staticmethod
    def _verify_checksums(
        reader: BinaryReader,
        header: PuzHeader,
        solution_bytes: bytes,
        fill_bytes: bytes,
        raw_strings: dict[str, bytes],
        clue_bytes: list[bytes],
    ) -> None:
        cib_start = header.offset + _CIB_OFFSET
        cib = puz_checksum(reader.buffer[cib_start:cib_start + _CIB_LENGTH])
        if cib != header.cib_checksum:
            raise PuzParseError(
                f"CIB checksum mismatch: expected {header.cib_checksum:#06x}, got {cib:#06x}",
                ErrorCode.PUZ_CHECKSUM_MISMATCH,
                ErrorContext(offset=header.offset + 0x0E, field="cib_checksum"),
            )

        overall = puz_checksum(solution_bytes, cib)
        overall = puz_checksum(fill_bytes, overall)
        overall = _text_checksum(raw_strings, clue_bytes, header.version, overall)
        if overall != header.checksum:
            raise PuzParseError(
                f"File checksum mismatch: expected {header.checksum:#06x}, got {overall:#06x}",
                ErrorCode.PUZ_CHECKSUM_MISMATCH,
                ErrorContext(offset=header.offset, field="checksum"),
            )

    def _convert(self, ir: PuzPuzzle) -> Puzzle:
        open_grid = [[not cell.is_black for cell in row] for row in ir.grid]
        numbers = number_grid(open_grid)
        rebus_table = ir.rebus_table or {}

        rows: list[list[Cell]] = []
        for y, row in enumerate(ir.grid):
            cells: list[Cell] = []
            for x, puz_cell in enumerate(row):
                solution = puz_cell.solution
                if puz_cell.has_rebus and puz_cell.rebus_key in rebus_table:
                    solution = rebus_table[puz_cell.rebus_key]
                cells.append(Cell(
                    is_black=puz_cell.is_black,
                    solution=None if puz_cell.is_black else solution,
                    number=numbers[y][x],
                    is_circled=True if puz_cell.is_circled else None,
                    has_rebus=True if puz_cell.has_rebus else None,
                    rebus_key=puz_cell.rebus_key if puz_cell.has_rebus else None,
                ))
            rows.append(cells)

        timer = None
        if ir.timer is not None:
            timer = {"elapsed_seconds": ir.timer.elapsed_seconds, "running": ir.timer.running}

        return Puzzle(
            title=ir.metadata.title,
            author=ir.metadata.author,
            copyright=ir.metadata.copyright,
            notes=ir.metadata.notes,
            grid=Grid(width=ir.width, height=ir.height, cells=rows),
            clues=Clues(
                across=[Clue(number=c.number, text=c.text) for c in ir.across],
                down=[Clue(number=c.number, text=c.text) for c in ir.down],
            ),
            rebus_table=dict(ir.rebus_table) if ir.rebus_table else None,
            additional_properties=opaque(
                is_scrambled=True if ir.is_scrambled else None,
                timer=timer,
                version=ir.header.version or None,
            ),
        )


def decode_puz(data: Any, options: Any = None) -> PuzPuzzle:
    """Decode .puz bytes (or a base64 string) into a ``PuzPuzzle``."""
    return PuzParser().decode(data, resolve_options(options))


def convert_puz(puzzle: PuzPuzzle) -> Puzzle:
    """Convert a ``PuzPuzzle`` into the canonical ``Puzzle``."""
    return PuzParser().convert(puzzle)
