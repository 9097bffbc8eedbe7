"""
Shared test fixtures and sample builders for xword-ingest tests.

Binary .puz samples are assembled byte-by-byte here (header, strings,
tagged sections, checksums) so that tests can vary one field at a time.
Small text samples for the other formats live at the top of their own
test modules.
"""

from __future__ import annotations

import json
import struct
from typing import Any

import pytest

from xword_ingest.parsers.puz import puz_checksum

# ---------------------------------------------------------------------------
# Canonical small puzzle used across formats
#
#   C A T      1-Across CAT, 3-Across BED
#   A # O      1-Down CAB,   2-Down TOD
#   B E D
# ---------------------------------------------------------------------------
MINI_ROWS = ["CAT", "A.O", "BED"]
MINI_CLUES = ["Feline", "Sleep spot", "Taxi", "Sleep, briefly"]

# 15x15 grid with exactly 52 black squares
BIG_ROWS = ["ABC.DEF.GHI.JK."] * 13 + ["ABCDEFGHIJKLMNO"] * 2
BIG_CLUES = [f"Clue {n}" for n in range(1, 79)]


def build_section(tag: bytes, payload: bytes) -> bytes:
    """Encode one tagged extra section (with trailing NUL)."""
    return tag + struct.pack("<HH", len(payload), puz_checksum(payload)) + payload + b"\x00"


def build_puz(
    rows: list[str],
    clues: list[str],
    *,
    title: str = "",
    author: str = "",
    copyright: str = "",
    notes: str = "",
    version: str = "1.3",
    scrambled_tag: int = 0,
    sections: list[tuple[bytes, bytes]] | tuple = (),
    preamble: bytes = b"",
    fill: str | None = None,
    width: int | None = None,
    height: int | None = None,
    encoding: str = "latin-1",
) -> bytes:
    """Assemble a complete .puz file with valid checksums.

    ``width``/``height`` override the header values (for corrupt-header
    tests) without changing the body.
    """
    grid_height = len(rows)
    grid_width = len(rows[0]) if rows else 0
    solution = "".join(rows).encode("latin-1")
    if fill is None:
        fill_bytes = bytes(ord(".") if b == ord(".") else ord("-") for b in solution)
    else:
        fill_bytes = fill.encode("latin-1")

    cib = struct.pack(
        "<BBHHH",
        grid_width if width is None else width,
        grid_height if height is None else height,
        len(clues),
        1,
        scrambled_tag,
    )
    cib_checksum = puz_checksum(cib)

    def z(text: str) -> bytes:
        return text.encode(encoding) + b"\x00"

    overall = puz_checksum(solution, cib_checksum)
    overall = puz_checksum(fill_bytes, overall)
    for text in (title, author, copyright):
        if text:
            overall = puz_checksum(z(text), overall)
    for clue in clues:
        if clue:
            overall = puz_checksum(clue.encode(encoding), overall)
    if notes:
        overall = puz_checksum(z(notes), overall)

    header = (
        struct.pack("<H", overall)
        + b"ACROSS&DOWN\x00"
        + struct.pack("<H", cib_checksum)
        + b"\x00" * 8                      # masked checksums
        + version.encode("ascii").ljust(4, b"\x00")[:4]
        + b"\x00\x00"                      # reserved
        + b"\x00\x00"                      # scrambled checksum
        + b"\x00" * 12                     # reserved
        + cib
    )
    assert len(header) == 0x34

    body = (
        solution
        + fill_bytes
        + z(title)
        + z(author)
        + z(copyright)
        + b"".join(z(c) for c in clues)
        + z(notes)
    )
    extras = b"".join(build_section(tag, payload) for tag, payload in sections)
    return preamble + header + body + extras


def build_ipuz(
    puzzle: list[list[Any]],
    *,
    solution: list[list[Any]] | None = None,
    clues: dict[str, list[Any]] | None = None,
    **fields: Any,
) -> dict[str, Any]:
    """A minimal valid ipuz crossword document as a dict."""
    doc: dict[str, Any] = {
        "version": "http://ipuz.org/v2",
        "kind": ["http://ipuz.org/crossword#1"],
        "dimensions": {"width": len(puzzle[0]) if puzzle else 0, "height": len(puzzle)},
        "puzzle": puzzle,
    }
    if solution is not None:
        doc["solution"] = solution
    if clues is not None:
        doc["clues"] = clues
    doc.update(fields)
    return doc


def mini_ipuz_text() -> str:
    return json.dumps(build_ipuz(
        [[1, 0, 2], [0, "#", 0], [3, 0, 0]],
        solution=[["C", "A", "T"], ["A", "#", "O"], ["B", "E", "D"]],
        clues={
            "Across": [[1, "Feline"], [3, "Sleep spot"]],
            "Down": [[1, "Taxi"], [2, "Sleep, briefly"]],
        },
        title="Mini",
    ))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def puz_builder():
    """The ``build_puz`` function."""
    return build_puz


@pytest.fixture
def ipuz_builder():
    """The ``build_ipuz`` function."""
    return build_ipuz


@pytest.fixture
def mini_puz() -> bytes:
    return build_puz(MINI_ROWS, MINI_CLUES, title="Mini", author="Tester")


@pytest.fixture
def big_rebus_puz() -> bytes:
    """15x15, 52 blocks, 78 clues, one rebus square at the top-left corner."""
    grbs = bytearray(15 * 15)
    grbs[0] = 1
    return build_puz(
        BIG_ROWS,
        BIG_CLUES,
        title="Big",
        sections=[(b"GRBS", bytes(grbs)), (b"RTBL", b" 0:ZZ;")],
    )


@pytest.fixture
def mini_ipuz() -> str:
    return mini_ipuz_text()


# ---------------------------------------------------------------------------
# Pytest markers
# ---------------------------------------------------------------------------
def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "integration: mark test as end-to-end test through xword_ingest.parse()",
    )
