"""
Unit tests for the binary .puz parser (xword_ingest.parsers.puz).

Samples are assembled with ``build_puz`` from conftest; each test varies a
single aspect of an otherwise valid file.
"""

import base64
import struct

import pytest

from xword_ingest.config import GridSize, ParseOptions
from xword_ingest.exceptions import ErrorCode, InvalidFileError, PuzParseError
from xword_ingest.parsers.puz import PuzParser, convert_puz, decode_puz, puz_checksum
from tests.conftest import BIG_ROWS, MINI_CLUES, MINI_ROWS, build_puz, build_section


class TestChecksum:

    def test_known_values(self):
        assert puz_checksum(b"") == 0
        assert puz_checksum(b"\x01") == 1
        assert puz_checksum(b"\x01\x01") == 0x8001
        assert puz_checksum(b"ab") == 0x8092

    def test_seed_chains(self):
        assert puz_checksum(b"b", puz_checksum(b"a")) == puz_checksum(b"ab")


class TestDecode:
    """decode_puz() on well-formed files."""

    def test_header_and_metadata(self, mini_puz):
        ir = decode_puz(mini_puz)
        assert (ir.width, ir.height) == (3, 3)
        assert ir.header.version == "1.3"
        assert ir.header.num_clues == 4
        assert ir.metadata.title == "Mini"
        assert ir.metadata.author == "Tester"
        assert ir.metadata.copyright is None
        assert ir.metadata.notes is None

    def test_grid(self, mini_puz):
        ir = decode_puz(mini_puz)
        assert ir.grid[0][0].solution == "C"
        assert ir.grid[1][1].is_black
        assert ir.grid[1][1].solution is None
        assert all(cell.player_state is None for row in ir.grid for cell in row)

    def test_clues_two_passes(self, mini_puz):
        ir = decode_puz(mini_puz)
        assert [(c.number, c.text) for c in ir.across] == [(1, "Feline"), (3, "Sleep spot")]
        assert [(c.number, c.text) for c in ir.down] == [(1, "Taxi"), (2, "Sleep, briefly")]

    def test_player_fill(self):
        ir = decode_puz(build_puz(MINI_ROWS, MINI_CLUES, fill="CA-A.----"))
        assert ir.grid[0][0].player_state == "C"
        assert ir.grid[0][1].player_state == "A"
        assert ir.grid[0][2].player_state is None
        assert ir.grid[1][0].player_state == "A"

    def test_vendor_preamble(self):
        ir = decode_puz(build_puz(MINI_ROWS, MINI_CLUES, preamble=b"JUNKJUNK"))
        assert ir.header.offset == 8
        assert ir.grid[2][2].solution == "D"

    def test_base64_string(self, mini_puz):
        ir = decode_puz(base64.b64encode(mini_puz).decode("ascii"))
        assert ir.metadata.title == "Mini"

    def test_bytearray_and_memoryview(self, mini_puz):
        assert decode_puz(bytearray(mini_puz)).width == 3
        assert decode_puz(memoryview(mini_puz)).width == 3

    def test_missing_notes_string(self, mini_puz):
        ir = decode_puz(mini_puz[:-1])
        assert ir.metadata.notes is None

    def test_unterminated_notes_read_to_end(self):
        ir = decode_puz(build_puz(MINI_ROWS, MINI_CLUES, notes="Have fun")[:-1])
        assert ir.metadata.notes == "Have fun"

    def test_notes(self):
        ir = decode_puz(build_puz(MINI_ROWS, MINI_CLUES, notes="Have fun"))
        assert ir.metadata.notes == "Have fun"

    def test_fewer_clues_than_entries(self):
        ir = decode_puz(build_puz(MINI_ROWS, MINI_CLUES[:3]))
        assert len(ir.across) == 2
        assert [c.number for c in ir.down] == [1]

    def test_utf8_strings_in_v2(self):
        data = build_puz(MINI_ROWS, MINI_CLUES, title="Café ☕", version="2.0", encoding="utf-8")
        assert decode_puz(data).metadata.title == "Café ☕"

    def test_latin1_strings_in_v1(self):
        data = build_puz(MINI_ROWS, MINI_CLUES, title="Café")
        assert decode_puz(data).metadata.title == "Café"

    def test_scrambled(self):
        ir = decode_puz(build_puz(MINI_ROWS, MINI_CLUES, scrambled_tag=4))
        assert ir.is_scrambled is True


class TestSections:
    """Optional tagged sections after the notes string."""

    def test_rebus(self, big_rebus_puz):
        ir = decode_puz(big_rebus_puz)
        assert ir.rebus_table == {0: "ZZ"}
        assert ir.grid[0][0].has_rebus
        assert ir.grid[0][0].rebus_key == 0
        assert sum(cell.has_rebus for row in ir.grid for cell in row) == 1

    def test_circles(self):
        gext = bytes([0x80, 0, 0, 0, 0, 0, 0, 0, 0x80 | 0x10])
        ir = decode_puz(build_puz(MINI_ROWS, MINI_CLUES, sections=[(b"GEXT", gext)]))
        assert ir.grid[0][0].is_circled
        assert not ir.grid[0][1].is_circled
        assert ir.grid[2][2].is_circled
        assert ir.grid[2][2].gext_flags == 0x90

    @pytest.mark.parametrize("payload,elapsed,running", [
        (b"120,1", 120, True),
        (b"30,0", 30, False),
        (b"abc", 0, False),
    ])
    def test_timer(self, payload, elapsed, running):
        ir = decode_puz(build_puz(MINI_ROWS, MINI_CLUES, sections=[(b"LTIM", payload)]))
        assert ir.timer.elapsed_seconds == elapsed
        assert ir.timer.running is running

    def test_unknown_section_recorded(self):
        data = build_puz(
            MINI_ROWS, MINI_CLUES,
            sections=[(b"RUSR", b"\x00" * 9), (b"LTIM", b"5,0")],
        )
        ir = decode_puz(data)
        assert ir.unknown_sections == ["RUSR"]
        assert ir.timer.elapsed_seconds == 5

    def test_null_padding_between_sections(self, mini_puz):
        data = mini_puz + b"\x00\x00\x00" + build_section(b"LTIM", b"7,0")
        assert decode_puz(data).timer.elapsed_seconds == 7

    def test_truncated_section_stops_silently(self, mini_puz):
        data = mini_puz + b"GEXT" + struct.pack("<HH", 50, 0) + b"\x80\x80"
        ir = decode_puz(data)
        assert not any(cell.is_circled for row in ir.grid for cell in row)

    def test_short_trailing_garbage_ignored(self, mini_puz):
        assert decode_puz(mini_puz + b"GEX").width == 3

    def test_rtbl_malformed_entries_skipped(self):
        data = build_puz(
            MINI_ROWS, MINI_CLUES,
            sections=[(b"RTBL", b" 1:ONE;xx:TWO;junk; 2:TWO;")],
        )
        assert decode_puz(data).rebus_table == {1: "ONE", 2: "TWO"}


class TestDecodeErrors:
    """Mismatch vs broken-file classification."""

    def test_no_magic_is_mismatch(self):
        with pytest.raises(PuzParseError) as exc_info:
            decode_puz(b"hello world")
        assert exc_info.value.code is ErrorCode.PUZ_INVALID_HEADER
        assert exc_info.value.is_format_mismatch()

    def test_magic_too_early(self):
        with pytest.raises(PuzParseError) as exc_info:
            decode_puz(b"XACROSS&DOWN\x00" + b"\x00" * 60)
        assert exc_info.value.code is ErrorCode.PUZ_INVALID_HEADER

    def test_truncated_header_is_mismatch(self, mini_puz):
        with pytest.raises(PuzParseError) as exc_info:
            decode_puz(mini_puz[:30])
        assert exc_info.value.code is ErrorCode.PUZ_INVALID_HEADER
        assert isinstance(exc_info.value.__cause__, Exception)

    def test_bad_base64(self):
        with pytest.raises(PuzParseError) as exc_info:
            decode_puz("abc")
        assert exc_info.value.code is ErrorCode.PUZ_INVALID_HEADER

    @pytest.mark.parametrize("width,height", [(0, 3), (3, 0), (101, 3), (3, 255)])
    def test_bad_dimensions(self, width, height):
        data = build_puz(MINI_ROWS, MINI_CLUES, width=width, height=height)
        with pytest.raises(PuzParseError) as exc_info:
            decode_puz(data)
        err = exc_info.value
        assert err.code is ErrorCode.PUZ_INVALID_GRID
        assert not err.is_format_mismatch()
        assert err.context.details == {"width": width, "height": height}

    def test_tighter_limit(self, mini_puz):
        with pytest.raises(PuzParseError) as exc_info:
            decode_puz(mini_puz, {"max_grid_size": {"width": 2, "height": 2}})
        assert exc_info.value.code is ErrorCode.PUZ_INVALID_GRID

    def test_truncated_body_is_not_mismatch(self, mini_puz):
        with pytest.raises(PuzParseError) as exc_info:
            decode_puz(mini_puz[:0x34 + 5])
        err = exc_info.value
        assert err.code is ErrorCode.PUZ_PARSE_ERROR
        assert not err.is_format_mismatch()

    def test_unsupported_input_type(self):
        with pytest.raises(InvalidFileError):
            decode_puz(12345)


class TestChecksumVerification:

    def test_valid_file_passes(self, mini_puz, big_rebus_puz):
        opts = ParseOptions(verify_checksums=True)
        assert decode_puz(mini_puz, opts).width == 3
        assert decode_puz(big_rebus_puz, opts).width == 15

    def test_notes_included(self):
        data = build_puz(MINI_ROWS, MINI_CLUES, title="T", copyright="C", notes="N")
        assert decode_puz(data, {"verify_checksums": True}).metadata.notes == "N"

    def test_corrupt_solution(self, mini_puz):
        data = bytearray(mini_puz)
        data[0x34] = ord("X")
        assert decode_puz(bytes(data)).grid[0][0].solution == "X"
        with pytest.raises(PuzParseError) as exc_info:
            decode_puz(bytes(data), {"verify_checksums": True})
        err = exc_info.value
        assert err.code is ErrorCode.PUZ_CHECKSUM_MISMATCH
        assert err.context.field == "checksum"
        assert not err.is_format_mismatch()

    def test_corrupt_cib_checksum(self, mini_puz):
        data = bytearray(mini_puz)
        data[0x0E] ^= 0xFF
        with pytest.raises(PuzParseError) as exc_info:
            decode_puz(bytes(data), {"verify_checksums": True})
        assert exc_info.value.context.field == "cib_checksum"


class TestConvert:
    """convert_puz() produces the canonical model."""

    def test_mini(self, mini_puz):
        puzzle = convert_puz(decode_puz(mini_puz))
        assert puzzle.title == "Mini"
        assert (puzzle.grid.width, puzzle.grid.height) == (3, 3)
        numbers = [[cell.number for cell in row] for row in puzzle.grid.cells]
        assert numbers == [[1, None, 2], [None, None, None], [3, None, None]]
        assert puzzle.grid.cells[1][1].is_black
        assert puzzle.grid.cells[1][1].solution is None
        assert [c.text for c in puzzle.clues.across] == ["Feline", "Sleep spot"]
        assert puzzle.additional_properties == {"version": "1.3"}

    def test_rebus_scenario(self, big_rebus_puz):
        puzzle = convert_puz(decode_puz(big_rebus_puz))
        assert (puzzle.grid.width, puzzle.grid.height) == (15, 15)
        assert len(puzzle.grid.black_positions()) == 52
        assert puzzle.rebus_table == {0: "ZZ"}
        rebus_cells = [c for row in puzzle.grid.cells for c in row if c.has_rebus]
        assert len(rebus_cells) == 1
        assert rebus_cells[0].rebus_key == 0
        assert rebus_cells[0].solution == "ZZ"
        # 54 across + 15 down entries; the extra clue strings are left over
        assert len(puzzle.clues.across) == 54
        assert len(puzzle.clues.down) == 15

    def test_black_positions_match_solution(self, big_rebus_puz):
        puzzle = convert_puz(decode_puz(big_rebus_puz))
        expected = [
            (y, x) for y, row in enumerate(BIG_ROWS) for x, ch in enumerate(row) if ch == "."
        ]
        assert puzzle.grid.black_positions() == expected

    def test_timer_and_scrambled(self):
        data = build_puz(
            MINI_ROWS, MINI_CLUES, scrambled_tag=1, sections=[(b"LTIM", b"42,1")],
        )
        props = convert_puz(decode_puz(data)).additional_properties
        assert props["is_scrambled"] is True
        assert props["timer"] == {"elapsed_seconds": 42, "running": True}

    def test_circled(self):
        gext = bytes([0x80] + [0] * 8)
        data = build_puz(MINI_ROWS, MINI_CLUES, sections=[(b"GEXT", gext)])
        cells = convert_puz(decode_puz(data)).grid.cells
        assert cells[0][0].is_circled is True
        assert cells[0][1].is_circled is None

    def test_convert_fault_is_wrapped(self, mini_puz):
        ir = decode_puz(mini_puz)
        ir.grid.pop()
        with pytest.raises(PuzParseError) as exc_info:
            convert_puz(ir)
        assert exc_info.value.code is ErrorCode.PUZ_PARSE_ERROR

    def test_parser_parse(self, mini_puz):
        puzzle = PuzParser().parse(mini_puz)
        assert puzzle.clues.down[1].number == 2
