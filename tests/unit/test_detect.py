"""
Unit tests for format detection (xword_ingest.detect).

Detection only orders candidates; every test checks that the full set of
formats is always returned, most likely first.
"""

import pytest

from xword_ingest.detect import detect_format_hints, get_ordered_formats

ALL = {"ipuz", "puz", "jpz", "xd"}

XD_SAMPLE = """\
Title: Tiny
Author: Someone


AB
CD


A1. First ~ AB
"""

JPZ_SAMPLE = '<?xml version="1.0"?><crossword-compiler-applet/>'


class TestOrderedFormats:

    def test_default_order_without_signals(self):
        assert get_ordered_formats("???") == ["ipuz", "puz", "jpz", "xd"]

    @pytest.mark.parametrize("filename,first", [
        ("daily.puz", "puz"),
        ("daily.IPUZ", "ipuz"),
        ("dir/daily.jpz", "jpz"),
        ("daily.xd", "xd"),
    ])
    def test_extension_first(self, filename, first):
        order = get_ordered_formats("???", filename=filename)
        assert order[0] == first
        assert set(order) == ALL
        assert len(order) == 4

    def test_unknown_extension_ignored(self):
        assert get_ordered_formats("???", filename="notes.txt")[0] == "ipuz"

    def test_xd_content(self):
        assert get_ordered_formats(XD_SAMPLE)[0] == "xd"

    def test_jpz_content(self):
        assert get_ordered_formats(JPZ_SAMPLE)[0] == "jpz"

    def test_jsonp_content(self):
        assert get_ordered_formats('ipuz({"version": "x"})')[0] == "ipuz"

    def test_bom_and_whitespace_ignored(self):
        assert get_ordered_formats('\ufeff\n  {"version": "x"}')[0] == "ipuz"

    def test_puz_marker_in_bytes(self, mini_puz):
        assert get_ordered_formats(mini_puz)[0] == "puz"

    def test_extension_beats_content(self):
        order = get_ordered_formats(XD_SAMPLE, filename="x.jpz")
        assert order[:2] == ["jpz", "xd"]

    def test_no_duplicates_when_signals_agree(self, mini_puz):
        order = get_ordered_formats(mini_puz, filename="x.puz")
        assert order.count("puz") == 1
        assert set(order) == ALL


class TestHints:

    def test_binary_fallback_for_unclaimed_bytes(self):
        hints = detect_format_hints(b"\x00\x01\x02")
        assert [(h.format, h.confidence) for h in hints] == [("puz", "medium")]

    def test_no_fallback_for_text(self):
        assert detect_format_hints("\x00\x01\x02") == []

    def test_extension_hint_reason(self):
        hints = detect_format_hints("", filename="a.xd")
        assert hints[0].format == "xd"
        assert hints[0].confidence == "high"
        assert "extension" in hints[0].reason

    def test_undecodable_bytes_do_not_raise(self):
        hints = detect_format_hints(b"\xff\xfe<?xml", encoding="utf-8")
        assert all(h.format in ALL for h in hints)
