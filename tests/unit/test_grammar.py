"""
Unit tests for the region-copy instruction language
"""

import pytest
import numpy as np
import os
import sys

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from ptimg.errors import ParseError, PtimgError
from ptimg.grammar import I64_MAX, I64_MIN, U32_MAX, Instruction, Vec2, format_instruction, parse_instruction


class TestParseInstruction:
    """Test cases for parse_instruction"""

    def test_parse_documented_example(self):
        """Test the 'tileA' example: negative destination y"""
        ins = parse_instruction("tileA:256,256+0,0>128,-64")
        assert ins.key == "tileA"
        assert ins.size == Vec2(256, 256)
        assert ins.src == Vec2(0, 0)
        assert ins.dst == Vec2(128, -64)

    def test_boxes(self):
        """Test source_box / dest_box helpers"""
        ins = parse_instruction("i:10,20+30,40>-5,6")
        assert ins.source_box == (30, 40, 10, 20)
        assert ins.dest_box == (-5, 6, 10, 20)

    def test_same_string_same_result(self):
        """Test parsing is referentially transparent"""
        s = "abc:1,2+3,4>5,6"
        assert parse_instruction(s) == parse_instruction(s)

    def test_leading_zeros_and_limits(self):
        """Test numeric edge values are accepted"""
        ins = parse_instruction(f"k:{U32_MAX},007+0,0>{I64_MIN},{I64_MAX}")
        assert ins.size == Vec2(U32_MAX, 7)
        assert ins.dst == Vec2(I64_MIN, I64_MAX)

    def test_round_trip_random(self):
        """Test format then parse gives back the original tuple"""
        rng = np.random.default_rng(7)
        for n in range(50):
            key = "".join(chr(int(c)) for c in rng.integers(ord("a"), ord("z") + 1, size=1 + n % 5))
            w, h, sx, sy = (int(v) for v in rng.integers(0, 5000, size=4))
            dx, dy = (int(v) for v in rng.integers(-5000, 5000, size=2))
            ins = Instruction(key, Vec2(w, h), Vec2(sx, sy), Vec2(dx, dy))
            assert parse_instruction(format_instruction(ins)) == ins

    @pytest.mark.parametrize(
        "text, position, expected",
        [
            ("a:1,1+0,0>0,0x", 13, "end of instruction"),
            ("a:1,1+0,0", 9, "'>'"),
            ("a:x,1+0,0>0,0", 2, "width"),
            (":1,1+0,0>0,0", 0, "resource key"),
            (" a:1,1+0,0>0,0", 0, "resource key"),
            ("a:1,1+0,0>0,0 ", 13, "end of instruction"),
            ("a:1;1+0,0>0,0", 3, "','"),
            ("a:1,1+-1,0>0,0", 6, "source x"),
            ("a:1,1+0,0>--1,0", 11, "destination x"),
            ("a:1,1+0,0>0,", 12, "destination y"),
            ("a1:1,1+0,0>0,0", 1, "':'"),
            ("", 0, "resource key"),
        ],
    )
    def test_rejects_malformed(self, text, position, expected):
        """Test malformed strings raise ParseError with position context"""
        with pytest.raises(ParseError) as ei:
            parse_instruction(text)
        err = ei.value
        assert err.text == text
        assert err.position == position
        assert err.expected == expected
        assert isinstance(err, PtimgError)
        assert isinstance(err, ValueError)

    def test_rejects_u32_overflow(self):
        """Test size/offset fields are bounded to unsigned 32-bit"""
        with pytest.raises(ParseError) as ei:
            parse_instruction(f"a:{U32_MAX + 1},1+0,0>0,0")
        assert ei.value.position == 2

    def test_rejects_i64_overflow(self):
        """Test destination fields are bounded to signed 64-bit"""
        with pytest.raises(ParseError):
            parse_instruction(f"a:1,1+0,0>{I64_MAX + 1},0")
        with pytest.raises(ParseError):
            parse_instruction(f"a:1,1+0,0>0,{I64_MIN - 1}")

    def test_rejects_non_ascii(self):
        """Test only ASCII letters and digits are accepted"""
        with pytest.raises(ParseError):
            parse_instruction("é:1,1+0,0>0,0")
        with pytest.raises(ParseError):
            parse_instruction("a:\uff11,1+0,0>0,0")

    def test_non_string(self):
        """Test non-string input is a type error, not a parse error"""
        with pytest.raises(TypeError):
            parse_instruction(b"a:1,1+0,0>0,0")

    def test_error_message_mentions_position(self):
        """Test the error message is useful for diagnostics"""
        with pytest.raises(ParseError, match="at 13"):
            parse_instruction("a:1,1+0,0>0,0x")
