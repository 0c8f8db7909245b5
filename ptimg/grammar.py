from __future__ import annotations
"""
Region-copy instruction language.

    instruction := key ":" size "+" offset ">" dest
    key         := ASCII letters (one or more)
    size        := uint "," uint      (width, height)
    offset      := uint "," uint      (source x, source y)
    dest        := int "," int        (destination x, destination y; may be negative)

Example: "tileA:256,256+0,0>128,-64" copies a 256x256 block from the top-left of
resource `tileA` so that it lands at (128,-64) on the canvas.
"""

from dataclasses import dataclass
from typing import NamedTuple, Tuple

from common.types import Box
from ptimg.errors import ParseError


U32_MAX = 2 ** 32 - 1
I64_MIN = -(2 ** 63)
I64_MAX = 2 ** 63 - 1


class Vec2(NamedTuple):
    x: int
    y: int


@dataclass(frozen=True, slots=True)
class Instruction:
    """
    One copy: the `size` rectangle at `src` in resource `key` is written with its
    top-left corner at `dst` on the destination canvas.
    """
    key: str
    size: Vec2
    src: Vec2
    dst: Vec2

    @property
    def source_box(self) -> Box:
        return (self.src.x, self.src.y, self.size.x, self.size.y)

    @property
    def dest_box(self) -> Box:
        return (self.dst.x, self.dst.y, self.size.x, self.size.y)


def _is_key_char(c: str) -> bool:
    return c.isascii() and c.isalpha()


def _is_digit(c: str) -> bool:
    return "0" <= c <= "9"


class _Cursor:
    """Left-to-right scanner over one instruction string."""

    __slots__ = ("text", "pos")

    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def fail(self, expected: str, at: int | None = None) -> ParseError:
        return ParseError(self.text, self.pos if at is None else at, expected)

    def _span(self, pred) -> str:
        start = self.pos
        n = len(self.text)
        while self.pos < n and pred(self.text[self.pos]):
            self.pos += 1
        return self.text[start:self.pos]

    def key(self) -> str:
        k = self._span(_is_key_char)
        if not k:
            raise self.fail("resource key")
        return k

    def tag(self, sep: str) -> None:
        if not self.text.startswith(sep, self.pos):
            raise self.fail(repr(sep))
        self.pos += len(sep)

    def uint(self, what: str, limit: int = U32_MAX) -> int:
        start = self.pos
        digits = self._span(_is_digit)
        if not digits:
            raise self.fail(what)
        value = int(digits)
        if value > limit:
            raise self.fail(f"{what} <= {limit}", at=start)
        return value

    def sint(self, what: str) -> int:
        if self.text.startswith("-", self.pos):
            self.pos += 1
            return -self.uint(what, limit=-I64_MIN)
        return self.uint(what, limit=I64_MAX)

    def pair(self, read, names: Tuple[str, str]) -> Vec2:
        x = read(names[0])
        self.tag(",")
        y = read(names[1])
        return Vec2(x, y)

    def end(self) -> None:
        if self.pos != len(self.text):
            raise self.fail("end of instruction")


def parse_instruction(text: str) -> Instruction:
    """
    Decode one instruction string. The whole string must match.

    Raises:
        ParseError: with the offending position and what was expected there.
    """
    if not isinstance(text, str):
        raise TypeError(f"instruction must be str, got {type(text).__name__}")
    cur = _Cursor(text)
    key = cur.key()
    cur.tag(":")
    size = cur.pair(cur.uint, ("width", "height"))
    cur.tag("+")
    src = cur.pair(cur.uint, ("source x", "source y"))
    cur.tag(">")
    dst = cur.pair(cur.sint, ("destination x", "destination y"))
    cur.end()
    return Instruction(key=key, size=size, src=src, dst=dst)


def format_instruction(ins: Instruction) -> str:
    """Canonical text form; parse_instruction(format_instruction(i)) == i."""
    return f"{ins.key}:{ins.size.x},{ins.size.y}+{ins.src.x},{ins.src.y}>{ins.dst.x},{ins.dst.y}"
