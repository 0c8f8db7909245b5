from __future__ import annotations

from typing import Optional, Tuple

from common.types import Box


class PtimgError(Exception):
    """
    Base class for every failure raised while decoding or restoring a descriptor.

    The compositor sets `view_index` and `instruction_index` when the error
    escapes a view restore; both stay None otherwise.
    """
    view_index: Optional[int] = None
    instruction_index: Optional[int] = None


class ParseError(PtimgError, ValueError):
    """
    Malformed region-copy instruction.

    Attributes:
        text: the full instruction string.
        position: 0-based offset where decoding stopped.
        expected: what the grammar wanted at `position`.
    """

    def __init__(self, text: str, position: int, expected: str):
        self.text = text
        self.position = position
        self.expected = expected
        found = text[position:position + 12] or "<end>"
        super().__init__(f"bad instruction {text!r}: expected {expected} at {position}, found {found!r}")


class ResolutionError(PtimgError, LookupError):
    """The resolver has no pixel buffer for a resource key."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"no source bound to resource key {key!r}")


class BoundsError(PtimgError):
    """A source rectangle does not fit inside its source buffer."""

    def __init__(self, key: str, box: Box, source_size: Tuple[int, int]):
        self.key = key
        self.box = box
        self.source_size = source_size
        x, y, w, h = box
        sw, sh = source_size
        super().__init__(
            f"source rect {w}x{h}+{x}+{y} of {key!r} exceeds source bounds {sw}x{sh}"
        )


class DescriptorError(PtimgError, ValueError):
    """Decoded descriptor data is missing fields or has the wrong shape."""
