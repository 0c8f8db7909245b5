from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Tuple

import numpy as np


# (H, W, 4) uint8 RGBA
PixelBuffer = np.ndarray

# x, y, w, h
Box = Tuple[int, int, int, int]


def as_rgba(buf: np.ndarray) -> np.ndarray:
    """
    Promote a gray (H,W), gray+alpha (H,W,2), RGB (H,W,3) or RGBA (H,W,4) uint8 array to RGBA.
    RGBA input is returned as-is (no copy); missing alpha is filled with 255.
    """
    if not isinstance(buf, np.ndarray):
        raise TypeError("pixel buffer must be a numpy ndarray")
    if buf.dtype != np.uint8:
        raise TypeError(f"pixel buffer must be uint8, got {buf.dtype}")
    if buf.ndim == 2:
        buf = buf[..., None]
    if buf.ndim != 3:
        raise ValueError(f"pixel buffer must be 2D or 3D, got shape {buf.shape}")

    h, w, c = buf.shape
    if c == 4:
        return buf
    out = np.empty((h, w, 4), dtype=np.uint8)
    if c == 1:
        out[..., :3] = buf
        out[..., 3] = 255
    elif c == 2:
        out[..., :3] = buf[..., :1]
        out[..., 3] = buf[..., 1]
    elif c == 3:
        out[..., :3] = buf
        out[..., 3] = 255
    else:
        raise ValueError(f"unsupported channel count: {c}")
    return out


@dataclass(slots=True)
class RestoredView:
    """
    A reconstructed destination canvas handed to the caller.

    Attributes:
        index: position of the view within the descriptor's view list.
        width, height: declared view dimensions in pixels.
        pixels: np.ndarray of shape (H,W,4), dtype uint8, owned by the caller.
    """
    index: int
    width: int
    height: int
    pixels: np.ndarray

    def __post_init__(self) -> None:
        if not isinstance(self.pixels, np.ndarray):
            raise TypeError("pixels must be a numpy ndarray")
        if self.pixels.shape != (self.height, self.width, 4):
            raise ValueError("width/height do not match pixel buffer shape")
        if self.pixels.dtype != np.uint8:
            raise ValueError("pixels must be uint8")

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)

    def to_meta(self) -> Dict[str, Any]:
        """Metadata without pixel data (safe to log/serialize)."""
        return {"index": self.index, "width": self.width, "height": self.height}
