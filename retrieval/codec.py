from __future__ import annotations

import io

import numpy as np
from PIL import Image


# output format -> (Pillow format name, save kwargs, media type)
FORMATS = {
    "webp": ("WEBP", {"lossless": True, "quality": 100, "exact": True}, "image/webp"),
    "png": ("PNG", {}, "image/png"),
}

# libwebp refuses larger frames
WEBP_MAX_DIM = 16383

# what encode_image (or Pillow underneath it) raises for a canvas it cannot write
ENCODE_ERRORS = (ValueError, OSError, MemoryError)


def decode_image(data: bytes) -> np.ndarray:
    """Decode JPEG/PNG/WebP bytes into an (H,W,4) uint8 RGBA array."""
    with Image.open(io.BytesIO(data)) as img:
        return np.asarray(img.convert("RGBA"), dtype=np.uint8).copy()


def encode_image(pixels: np.ndarray, fmt: str = "webp") -> bytes:
    """Encode an (H,W,4) uint8 array; fmt is 'webp' (lossless) or 'png'."""
    try:
        pil_fmt, kwargs, _ = FORMATS[fmt.lower()]
    except KeyError:
        raise ValueError(f"unsupported output format: {fmt}") from None
    buf = io.BytesIO()
    if pixels.ndim != 3 or pixels.shape[2] != 4 or pixels.dtype != np.uint8:
        raise ValueError(f"expected (H,W,4) uint8 pixels, got {pixels.shape} {pixels.dtype}")
    h, w = pixels.shape[:2]
    if h == 0 or w == 0:
        raise ValueError(f"cannot encode an empty {w}x{h} image")
    if pil_fmt == "WEBP" and max(w, h) > WEBP_MAX_DIM:
        raise ValueError(f"{w}x{h} exceeds the WebP limit of {WEBP_MAX_DIM} pixels per side")
    # (H,W,4) uint8 is inferred as RGBA
    Image.fromarray(np.ascontiguousarray(pixels)).save(buf, format=pil_fmt, **kwargs)
    return buf.getvalue()


def media_type(fmt: str) -> str:
    return FORMATS[fmt.lower()][2]
