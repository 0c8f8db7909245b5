from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List, Mapping, Optional, Union

import numpy as np

from common.types import PixelBuffer, RestoredView, as_rgba
from ptimg.descriptor import Descriptor, View
from ptimg.errors import BoundsError, PtimgError, ResolutionError
from ptimg.grammar import Instruction, parse_instruction


log = logging.getLogger(__name__)

Resolver = Callable[[str], PixelBuffer]
Sources = Union[Mapping[str, PixelBuffer], Resolver]


# -----------------------------
# Resolvers
# -----------------------------

def make_resolver(buffers: Mapping[str, np.ndarray]) -> Resolver:
    """
    Keyed lookup over a fixed set of source buffers.
    Buffers are promoted to RGBA once up front so the resolver is read-only afterwards.
    """
    table = {str(k): as_rgba(v) for k, v in buffers.items()}

    def resolve(key: str) -> np.ndarray:
        try:
            return table[key]
        except KeyError:
            raise ResolutionError(key) from None

    return resolve


def single_source_resolver(buffer: np.ndarray) -> Resolver:
    """
    Bind every resource key to the same image.
    Only correct when each view references exactly one physical source.
    """
    rgba = as_rgba(buffer)

    def resolve(key: str) -> np.ndarray:
        return rgba

    return resolve


def _as_resolver(sources: Sources) -> Resolver:
    if isinstance(sources, Mapping):
        return make_resolver(sources)
    if not callable(sources):
        raise TypeError("sources must be a mapping or a callable resolver")

    def resolve(key: str) -> np.ndarray:
        try:
            buf = sources(key)
        except ResolutionError:
            raise
        except KeyError:
            raise ResolutionError(key) from None
        if buf is None:
            raise ResolutionError(key)
        return as_rgba(buf)

    return resolve


# -----------------------------
# Canvas operations
# -----------------------------

def new_canvas(width: int, height: int) -> np.ndarray:
    """Transparent black RGBA canvas of shape (height, width, 4)."""
    if width < 0 or height < 0:
        raise ValueError("canvas dimensions must be >= 0")
    return np.zeros((height, width, 4), dtype=np.uint8)


def apply_instruction(canvas: np.ndarray, source: np.ndarray, ins: Instruction) -> np.ndarray:
    """
    Copy ins.source_box of `source` onto `canvas` at ins.dst, in place.

    The source rect must lie inside the source (BoundsError otherwise). The
    destination is clipped jointly: pixels landing outside the canvas are dropped
    together with the source pixels that map to them. All four channels are
    overwritten; nothing is blended.
    """
    src = as_rgba(source)
    sh, sw = src.shape[:2]
    sx, sy, w, h = ins.source_box
    if sx + w > sw or sy + h > sh:
        raise BoundsError(ins.key, ins.source_box, (sw, sh))

    dh, dw = canvas.shape[:2]
    dx, dy = ins.dst

    # overlap in rect-local coordinates
    x0 = max(0, -dx)
    y0 = max(0, -dy)
    x1 = min(w, dw - dx)
    y1 = min(h, dh - dy)
    if x1 <= x0 or y1 <= y0:
        return canvas

    # slicing only creates a view of the source; it is never written
    part = src[sy + y0:sy + y1, sx + x0:sx + x1]
    canvas[dy + y0:dy + y1, dx + x0:dx + x1] = part
    return canvas


def restore_view(view: View, sources: Sources, index: int = 0) -> RestoredView:
    """
    Build one canvas by applying the view's instructions in order.

    Any PtimgError aborts the view; the exception is tagged with `view_index`
    and `instruction_index` before it propagates. No partial canvas escapes.
    """
    resolve = _as_resolver(sources)
    canvas = new_canvas(view.width, view.height)
    bound: Dict[str, np.ndarray] = {}

    for i, coord in enumerate(view.coords):
        try:
            ins = parse_instruction(coord)
            src = bound.get(ins.key)
            if src is None:
                src = bound[ins.key] = resolve(ins.key)
            apply_instruction(canvas, src, ins)
        except PtimgError as e:
            e.view_index = index
            e.instruction_index = i
            raise

    return RestoredView(index=index, width=view.width, height=view.height, pixels=canvas)


def restore(
    descriptor: Descriptor,
    sources: Sources,
    *,
    workers: Optional[int] = None,
    skip_failed: bool = False,
) -> List[RestoredView]:
    """
    Restore every view of `descriptor`, returned in view order.

    Params:
        sources: mapping key -> pixel buffer, or a resolver callable
        workers: >1 composes views on a thread pool (views share nothing mutable)
        skip_failed: log and drop failed views instead of raising. Dropped views
            leave a gap in the returned indices.
    """
    resolve = _as_resolver(sources)
    views = list(enumerate(descriptor.views))

    def one(item) -> RestoredView:
        i, v = item
        return restore_view(v, resolve, index=i)

    def collect(results) -> List[RestoredView]:
        out: List[RestoredView] = []
        for i, get in results:
            try:
                out.append(get())
            except PtimgError as e:
                if not skip_failed:
                    raise
                log.warning("View restore failed; skipping", extra={"extra": {"view": i, "error": str(e)}})
        return out

    if workers and workers > 1 and len(views) > 1:
        with ThreadPoolExecutor(max_workers=workers) as ex:
            futures = [(item[0], ex.submit(one, item)) for item in views]
            return collect((i, f.result) for i, f in futures)

    return collect((item[0], (lambda item=item: one(item))) for item in views)
