from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Optional, Tuple


def iso_now_ms() -> str:
    """UTC ISO-8601 timestamp with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_size(s: Optional[str]) -> Optional[Tuple[int, int]]:
    """'WxH' or 'W,H' -> (W, H)."""
    if not s:
        return None
    if "x" in s.lower():
        w, h = s.lower().split("x")
    else:
        parts = s.split(",")
        if len(parts) != 2:
            raise ValueError("Size must be WxH or W,H")
        w, h = parts
    return (int(w), int(h))


def timer_ms(func):
    """
    Decorator that returns (result, elapsed_ms) for timing a single call.
    """
    def wrapper(*args, **kwargs):
        t0 = time.perf_counter()
        out = func(*args, **kwargs)
        dt_ms = (time.perf_counter() - t0) * 1e3
        return out, dt_ms
    return wrapper
