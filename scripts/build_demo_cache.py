#!/usr/bin/env python3
"""
Build a small offline page cache for the restore pipeline.

For every (volume, page) it writes, under <cache-root>/<dist>/<volume:02>/:
- <page:04>.jpg         a scrambled source image (full tiles shuffled)
- <page:04>.ptimg.json  the descriptor whose instructions undo the shuffle

Each descriptor has two views: the full page, and a copy inset by --margin on
every side (negative destination offsets, so the border is clipped away).

Source pages come from --src-image (the same image for every page) or are
synthesized (grid + shapes + page label).

Examples:
  python scripts/build_demo_cache.py --dist demo --volumes 2 --pages 3
  python scripts/build_demo_cache.py --dist demo --src-image scan.png --tile 96
  python -m retrieval.pipeline --dist demo --views all
"""
from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np
import cv2

# Add the project root to the path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from common.utils import parse_size
from ptimg.descriptor import Descriptor, Resource, View
from ptimg.grammar import Instruction, Vec2, format_instruction

RESOURCE_KEY = "i"


def synthesize_page(size: Tuple[int, int], label: str, seed: int = 1234) -> np.ndarray:
    """Generate an RGB page with edges and shapes, so misplaced tiles are obvious."""
    w, h = size
    rng = np.random.default_rng(seed)
    base = rng.normal(200, 12, size=(h, w, 3)).clip(0, 255).astype(np.uint8)

    # Ruled grid
    step = max(1, w // 12)
    for x in range(0, w, step):
        cv2.line(base, (x, 0), (x, h - 1), (90, 90, 90), 1)
    for y in range(0, h, step):
        cv2.line(base, (0, y), (w - 1, y), (90, 90, 90), 1)

    # Boxes & rings
    for _ in range(40):
        x1, x2 = sorted(int(v) for v in rng.integers(0, w, size=2))
        y1, y2 = sorted(int(v) for v in rng.integers(0, h, size=2))
        color = tuple(int(c) for c in rng.integers(20, 200, size=3))
        cv2.rectangle(base, (x1, y1), (x2, y2), color, 2)
    for _ in range(20):
        c = (int(rng.integers(0, w)), int(rng.integers(0, h)))
        r = int(rng.integers(6, max(7, min(w, h) // 8)))
        cv2.circle(base, c, r, (30, 30, 160), 2)

    cv2.putText(base, label, (10, h - 10), cv2.FONT_HERSHEY_SIMPLEX, 0.5, (0, 0, 0), 1, cv2.LINE_AA)
    return base


def scramble(
    page: np.ndarray,
    tile: int,
    rng: np.random.Generator,
    key: str = RESOURCE_KEY,
) -> Tuple[np.ndarray, List[Instruction]]:
    """
    Shuffle the full tile x tile blocks of `page`.

    Returns the scrambled image and the instructions that rebuild `page` from it.
    Partial blocks at the right/bottom edges stay in place and get identity copies.
    """
    h, w = page.shape[:2]
    cols, rows = w // tile, h // tile
    cells = [(c * tile, r * tile) for r in range(rows) for c in range(cols)]
    order = rng.permutation(len(cells))

    out = page.copy()
    instructions: List[Instruction] = []
    for (dx, dy), j in zip(cells, order):
        sx, sy = cells[int(j)]
        out[sy:sy + tile, sx:sx + tile] = page[dy:dy + tile, dx:dx + tile]
        instructions.append(Instruction(key, Vec2(tile, tile), Vec2(sx, sy), Vec2(dx, dy)))

    # edge strips (identity)
    if w > cols * tile:
        ew = w - cols * tile
        instructions.append(Instruction(key, Vec2(ew, h), Vec2(cols * tile, 0), Vec2(cols * tile, 0)))
    if h > rows * tile:
        eh = h - rows * tile
        instructions.append(Instruction(key, Vec2(cols * tile, eh), Vec2(0, rows * tile), Vec2(0, rows * tile)))
    return out, instructions


def inset(instructions: List[Instruction], margin: int) -> List[Instruction]:
    """Shift every destination up-left by `margin` (the caller shrinks the view)."""
    return [
        Instruction(i.key, i.size, i.src, Vec2(i.dst.x - margin, i.dst.y - margin))
        for i in instructions
    ]


def build_descriptor(src_name: str, size: Tuple[int, int], instructions: List[Instruction], margin: int) -> Descriptor:
    w, h = size
    views = [View(width=w, height=h, coords=tuple(format_instruction(i) for i in instructions))]
    if margin > 0 and w > 2 * margin and h > 2 * margin:
        views.append(View(
            width=w - 2 * margin,
            height=h - 2 * margin,
            coords=tuple(format_instruction(i) for i in inset(instructions, margin)),
        ))
    return Descriptor(version=1, resources={RESOURCE_KEY: Resource(src=src_name, width=w, height=h)}, views=tuple(views))


def load_page(src_image: str) -> np.ndarray:
    img = cv2.imread(src_image, cv2.IMREAD_COLOR)
    if img is None:
        raise RuntimeError(f"Cannot read image: {src_image}")
    return cv2.cvtColor(img, cv2.COLOR_BGR2RGB)


def write_page(out_dir: Path, page_no: int, scrambled: np.ndarray, descriptor: Descriptor, quality: int) -> Tuple[Path, Path]:
    out_dir.mkdir(parents=True, exist_ok=True)
    jpg = out_dir / f"{page_no:04d}.jpg"
    js = out_dir / f"{page_no:04d}.ptimg.json"
    ok, buf = cv2.imencode(".jpg", cv2.cvtColor(scrambled, cv2.COLOR_RGB2BGR), [cv2.IMWRITE_JPEG_QUALITY, quality])
    if not ok:
        raise RuntimeError(f"JPEG encode failed for {jpg}")
    jpg.write_bytes(buf.tobytes())
    js.write_text(json.dumps(descriptor.to_dict(), indent=2))
    return jpg, js


def main(argv: Optional[List[str]] = None) -> None:
    ap = argparse.ArgumentParser(description="Build a scrambled demo page cache")
    ap.add_argument("--dist", default="demo", help="Collection name")
    ap.add_argument("--cache-root", default=".", help="Cache root directory")
    ap.add_argument("--volumes", type=int, default=1)
    ap.add_argument("--pages", type=int, default=3, help="Pages per volume")
    ap.add_argument("--size", default="640x896", help="Synthetic page WxH")
    ap.add_argument("--tile", type=int, default=64, help="Scramble block size (px)")
    ap.add_argument("--margin", type=int, default=16, help="Inset for the second view (0 disables it)")
    ap.add_argument("--src-image", default="", help="Optional PNG/JPG used for every page")
    ap.add_argument("--quality", type=int, default=95, help="JPEG quality of scrambled images")
    ap.add_argument("--seed", type=int, default=1234)
    args = ap.parse_args(argv)

    if args.tile <= 0:
        raise SystemExit("--tile must be > 0")
    size = parse_size(args.size)
    rng = np.random.default_rng(args.seed)
    root = Path(args.cache_root) / args.dist

    for vol in range(1, args.volumes + 1):
        for pg in range(1, args.pages + 1):
            if args.src_image:
                page = load_page(args.src_image)
            else:
                page = synthesize_page(size, f"{args.dist} vol {vol} page {pg}", seed=args.seed + vol * 1000 + pg)
            scrambled, instructions = scramble(page, args.tile, rng)
            h, w = page.shape[:2]
            desc = build_descriptor(f"{pg:04d}.jpg", (w, h), instructions, args.margin)
            jpg, js = write_page(root / f"{vol:02d}", pg, scrambled, desc, args.quality)
            print(f"[ok] wrote {jpg} and {js}")

    print("Demo cache ready. Restore it with:")
    print(f"  python -m retrieval.pipeline --dist {args.dist} --cache-root {args.cache_root} --views all")


if __name__ == "__main__":
    main()
