from __future__ import annotations

"""
Grid restore driver: walk volumes 1.. and pages 1.., cache-or-fetch each page's
descriptor and scrambled image, restore the views and write them next to the cache.

Examples:
  # Restore every page of "mybook", fetching whatever is not cached yet
  python -m retrieval.pipeline --dist mybook --target "https://cdn.example.org/{}/{}/{}.{}"

  # Offline, from a cache built by scripts/build_demo_cache.py, keeping every view
  python -m retrieval.pipeline --dist demo --cache-root data/pages --views all
"""

import argparse
import json
import threading
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np
import requests

from common.logging_setup import get_logger, setup_logging
from common.utils import iso_now_ms, timer_ms
from ptimg.compositor import restore, restore_view
from ptimg.descriptor import Descriptor
from ptimg.errors import DescriptorError, PtimgError
from retrieval.codec import ENCODE_ERRORS, decode_image, encode_image
from retrieval.config import load_config
from retrieval.store import PageRef, PageStore, RemoteMissing


log = get_logger("retrieval")

# failures that mean "this page is not available", which ends the current volume
FETCH_ERRORS = (RemoteMissing, requests.RequestException, OSError)


@dataclass
class PageResult:
    volume: int
    page: int
    status: str                # restored | skipped | failed
    views: int = 0             # outputs written
    latency_ms: int = 0
    error: Optional[str] = None


def bind_sources(descriptor: Descriptor, image: np.ndarray) -> Dict[str, np.ndarray]:
    """
    Bind every declared resource key to the page's single fetched image.

    Each grid cell carries exactly one source image, so descriptors declaring
    several resources with different `src` locators cannot be served faithfully;
    that case is logged and every key still gets the page image.
    """
    srcs = {r.src for r in descriptor.resources.values()}
    if len(srcs) > 1:
        log.warning(
            "Descriptor declares several sources; binding all to the page image",
            extra={"extra": {"sources": sorted(srcs)}},
        )
    return {key: image for key in descriptor.resources}


def fetch_page(store: PageStore, ref: PageRef) -> Tuple[bytes, bytes]:
    """(descriptor bytes, image bytes); raises one of FETCH_ERRORS when unavailable."""
    return store.descriptor_bytes(ref), store.image_bytes(ref)


def _write_exclusive(path: Path, data: bytes) -> bool:
    try:
        with path.open("xb") as f:
            f.write(data)
    except FileExistsError:
        return False
    return True


def restore_page(
    ref: PageRef,
    descriptor_raw: bytes,
    image_raw: bytes,
    *,
    views: str = "first",
    fmt: str = "webp",
    workers: Optional[int] = None,
) -> PageResult:
    """
    Restore one page from already-fetched bytes and write its outputs.

    Existing outputs are never overwritten. Descriptor, compositing or encoding
    errors give a `failed` result; they do not stop the traversal. Every chosen
    view is encoded before the first file is written.
    """
    if views == "first" and ref.output_path(0, fmt).exists():
        return PageResult(ref.volume, ref.page, "skipped")

    try:
        descriptor = Descriptor.from_json(descriptor_raw)
        if not descriptor.views:
            raise DescriptorError("descriptor has no views")
        image = decode_image(image_raw)
        sources = bind_sources(descriptor, image)
        if views == "first":
            restored = [restore_view(descriptor.views[0], sources, index=0)]
        else:
            restored = restore(descriptor, sources, workers=workers)
    except PtimgError as e:
        log.error(
            "Page restore failed",
            extra={"extra": {"page": ref.label, "error": str(e), "view": e.view_index, "instruction": e.instruction_index}},
        )
        return PageResult(ref.volume, ref.page, "failed", error=str(e))
    except OSError as e:
        # Pillow raises UnidentifiedImageError (an OSError) for undecodable bytes
        log.error("Source image decode failed", extra={"extra": {"page": ref.label, "error": str(e)}})
        return PageResult(ref.volume, ref.page, "failed", error=str(e))

    try:
        encoded = [(rv, encode_image(rv.pixels, fmt)) for rv in restored]
    except ENCODE_ERRORS as e:
        log.error("View encode failed", extra={"extra": {"page": ref.label, "format": fmt, "error": str(e)}})
        return PageResult(ref.volume, ref.page, "failed", error=str(e))

    written = 0
    for rv, data in encoded:
        out = ref.output_path(rv.index, fmt)
        if _write_exclusive(out, data):
            written += 1
            log.debug("View written", extra={"extra": {"path": str(out), **rv.to_meta()}})
        else:
            log.info("Output exists; left untouched", extra={"extra": {"path": str(out)}})

    return PageResult(ref.volume, ref.page, "restored" if written else "skipped", views=written)


def _write_metrics_row(path: Path, row: Dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", buffering=1) as f:
        f.write(json.dumps(row) + "\n")


def run(
    store: PageStore,
    dist: str,
    *,
    views: str = "first",
    fmt: str = "webp",
    workers: Optional[int] = None,
    start_volume: int = 1,
    max_volumes: Optional[int] = None,
    max_pages: Optional[int] = None,
    stop: Optional[threading.Event] = None,
    metrics_path: Optional[Path] = None,
) -> List[PageResult]:
    """
    Walk the (volume, page) grid.

    Termination:
      - a page that cannot be fetched ends its volume
      - a volume whose first page cannot be fetched ends the run
      - max_volumes / max_pages bound the grid
      - setting `stop` cancels between pages
    """
    results: List[PageResult] = []
    timed_restore = timer_ms(restore_page)
    volume = start_volume

    while max_volumes is None or volume < start_volume + max_volumes:
        pages_seen = 0
        page = 1
        while max_pages is None or page <= max_pages:
            if stop is not None and stop.is_set():
                log.info("Traversal cancelled", extra={"extra": {"volume": volume, "page": page}})
                return results

            ref = store.page(dist, volume, page)
            try:
                descriptor_raw, image_raw = fetch_page(store, ref)
            except FETCH_ERRORS as e:
                log.info("End of volume", extra={"extra": {"page": ref.label, "reason": str(e)}})
                break

            res, dt_ms = timed_restore(ref, descriptor_raw, image_raw, views=views, fmt=fmt, workers=workers)
            res.latency_ms = int(dt_ms)
            results.append(res)
            log.info("Page done", extra={"extra": {"page": ref.label, "status": res.status, "views": res.views}})
            if metrics_path is not None:
                _write_metrics_row(metrics_path, {"ts": iso_now_ms(), "dist": dist, **asdict(res)})

            pages_seen += 1
            page += 1

        if pages_seen == 0:
            log.info("Empty volume; traversal finished", extra={"extra": {"dist": dist, "volume": volume}})
            break
        volume += 1

    return results


def main() -> None:
    ap = argparse.ArgumentParser(description="Restore scrambled ptimg pages from a cache or remote")
    ap.add_argument("--config", default="config/params.yaml")
    ap.add_argument("--dist", required=True, help="Collection name (first template placeholder)")
    ap.add_argument("--target", default=None, help="URL template with {} placeholders (dist, volume, page, ext)")
    ap.add_argument("--cache-root", default=None, help="Local cache directory")
    ap.add_argument("--views", choices=["first", "all"], default=None, help="Which restored views to write")
    ap.add_argument("--format", choices=["webp", "png"], default=None, help="Output image format")
    ap.add_argument("--workers", type=int, default=None, help="Threads per page for view restoration")
    ap.add_argument("--start-volume", type=int, default=1)
    ap.add_argument("--max-volumes", type=int, default=None)
    ap.add_argument("--max-pages", type=int, default=None, help="Pages per volume at most")
    ap.add_argument("--timeout", type=float, default=None, help="HTTP timeout (s)")
    args = ap.parse_args()

    P = load_config(args.config)
    setup_logging(P["logging"].get("level", "INFO"))
    S, R = P["store"], P["restore"]

    store = PageStore(
        cache_root=args.cache_root or S["cache_root"],
        target=args.target or S["target"],
        timeout=args.timeout or float(S["timeout_s"]),
    )
    metrics = P["logging"].get("metrics_file")

    stop = threading.Event()
    try:
        results = run(
            store,
            args.dist,
            views=args.views or R["views"],
            fmt=args.format or R["format"],
            workers=args.workers or R["workers"],
            start_volume=args.start_volume,
            max_volumes=args.max_volumes if args.max_volumes is not None else R["max_volumes"],
            max_pages=args.max_pages if args.max_pages is not None else R["max_pages"],
            stop=stop,
            metrics_path=Path(metrics) if metrics else None,
        )
    except KeyboardInterrupt:
        stop.set()
        raise SystemExit(130)

    counts: Dict[str, int] = {}
    for r in results:
        counts[r.status] = counts.get(r.status, 0) + 1
    print(f"[ok] {args.dist}: {len(results)} pages " + ", ".join(f"{k}={v}" for k, v in sorted(counts.items())))
    if counts.get("failed"):
        raise SystemExit(1)


if __name__ == "__main__":
    main()
