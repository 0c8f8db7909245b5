from __future__ import annotations

"""
Cache-or-fetch page store.

Local layout (one directory per dist, one per volume):

    <cache_root>/<dist>/<volume:02>/<page:04>.ptimg.json   descriptor
    <cache_root>/<dist>/<volume:02>/<page:04>.jpg          scrambled source image
    <cache_root>/<dist>/<volume:02>/<page:04>.webp         restored view 0
    <cache_root>/<dist>/<volume:02>/<page:04>-<k>.webp     restored view k (k > 0)

Remote URLs come from a template with `{}` placeholders filled left to right by
dist, volume (2 digits), page (4 digits) and file extension, e.g.

    https://cdn.example.org/{}/{}/{}.{}  ->  https://cdn.example.org/mybook/01/0003.ptimg.json
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union

import numpy as np
import requests

from ptimg.descriptor import Descriptor
from retrieval.codec import decode_image


log = logging.getLogger(__name__)

DESCRIPTOR_EXT = "ptimg.json"
IMAGE_EXT = "jpg"


class RemoteMissing(Exception):
    """The remote answered with a non-2xx status: the resource does not exist upstream."""

    def __init__(self, url: str, status: int):
        self.url = url
        self.status = status
        super().__init__(f"{url} -> HTTP {status}")


def expand_template(template: str, *values: str) -> str:
    """Replace `{}` placeholders left to right, one value each."""
    out = template
    for v in values:
        if "{}" not in out:
            raise ValueError(f"template {template!r} has fewer than {len(values)} '{{}}' placeholders")
        out = out.replace("{}", v, 1)
    return out


@dataclass(frozen=True)
class PageRef:
    """Local paths and remote URLs for one grid cell (volume, page)."""
    dist: str
    volume: int
    page: int
    base: Path
    descriptor_url: Optional[str] = None
    image_url: Optional[str] = None

    @property
    def descriptor_path(self) -> Path:
        return self.base.with_name(f"{self.base.name}.{DESCRIPTOR_EXT}")

    @property
    def image_path(self) -> Path:
        return self.base.with_name(f"{self.base.name}.{IMAGE_EXT}")

    def output_path(self, view_index: int = 0, fmt: str = "webp") -> Path:
        suffix = "" if view_index == 0 else f"-{view_index}"
        return self.base.with_name(f"{self.base.name}{suffix}.{fmt}")

    @property
    def label(self) -> str:
        return f"{self.dist}/{self.volume:02d}/{self.page:04d}"


class PageStore:
    def __init__(
        self,
        cache_root: Union[str, Path] = ".",
        target: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ):
        """
        Params:
            cache_root: directory holding the local cache
            target: URL template (see module doc); None means cache-only
            session: optional requests.Session for connection reuse
            timeout: per-request timeout in seconds
        """
        self.cache_root = Path(cache_root)
        self.target = target
        self.session = session or requests.Session()
        self.timeout = float(timeout)

    # -------- addressing --------

    def page(self, dist: str, volume: int, page: int) -> PageRef:
        vol, pg = f"{volume:02d}", f"{page:04d}"
        base = self.cache_root / dist / vol / pg
        d_url = i_url = None
        if self.target:
            prefix = expand_template(self.target, dist, vol, pg)
            d_url = expand_template(prefix, DESCRIPTOR_EXT)
            i_url = expand_template(prefix, IMAGE_EXT)
        return PageRef(dist=dist, volume=volume, page=page, base=base, descriptor_url=d_url, image_url=i_url)

    # -------- cache-or-fetch --------

    def read_or_fetch(self, local: Path, url: Optional[str]) -> bytes:
        """
        Return the cached bytes at `local`, or download `url` and cache it.

        Raises:
            FileNotFoundError: not cached and no URL to fall back to
            RemoteMissing: remote answered non-2xx
            requests.RequestException: transport failure
        """
        try:
            return local.read_bytes()
        except FileNotFoundError:
            if url is None:
                raise

        r = self.session.get(url, timeout=self.timeout)
        if r.status_code // 100 != 2:
            raise RemoteMissing(url, r.status_code)
        data = r.content

        local.parent.mkdir(parents=True, exist_ok=True)
        try:
            with local.open("xb") as f:
                f.write(data)
        except FileExistsError:
            # another worker cached it first; keep theirs
            log.debug("Cache entry appeared concurrently", extra={"extra": {"path": str(local)}})
        else:
            log.debug("Cached remote file", extra={"extra": {"url": url, "path": str(local), "bytes": len(data)}})
        return data

    def descriptor_bytes(self, ref: PageRef) -> bytes:
        return self.read_or_fetch(ref.descriptor_path, ref.descriptor_url)

    def image_bytes(self, ref: PageRef) -> bytes:
        return self.read_or_fetch(ref.image_path, ref.image_url)

    def descriptor(self, ref: PageRef) -> Descriptor:
        return Descriptor.from_json(self.descriptor_bytes(ref))

    def source_image(self, ref: PageRef) -> np.ndarray:
        return decode_image(self.image_bytes(ref))

    # -------- stats --------

    def stats(self, dist: Optional[str] = None) -> Dict[str, int]:
        root = self.cache_root / dist if dist else self.cache_root
        out = {"descriptors": 0, "images": 0, "outputs": 0}
        if not root.exists():
            return out
        for p in root.rglob("*"):
            if not p.is_file():
                continue
            if p.name.endswith("." + DESCRIPTOR_EXT):
                out["descriptors"] += 1
            elif p.suffix == "." + IMAGE_EXT:
                out["images"] += 1
            elif p.suffix in (".webp", ".png"):
                out["outputs"] += 1
        return out
