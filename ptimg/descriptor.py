from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Tuple, Union

from ptimg.errors import DescriptorError
from ptimg.grammar import Instruction, parse_instruction


@dataclass(frozen=True)
class Resource:
    """A named source image. `src` is an opaque locator for the retrieval layer."""
    src: str
    width: int
    height: int


@dataclass(frozen=True)
class View:
    """One output image: its size and the ordered region-copy instructions."""
    width: int
    height: int
    coords: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "coords", tuple(self.coords))

    def instructions(self) -> List[Instruction]:
        """Parse every instruction (raises ParseError on the first bad one)."""
        return [parse_instruction(c) for c in self.coords]

    def keys(self) -> List[str]:
        """Resource keys referenced by this view, in first-use order."""
        seen: Dict[str, None] = {}
        for ins in self.instructions():
            seen.setdefault(ins.key, None)
        return list(seen)


@dataclass(frozen=True)
class Descriptor:
    """
    Decoded ptimg descriptor.

    Wire format (JSON, kebab-case keys):
        {
          "ptimg-version": 1,
          "resources": {"i": {"src": "0001.jpg", "width": 800, "height": 1200}},
          "views": [{"width": 780, "height": 1180, "coords": ["i:64,64+0,0>128,0", ...]}]
        }
    """
    version: int
    resources: Mapping[str, Resource] = field(default_factory=dict)
    views: Tuple[View, ...] = ()

    def __post_init__(self) -> None:
        # read-only after construction; the caller's dict is copied, not wrapped
        object.__setattr__(self, "resources", MappingProxyType(dict(self.resources)))
        object.__setattr__(self, "views", tuple(self.views))

    # -------- decoding --------

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Descriptor":
        if not isinstance(data, Mapping):
            raise DescriptorError(f"descriptor must be an object, got {type(data).__name__}")
        version = _int_field(data, "ptimg-version", "descriptor")

        raw_res = data.get("resources", {})
        if not isinstance(raw_res, Mapping):
            raise DescriptorError("'resources' must be an object")
        resources: Dict[str, Resource] = {}
        for key, r in raw_res.items():
            where = f"resources[{key!r}]"
            if not isinstance(r, Mapping):
                raise DescriptorError(f"{where} must be an object")
            src = r.get("src")
            if not isinstance(src, str):
                raise DescriptorError(f"{where}.src must be a string")
            resources[str(key)] = Resource(
                src=src,
                width=_int_field(r, "width", where),
                height=_int_field(r, "height", where),
            )

        raw_views = data.get("views")
        if not isinstance(raw_views, list):
            raise DescriptorError("'views' must be a list")
        views: List[View] = []
        for i, v in enumerate(raw_views):
            where = f"views[{i}]"
            if not isinstance(v, Mapping):
                raise DescriptorError(f"{where} must be an object")
            coords = v.get("coords", [])
            if not isinstance(coords, list) or not all(isinstance(c, str) for c in coords):
                raise DescriptorError(f"{where}.coords must be a list of strings")
            views.append(View(
                width=_int_field(v, "width", where),
                height=_int_field(v, "height", where),
                coords=tuple(coords),
            ))
        return cls(version=version, resources=resources, views=tuple(views))

    @classmethod
    def from_json(cls, raw: Union[str, bytes]) -> "Descriptor":
        try:
            data = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DescriptorError(f"descriptor is not valid JSON: {e}") from e
        return cls.from_dict(data)

    # -------- encoding (used by scripts/build_demo_cache.py) --------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ptimg-version": self.version,
            "resources": {
                k: {"src": r.src, "width": r.width, "height": r.height}
                for k, r in self.resources.items()
            },
            "views": [
                {"width": v.width, "height": v.height, "coords": list(v.coords)}
                for v in self.views
            ],
        }

    def summary(self) -> Dict[str, Any]:
        """Small JSON-safe overview (no instruction lists)."""
        return {
            "version": self.version,
            "resources": {k: {"src": r.src, "width": r.width, "height": r.height} for k, r in self.resources.items()},
            "views": [{"index": i, "width": v.width, "height": v.height, "instructions": len(v.coords)}
                      for i, v in enumerate(self.views)],
        }


def load_descriptor(path: Union[str, Path]) -> Descriptor:
    return Descriptor.from_json(Path(path).read_bytes())


def _int_field(obj: Mapping[str, Any], name: str, where: str) -> int:
    if name not in obj:
        raise DescriptorError(f"{where} is missing '{name}'")
    v = obj[name]
    # bool is an int subclass; reject it explicitly
    if isinstance(v, bool) or not isinstance(v, int) or v < 0:
        raise DescriptorError(f"{where}.{name} must be a non-negative integer, got {v!r}")
    return v
