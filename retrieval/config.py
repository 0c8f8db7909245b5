from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


DEFAULTS: Dict[str, Any] = {
    "store": {"cache_root": ".", "target": None, "timeout_s": 10.0},
    "restore": {"views": "first", "format": "webp", "workers": 1, "max_volumes": None, "max_pages": None},
    "logging": {"level": "INFO", "metrics_file": "logs/restore.jsonl"},
}


def _merge(base: Dict[str, Any], over: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for k, v in (over or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out


def load_config(path: Optional[str] = "config/params.yaml") -> Dict[str, Any]:
    """
    Defaults, overlaid with the YAML file (if present), overlaid with env:
      PTIMG_CACHE_ROOT, PTIMG_TARGET
    """
    P = copy.deepcopy(DEFAULTS)
    if path and Path(path).exists():
        with open(path, "r") as f:
            P = _merge(P, yaml.safe_load(f) or {})
    if os.environ.get("PTIMG_CACHE_ROOT"):
        P["store"]["cache_root"] = os.environ["PTIMG_CACHE_ROOT"]
    if os.environ.get("PTIMG_TARGET"):
        P["store"]["target"] = os.environ["PTIMG_TARGET"]
    return P
