"""
Page restore API

- Serves restored views of cached (or fetched) pages as WebP/PNG
- /pages/{dist}/{volume}/{page}: descriptor summary (JSON)
- /pages/{dist}/{volume}/{page}/views/{index}: restored view image
- /health, /stats
"""
from __future__ import annotations

import os
from typing import Dict, Optional

import requests
import uvicorn
from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse, Response

from ptimg.compositor import restore_view
from ptimg.errors import PtimgError
from retrieval.codec import ENCODE_ERRORS, FORMATS, encode_image, media_type
from retrieval.config import load_config
from retrieval.pipeline import bind_sources
from retrieval.store import PageRef, PageStore, RemoteMissing


def _store_from_config(P: Dict) -> PageStore:
    S = P["store"]
    return PageStore(cache_root=S["cache_root"], target=S["target"], timeout=float(S["timeout_s"]))


def _ptimg_error(e: PtimgError) -> JSONResponse:
    return JSONResponse(
        {
            "error": type(e).__name__,
            "detail": str(e),
            "view": e.view_index,
            "instruction": e.instruction_index,
        },
        status_code=422,
    )


def create_app(store: Optional[PageStore] = None) -> FastAPI:
    store = store or _store_from_config(load_config(os.environ.get("PTIMG_CONFIG", "config/params.yaml")))
    app = FastAPI(title="ptimg restore API", version="1.0.0")

    def _ref(dist: str, volume: int, page: int) -> PageRef:
        if dist.startswith(".") or volume < 0 or page < 0:
            raise HTTPException(status_code=400, detail="bad_page_address")
        return store.page(dist, volume, page)

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "cache_root": str(store.cache_root),
            "remote": store.target is not None,
        }

    @app.get("/stats")
    def stats(dist: Optional[str] = Query(None)):
        if dist is not None and dist.startswith("."):
            raise HTTPException(status_code=400, detail="bad_dist")
        return {"pages": store.stats(dist)}

    @app.get("/pages/{dist}/{volume}/{page}")
    def page_summary(dist: str, volume: int, page: int):
        ref = _ref(dist, volume, page)
        try:
            d = store.descriptor(ref)
        except (RemoteMissing, FileNotFoundError):
            return JSONResponse({"error": "page_not_found", "page": ref.label}, status_code=404)
        except requests.RequestException as e:
            return JSONResponse({"error": "fetch_failed", "detail": str(e)}, status_code=502)
        except PtimgError as e:
            return _ptimg_error(e)
        return {"page": ref.label, **d.summary()}

    @app.get("/pages/{dist}/{volume}/{page}/views/{index}")
    def page_view(dist: str, volume: int, page: int, index: int, fmt: str = Query("webp")):
        """
        Restore one view of a page and return it encoded.

        Order:
          1) descriptor + source image from the local cache
          2) remote fetch (cached on success) when a target template is configured
        """
        if fmt.lower() not in FORMATS:
            raise HTTPException(status_code=400, detail=f"unsupported_format: {fmt}")
        ref = _ref(dist, volume, page)
        try:
            d = store.descriptor(ref)
            if not 0 <= index < len(d.views):
                return JSONResponse({"error": "view_not_found", "views": len(d.views)}, status_code=404)
            image = store.source_image(ref)
            rv = restore_view(d.views[index], bind_sources(d, image), index=index)
        except (RemoteMissing, FileNotFoundError):
            return JSONResponse({"error": "page_not_found", "page": ref.label}, status_code=404)
        except requests.RequestException as e:
            return JSONResponse({"error": "fetch_failed", "detail": str(e)}, status_code=502)
        except PtimgError as e:
            return _ptimg_error(e)
        except OSError as e:
            return JSONResponse({"error": "bad_source_image", "detail": str(e)}, status_code=422)

        try:
            data = encode_image(rv.pixels, fmt)
        except ENCODE_ERRORS as e:
            return JSONResponse({"error": "encode_failed", "view": rv.index, "detail": str(e)}, status_code=422)

        headers = {
            "Cache-Control": "public, max-age=3600",
            "X-View-Index": str(rv.index),
            "X-View-Size": f"{rv.width}x{rv.height}",
        }
        return Response(content=data, media_type=media_type(fmt), headers=headers)

    return app


app = create_app()


# -------- local dev entrypoint --------
if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
