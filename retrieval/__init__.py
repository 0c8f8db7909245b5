"""
Retrieval — cache-or-fetch store, codec, grid driver and HTTP API around the ptimg core

- PageStore: local cache first, then HTTP GET from a URL template (cached on success)
- pipeline: walks volumes/pages, restores views, writes WebP/PNG outputs + JSONL metrics
- server: FastAPI app serving restored views

Entry points:
    python -m retrieval.pipeline --dist <name> [--target <url-template>]
    uvicorn retrieval.server:app --port 8000
"""
