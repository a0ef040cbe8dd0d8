"""
URL Enrichment Web API
FastAPI backend over one shared enrichment engine
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

# Add parent to path for url_enrichment imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from url_enrichment import EnrichmentEngine, __version__
from url_enrichment.output import batch_summary

logger = logging.getLogger(__name__)

MAX_BATCH_ITEMS = 100


class EnrichRequest(BaseModel):
    url: str
    base_score: float


class BatchRequest(BaseModel):
    items: list[EnrichRequest]
    max_concurrency: Optional[int] = Field(default=None, ge=1)


def create_app(engine: Optional[EnrichmentEngine] = None) -> FastAPI:
    """Build the app. Without `engine`, one is built from the configured TOML at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if engine is not None:
            yield
            return

        owned = EnrichmentEngine.from_path()
        app.state.engine = owned
        try:
            yield
        finally:
            await owned.aclose()

    app = FastAPI(
        title="URL Enrichment",
        description="Score adjustments from external signals",
        version=__version__,
        lifespan=lifespan,
    )
    if engine is not None:
        app.state.engine = engine

    def _engine(request: Request) -> EnrichmentEngine:
        return request.app.state.engine

    @app.get("/api/health")
    async def health():
        """Health check endpoint"""
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.post("/api/enrich")
    async def enrich(body: EnrichRequest, request: Request):
        """Enrich a single URL"""
        try:
            result = await _engine(request).enrich_url(body.url, body.base_score)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        return result.to_dict()

    @app.post("/api/batch")
    async def enrich_batch(body: BatchRequest, request: Request):
        """Enrich multiple URLs"""
        if len(body.items) > MAX_BATCH_ITEMS:
            raise HTTPException(status_code=400, detail=f"Maximum {MAX_BATCH_ITEMS} items per batch")

        results = await _engine(request).enrich_many(
            [(item.url, item.base_score) for item in body.items],
            max_concurrency=body.max_concurrency,
        )
        return {"summary": batch_summary(results), "results": results}

    @app.get("/api/providers")
    async def list_providers(request: Request):
        """List providers with their enabled/available state and remaining quota"""
        return {"providers": _engine(request).provider_status()}

    @app.get("/api/cache/stats")
    async def cache_stats(request: Request):
        stats = await asyncio.to_thread(_engine(request).cache.stats)
        return stats.to_dict()

    @app.delete("/api/cache")
    async def cache_reset(request: Request):
        cache = _engine(request).cache
        await asyncio.to_thread(cache.reset)
        return {"status": "reset", "path": cache.path}

    return app


app = create_app()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8000)
