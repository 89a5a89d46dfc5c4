from datetime import datetime, timezone

from fastapi import APIRouter
from pydantic import BaseModel

from cowtracker.cache import layer

router = APIRouter(prefix="/cache", tags=["cache"])


class ClearCacheRequest(BaseModel):
    pattern: str | None = None


@router.get("/stats")
async def cache_stats():
    await layer.cache_layer.init_cache()
    return {
        "status": "ok",
        "cache": layer.cache_layer.get_stats(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.post("/clear")
async def clear_cache(body: ClearCacheRequest | None = None):
    pattern = body.pattern if body else None
    if pattern:
        await layer.cache_layer.invalidate_pattern(pattern)
        message = f"Cache cleared for pattern: {pattern}"
    else:
        await layer.cache_layer.clear()
        message = "All cache entries cleared"
    return {"status": "ok", "message": message}
