from fastapi import APIRouter, Depends

from ..services.usage_store import UsageStore
from .deps import get_usage_store

router = APIRouter(tags=["Stats"])

@router.get("/stats")
@router.get("/stats/", include_in_schema=False)
async def get_stats(usage_store: UsageStore = Depends(get_usage_store)):
    """Aggregated counts only, never content"""
    aggregate = await usage_store.load_aggregate()
    return aggregate.model_dump()

@router.post("/reset")
async def reset_stats(usage_store: UsageStore = Depends(get_usage_store)):
    await usage_store.reset()
    return {"ok": True, "message": "Stats reset"}
