"""Admin status, feature flags, pricing and cache invalidation endpoints"""
from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel
from typing import Any, Dict, Optional
import logging

from app.middleware.auth import get_current_admin, get_current_user
from app.services.status_service import (
    get_admin_status,
    get_feature_flags,
    get_pricing_tiers,
    invalidate_status,
)

logger = logging.getLogger(__name__)
router = APIRouter()


class CacheInvalidationRequest(BaseModel):
    """Database change notification (table + changed row)"""
    table: str
    record: Optional[Dict[str, Any]] = None


@router.get("/status")
async def admin_status(auth_data: Dict = Depends(get_current_user)):
    """Whether the current user is a platform admin"""
    return {"is_admin": get_admin_status(auth_data["user_id"])}


@router.get("/feature-flags")
async def feature_flags():
    """Public feature flags"""
    return {"flags": get_feature_flags()}


@router.get("/pricing")
async def pricing():
    """Public subscription tiers"""
    try:
        return {"tiers": get_pricing_tiers()}
    except Exception as e:
        logger.error(f"Get pricing tiers error: {e}")
        raise HTTPException(status_code=500, detail="Failed to load pricing data")


@router.post("/cache/invalidate")
async def invalidate_cache(
    request: CacheInvalidationRequest,
    auth_data: Dict = Depends(get_current_admin)
):
    """Drop cached status derived from a changed table"""
    invalidated = invalidate_status(request.table, request.record)
    logger.info(f"Invalidated {invalidated} cached entries for {request.table}")
    return {"invalidated": invalidated}
