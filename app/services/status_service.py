"""Cached status lookups: admin role, feature flags and pricing tiers"""
import logging
from typing import Any, Dict, List, Optional

from app.config import get_settings
from app.database import supabase_admin
from app.services.status_cache import TTLCache

logger = logging.getLogger(__name__)
settings = get_settings()

status_cache = TTLCache(ttl=settings.status_cache_ttl_seconds)

ADMIN_STATUS_PREFIX = "admin_status_"
FEATURE_FLAGS_KEY = "feature_flags"
PRICING_TIERS_KEY = "pricing_tiers"


def get_admin_status(user_id: str) -> bool:
    """
    Check the is_admin RPC for a user, cached briefly.

    Lookup errors count as "not admin" and are not cached, so the next call
    asks again.
    """
    cache_key = f"{ADMIN_STATUS_PREFIX}{user_id}"
    cached = status_cache.get(cache_key)
    if cached is not None:
        return cached

    try:
        result = supabase_admin.rpc("is_admin", {"user_id": user_id}).execute()
    except Exception as e:
        logger.error(f"Error checking admin status for {user_id}: {e}")
        return False

    is_admin = bool(result.data)
    status_cache.set(cache_key, is_admin)
    return is_admin


def get_feature_flags() -> Dict[str, Any]:
    """Feature flags from the system_config "feature_flags" row"""
    cached = status_cache.get(FEATURE_FLAGS_KEY)
    if cached is not None:
        return cached

    try:
        result = supabase_admin.table("system_config").select("config_value").eq(
            "config_key", "feature_flags"
        ).limit(1).execute()
    except Exception as e:
        logger.error(f"Error fetching feature flags: {e}")
        return {}

    flags = (result.data[0].get("config_value") if result.data else None) or {}
    status_cache.set(FEATURE_FLAGS_KEY, flags)
    return flags


def get_pricing_tiers() -> List[Dict[str, Any]]:
    """Public subscription tiers ordered for display"""
    cached = status_cache.get(PRICING_TIERS_KEY)
    if cached is not None:
        return cached

    result = supabase_admin.table("public_subscription_tiers").select("*").order("sort_order").execute()
    tiers = result.data or []
    status_cache.set(PRICING_TIERS_KEY, tiers)
    return tiers


def invalidate_status(table: str, record: Optional[Dict[str, Any]] = None) -> int:
    """
    Drop cache entries affected by a change to a table.

    Called from database change notifications; returns the number of entries
    dropped.
    """
    record = record or {}

    if table == "admin_users":
        if record.get("user_id"):
            return int(status_cache.invalidate(f"{ADMIN_STATUS_PREFIX}{record['user_id']}"))
        return status_cache.invalidate_prefix(ADMIN_STATUS_PREFIX)

    if table == "system_config":
        return int(status_cache.invalidate(FEATURE_FLAGS_KEY))

    if table in ("subscription_tiers", "public_subscription_tiers"):
        return int(status_cache.invalidate(PRICING_TIERS_KEY))

    logger.info(f"No cached status depends on table {table}")
    return 0
