"""Outbound webhook dispatch and delivery logs"""
from fastapi import APIRouter, HTTPException, Depends, Query
from typing import Dict, Optional
import logging

from app.middleware.auth import get_current_user, verify_form_owner
from app.database import supabase_admin
from app.models.integrations import DispatchRequest, DispatchResult
from app.services.webhook_dispatcher import dispatch_webhooks, retry_delivery

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/dispatch", response_model=DispatchResult)
async def dispatch(request: DispatchRequest, auth_data: Dict = Depends(get_current_user)):
    """Deliver a response to the form's webhook, n8n and Zapier integrations"""
    verify_form_owner(request.form_id, auth_data["user_id"])

    result = await dispatch_webhooks(request.form_id, request.response_id)
    if not result.success:
        raise HTTPException(status_code=500, detail=result.error)
    return result


@router.get("/logs")
async def get_delivery_logs(
    form_id: str,
    integration_id: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    auth_data: Dict = Depends(get_current_user)
):
    """Recent webhook deliveries for a form"""
    try:
        verify_form_owner(form_id, auth_data["user_id"])

        query = supabase_admin.table("webhook_delivery_logs").select(
            "id, integration_id, response_id, event_id, event_type, status, attempt, url, "
            "http_status, error_message, created_at, updated_at"
        ).eq("form_id", form_id)

        if integration_id:
            query = query.eq("integration_id", integration_id)
        if status:
            query = query.eq("status", status)

        result = query.order("created_at", desc=True).limit(limit).execute()
        return {"logs": result.data or []}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Get delivery logs error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/logs/{log_id}/retry", response_model=DispatchResult)
async def retry_logged_delivery(log_id: str, auth_data: Dict = Depends(get_current_user)):
    """Re-dispatch the response behind a delivery log entry"""
    log_result = supabase_admin.table("webhook_delivery_logs").select(
        "id, form_id"
    ).eq("id", log_id).limit(1).execute()

    if not log_result.data:
        raise HTTPException(status_code=404, detail="Delivery log not found")

    verify_form_owner(log_result.data[0]["form_id"], auth_data["user_id"])

    result = await retry_delivery(log_id)
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)
    return result
