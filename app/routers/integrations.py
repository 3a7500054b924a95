"""Form integration endpoints"""
from fastapi import APIRouter, HTTPException, Depends
from typing import Dict
import logging

from app.middleware.auth import get_current_user, verify_form_owner
from app.database import supabase_admin
from app.models.integrations import SubmissionEvent, WebhookUrlRequest, WebhookValidationResult
from app.services.integration_trigger import trigger_integrations
from app.services.webhook_validation import validate_webhook_url

logger = logging.getLogger(__name__)
router = APIRouter()

SECRET_MASK = "********"


@router.post("/validate-url", response_model=WebhookValidationResult)
async def validate_url(request: WebhookUrlRequest):
    """Check a webhook URL before it is saved"""
    return validate_webhook_url(request.url)


@router.get("/{form_id}")
async def list_integrations(form_id: str, auth_data: Dict = Depends(get_current_user)):
    """List a form's integrations with their delivery status"""
    try:
        verify_form_owner(form_id, auth_data["user_id"])

        result = supabase_admin.table("form_integrations").select("*").eq(
            "form_id", form_id
        ).order("created_at").execute()

        integrations = []
        for row in (result.data or []):
            configuration = dict(row.get("configuration") or {})
            if configuration.get("secret"):
                configuration["secret"] = SECRET_MASK
            integrations.append({**row, "configuration": configuration})

        return {"integrations": integrations}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"List integrations error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/trigger")
async def trigger(submission: SubmissionEvent, auth_data: Dict = Depends(get_current_user)):
    """Re-run a form's integrations for an existing response"""
    verify_form_owner(submission.form_id, auth_data["user_id"])

    # Never raises; outcomes land on each integration's status
    await trigger_integrations(submission)
    return {"success": True}
