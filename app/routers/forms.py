"""Form submission and form-builder validation endpoints"""
from fastapi import APIRouter, BackgroundTasks, HTTPException
from datetime import datetime, timezone
from typing import Any, List, Optional
import json
import logging

from app.models.forms import (
    FormSubmitRequest,
    FormSubmitResponse,
    GenerateRefRequest,
    RecallResolveRequest,
    RecallValidationRequest,
    RecallValidationResult,
    UrlParamConfig,
    UrlParamValidationResult,
)
from app.models.integrations import SubmissionEvent
from app.database import supabase_admin
from app.services.integration_trigger import trigger_integrations
from app.services.recall import build_recall_context, generate_ref, resolve_recall, validate_recall_tokens
from app.services.url_params import collect_url_params, validate_url_param_config

logger = logging.getLogger(__name__)
router = APIRouter()


def _encode_answer(value: Any) -> Optional[str]:
    """form_response_answers.value is text; structured answers are stored as JSON"""
    if value is None:
        return None
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@router.post("/submit", response_model=FormSubmitResponse)
async def submit_form(form: FormSubmitRequest, background_tasks: BackgroundTasks):
    """Handle form submission (PUBLIC endpoint)"""
    try:
        form_result = supabase_admin.table("forms").select(
            "id, accept_responses, url_params_config"
        ).eq("id", form.form_id).limit(1).execute()

        if not form_result.data:
            raise HTTPException(status_code=404, detail="Form not found")

        form_row = form_result.data[0]
        if form_row.get("accept_responses") is False:
            raise HTTPException(status_code=403, detail="Form is not accepting responses")

        param_config = [UrlParamConfig(**p) for p in (form_row.get("url_params_config") or [])]
        url_params = collect_url_params(param_config, form.url_params)

        now = datetime.now(timezone.utc).isoformat()
        response_result = supabase_admin.table("form_responses").insert({
            "form_id": form.form_id,
            "respondent_email": form.respondent_email,
            "respondent_id": form.respondent_id,
            "is_partial": form.is_partial,
            "url_params": url_params,
            "created_at": form.started_at or now,
            "submitted_at": None if form.is_partial else now,
        }).execute()

        response_id = response_result.data[0]["id"]

        answers = [
            {"response_id": response_id, "field_id": field_id, "value": _encode_answer(value)}
            for field_id, value in form.submission_data.items()
            if value is not None
        ]
        if answers:
            supabase_admin.table("form_response_answers").insert(answers).execute()

        # Integrations run after the respondent gets the acknowledgment
        integrations_queued = not form.is_partial
        if integrations_queued:
            background_tasks.add_task(
                trigger_integrations,
                SubmissionEvent(
                    form_id=form.form_id,
                    response_id=response_id,
                    submission_data=form.submission_data,
                    respondent_email=form.respondent_email,
                    url_params=url_params,
                )
            )

        return FormSubmitResponse(
            response_id=response_id,
            success=True,
            integrations_queued=integrations_queued
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Form submission error: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/recall/validate", response_model=RecallValidationResult)
async def validate_recall(request: RecallValidationRequest):
    """Lint recall tokens in form text"""
    return validate_recall_tokens(
        request.text,
        request.fields,
        request.url_params,
        request.current_field_index
    )


@router.post("/recall/resolve")
async def resolve_recall_text(request: RecallResolveRequest):
    """Render recall tokens with a respondent's answers"""
    context = build_recall_context(request.fields, request.responses, request.url_params)
    return {"text": resolve_recall(request.template, context)}


@router.post("/url-params/validate", response_model=UrlParamValidationResult)
async def validate_url_params(config: List[UrlParamConfig]):
    """Validate a form's URL parameter declarations"""
    return validate_url_param_config(config)


@router.post("/refs")
async def create_ref(request: GenerateRefRequest):
    """Generate a unique field ref from a label"""
    return {"ref": generate_ref(request.label, request.existing_refs)}
