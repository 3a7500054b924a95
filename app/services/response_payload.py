"""Canonical form response payload, built from database records"""
import json
import logging
from datetime import datetime
from typing import Any, Optional

from app.database import supabase_admin
from app.models.integrations import ResponseAnswer, ResponseField, ResponseMetadata, ResponsePayload

logger = logging.getLogger(__name__)


def _parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def completion_time_label(seconds: int) -> str:
    """Human label for the time a respondent took to submit"""
    if seconds < 60:
        return "Less than 1 minute"
    if seconds < 3600:
        return f"{seconds // 60} minutes"
    return f"{seconds // 3600} hours"


def _parse_answer_value(value: Any) -> Any:
    """Stored JSON arrays/objects come back as strings; decode them"""
    if isinstance(value, str) and (value.startswith("[") or value.startswith("{")):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


def _single(relation: Any) -> Optional[dict]:
    """Embedded relations come back as an object or a one-element list"""
    if isinstance(relation, list):
        return relation[0] if relation else None
    return relation


def build_response_payload(response_id: str) -> Optional[ResponsePayload]:
    """
    Load a response with its answers and shape it for webhooks.

    Args:
        response_id: form_responses.id

    Returns:
        ResponsePayload, or None when the response or its answers can't be loaded
    """
    try:
        response_result = supabase_admin.table("form_responses").select(
            "id, form_id, respondent_id, respondent_email, is_partial, submitted_at, "
            "created_at, url_params, forms(id, title)"
        ).eq("id", response_id).single().execute()

        response = response_result.data
        if not response:
            logger.error(f"Response {response_id} not found")
            return None

        answers_result = supabase_admin.table("form_response_answers").select(
            "id, field_id, value, file_urls, form_fields(id, label, type, ref)"
        ).eq("response_id", response_id).execute()

        answers = []
        for answer in (answers_result.data or []):
            field = _single(answer.get("form_fields"))
            if not field:
                continue

            formatted = ResponseAnswer(
                field=ResponseField(
                    id=field["id"],
                    label=field.get("label") or "",
                    type=field.get("type") or "text",
                    ref=field.get("ref"),
                ),
                type=field.get("type") or "text",
                value=_parse_answer_value(answer.get("value")),
            )
            if isinstance(answer.get("file_urls"), list):
                formatted.file_urls = answer["file_urls"]
            answers.append(formatted)

        metadata = ResponseMetadata()
        if response.get("submitted_at") and response.get("created_at"):
            seconds = int((
                _parse_timestamp(response["submitted_at"]) - _parse_timestamp(response["created_at"])
            ).total_seconds())
            metadata.completion_time_seconds = seconds
            metadata.completion_time_label = completion_time_label(seconds)

        form = _single(response.get("forms")) or {}

        return ResponsePayload(
            id=response["id"],
            form_id=response["form_id"],
            form_title=form.get("title"),
            status="partial" if response.get("is_partial") else "complete",
            respondent_id=response.get("respondent_id"),
            respondent_email=response.get("respondent_email"),
            created_at=response.get("created_at"),
            submitted_at=response.get("submitted_at"),
            url_params=response.get("url_params") or {},
            metadata=metadata,
            answers=answers,
        )

    except Exception as e:
        logger.error(f"Error building response payload for {response_id}: {e}")
        return None
