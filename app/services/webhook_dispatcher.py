"""
Webhook dispatcher for webhook-class integrations (webhook, n8n, zapier).

Each delivery is validated against SSRF rules, signed when the integration has
a secret, recorded in webhook_delivery_logs and reflected on the integration's
status. Failed deliveries are retried by a scheduled sweep with exponential
backoff, up to webhook_max_attempts.
"""
import asyncio
import json
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import httpx

from app.config import get_settings
from app.database import supabase_admin
from app.models.integrations import (
    DeliveryStatus,
    DispatchResult,
    FormIntegration,
    IntegrationStatus,
    ResponsePayload,
    WebhookEvent,
    WEBHOOK_INTEGRATION_TYPES,
)
from app.services.response_payload import build_response_payload
from app.services.webhook_validation import validate_webhook_url
from app.utils.retry import retry_supabase_query
from app.utils.signing import SIGNATURE_HEADER, generate_hmac_signature

logger = logging.getLogger(__name__)
settings = get_settings()

WEBHOOK_EVENT_TYPE = "form_response"


class WebhookDeliveryError(Exception):
    """A single webhook delivery did not succeed"""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_webhook_url(integration: FormIntegration) -> Optional[str]:
    return integration.config.get("webhook_url") or integration.config.get("url")


def build_headers(body: str, secret: Optional[str]) -> Dict[str, str]:
    headers = {
        "Content-Type": "application/json",
        "User-Agent": settings.webhook_user_agent,
    }
    if secret:
        headers[SIGNATURE_HEADER] = generate_hmac_signature(secret, body)
    return headers


def _record_outcome(
    log_id: Optional[str],
    integration_id: str,
    response: Optional[httpx.Response] = None,
    error: Optional[str] = None
) -> None:
    """Write a delivery outcome to the log row and the integration record"""
    now = _now_iso()

    if response is not None:
        error = None if response.is_success else f"HTTP {response.status_code}"
        log_update = {
            "status": DeliveryStatus.SUCCESS.value if error is None else DeliveryStatus.FAILED.value,
            "http_status": response.status_code,
            "error_message": error,
            "response_body": response.text[:settings.webhook_response_body_limit],
            "updated_at": now,
        }
    else:
        log_update = {
            "status": DeliveryStatus.FAILED.value,
            "error_message": error,
            "updated_at": now,
        }

    if log_id:
        supabase_admin.table("webhook_delivery_logs").update(log_update).eq("id", log_id).execute()

    integration_update = {
        "status": IntegrationStatus.CONNECTED.value if error is None else IntegrationStatus.ERROR.value,
        "last_error": error,
    }
    if response is not None:
        integration_update["last_triggered_at"] = now

    supabase_admin.table("form_integrations").update(integration_update).eq("id", integration_id).execute()


async def _send(client: httpx.AsyncClient, url: str, body: str, secret: Optional[str]) -> httpx.Response:
    return await client.post(url, content=body, headers=build_headers(body, secret))


async def deliver_webhook(
    client: httpx.AsyncClient,
    integration: FormIntegration,
    payload: ResponsePayload,
    response_id: str
) -> None:
    """
    Deliver one form_response event to one integration

    Raises:
        WebhookDeliveryError: when the delivery was not accepted
    """
    url = get_webhook_url(integration)
    if not url:
        logger.error(f"No URL configured for integration {integration.id}")
        raise WebhookDeliveryError("No webhook URL configured")

    validation = validate_webhook_url(url)
    if not validation.is_valid:
        logger.warning(f"Rejected webhook URL for integration {integration.id}: {validation.error}")
        _record_outcome(None, integration.id, error=validation.error)
        raise WebhookDeliveryError(validation.error)

    event = WebhookEvent(
        event_id=str(uuid.uuid4()),
        event_type=WEBHOOK_EVENT_TYPE,
        created_at=_now_iso(),
        form_response=payload,
    )
    event_data = event.model_dump(mode="json")
    body = json.dumps(event_data)

    log_result = supabase_admin.table("webhook_delivery_logs").insert({
        "form_id": integration.form_id,
        "integration_id": integration.id,
        "response_id": response_id,
        "event_id": event.event_id,
        "event_type": WEBHOOK_EVENT_TYPE,
        "status": DeliveryStatus.PENDING.value,
        "attempt": 1,
        "url": url,
        "request_body": event_data,
    }).execute()
    log_id = log_result.data[0]["id"] if log_result.data else None

    logger.info(f"Sending webhook for integration {integration.id} to {url}")
    try:
        response = await _send(client, url, body, integration.config.get("secret"))
    except Exception as e:
        error_message = str(e) or e.__class__.__name__
        logger.error(f"Error sending webhook for integration {integration.id}: {error_message}")
        _record_outcome(log_id, integration.id, error=error_message)
        raise WebhookDeliveryError(error_message) from e

    _record_outcome(log_id, integration.id, response=response)

    if not response.is_success:
        logger.error(f"Webhook for integration {integration.id} failed: HTTP {response.status_code}")
        raise WebhookDeliveryError(f"Webhook returned HTTP {response.status_code}")

    logger.info(f"Webhook for integration {integration.id} delivered")


async def dispatch_webhooks(form_id: str, response_id: str) -> DispatchResult:
    """
    Deliver a response to every active webhook-class integration of a form.

    Deliveries run concurrently and settle independently. Calling this twice
    for the same response delivers twice.

    Args:
        form_id: Form the response belongs to
        response_id: form_responses.id

    Returns:
        DispatchResult with per-batch counts
    """
    logger.info(f"Processing webhooks for form {form_id}, response {response_id}")

    try:
        result = retry_supabase_query(
            lambda: supabase_admin.table("form_integrations").select("*").eq(
                "form_id", form_id
            ).in_("integration_type", list(WEBHOOK_INTEGRATION_TYPES)).eq("is_active", True).execute()
        )
    except Exception as e:
        logger.error(f"Error fetching webhook integrations for form {form_id}: {e}")
        return DispatchResult(success=False, error=str(e))

    integrations = [FormIntegration(**row) for row in (result.data or [])]
    if not integrations:
        logger.info(f"No active webhook integrations for form {form_id}")
        return DispatchResult(success=True, message="No webhooks to dispatch")

    payload = build_response_payload(response_id)
    if payload is None:
        logger.error(f"Failed to build payload for response {response_id}")
        return DispatchResult(success=False, error="Failed to build payload")

    if payload.form_id != form_id:
        logger.warning(f"Response {response_id} does not belong to form {form_id}")
        return DispatchResult(success=False, error="Response does not belong to this form")

    async with httpx.AsyncClient(timeout=settings.webhook_timeout_seconds) as client:
        outcomes = await asyncio.gather(
            *[deliver_webhook(client, integration, payload, response_id) for integration in integrations],
            return_exceptions=True
        )

    failed = sum(1 for outcome in outcomes if isinstance(outcome, Exception))
    succeeded = len(outcomes) - failed
    logger.info(f"Webhook dispatch for response {response_id} complete: {succeeded} success, {failed} failed")

    return DispatchResult(
        success=True,
        dispatched=len(integrations),
        succeeded=succeeded,
        failed=failed,
    )


def is_retry_due(log: Dict, now: datetime) -> bool:
    """Backoff doubles per attempt: base, 2x base, 4x base minutes..."""
    attempt = log.get("attempt") or 1
    last_attempt_at = log.get("updated_at") or log.get("created_at")
    if not last_attempt_at:
        return True

    last = datetime.fromisoformat(last_attempt_at.replace("Z", "+00:00"))
    if last.tzinfo is None:
        last = last.replace(tzinfo=timezone.utc)

    delay = timedelta(minutes=settings.webhook_retry_base_minutes * (2 ** (attempt - 1)))
    return now - last >= delay


async def _retry_logged_delivery(client: httpx.AsyncClient, log: Dict) -> bool:
    """Re-send a failed delivery with its stored body and event id"""
    integration_result = supabase_admin.table("form_integrations").select("*").eq(
        "id", log["integration_id"]
    ).limit(1).execute()

    if not integration_result.data:
        logger.info(f"Skipping retry of {log['id']}: integration no longer exists")
        return False

    integration = FormIntegration(**integration_result.data[0])
    if not integration.is_active:
        logger.info(f"Skipping retry of {log['id']}: integration {integration.id} is inactive")
        return False

    validation = validate_webhook_url(log["url"])
    if not validation.is_valid:
        logger.warning(f"Skipping retry of {log['id']}: {validation.error}")
        return False

    attempt = (log.get("attempt") or 1) + 1
    supabase_admin.table("webhook_delivery_logs").update({
        "status": DeliveryStatus.RETRYING.value,
        "attempt": attempt,
        "updated_at": _now_iso(),
    }).eq("id", log["id"]).execute()

    try:
        body = json.dumps(log["request_body"])
        try:
            response = await _send(client, log["url"], body, integration.config.get("secret"))
        except Exception as e:
            error_message = str(e) or e.__class__.__name__
            logger.warning(f"Retry {attempt} of delivery {log['id']} failed: {error_message}")
            _record_outcome(log["id"], integration.id, error=error_message)
            return False

        _record_outcome(log["id"], integration.id, response=response)
    except Exception as e:
        logger.error(f"Error recording retry {attempt} of delivery {log['id']}: {e}")
        _release_retrying(log["id"], str(e))
        return False

    if not response.is_success:
        logger.warning(f"Retry {attempt} of delivery {log['id']} failed: HTTP {response.status_code}")
    return response.is_success


def _release_retrying(log_id: str, error: str) -> None:
    """Put a log still marked retrying back in reach of the sweep"""
    supabase_admin.table("webhook_delivery_logs").update({
        "status": DeliveryStatus.FAILED.value,
        "error_message": error,
        "updated_at": _now_iso(),
    }).eq("id", log_id).eq("status", DeliveryStatus.RETRYING.value).execute()


async def retry_failed_deliveries() -> int:
    """
    Retry failed deliveries whose backoff has elapsed

    Returns:
        Number of deliveries that succeeded on this pass
    """
    try:
        result = supabase_admin.table("webhook_delivery_logs").select("*").eq(
            "status", DeliveryStatus.FAILED.value
        ).lt("attempt", settings.webhook_max_attempts).execute()
    except Exception as e:
        logger.error(f"Error loading failed webhook deliveries: {e}")
        return 0

    now = datetime.now(timezone.utc)
    due = [log for log in (result.data or []) if is_retry_due(log, now)]
    if not due:
        return 0

    logger.info(f"Retrying {len(due)} failed webhook deliveries")
    async with httpx.AsyncClient(timeout=settings.webhook_timeout_seconds) as client:
        outcomes = await asyncio.gather(
            *[_retry_logged_delivery(client, log) for log in due],
            return_exceptions=True
        )

    for log, outcome in zip(due, outcomes):
        if isinstance(outcome, Exception):
            logger.error(f"Error retrying delivery {log['id']}: {outcome}")

    return sum(1 for outcome in outcomes if outcome is True)


async def retry_delivery(log_id: str) -> DispatchResult:
    """Re-dispatch the response behind a logged delivery (manual retry)"""
    result = supabase_admin.table("webhook_delivery_logs").select(
        "id, form_id, response_id"
    ).eq("id", log_id).limit(1).execute()

    if not result.data:
        return DispatchResult(success=False, error="Delivery log not found")

    log = result.data[0]
    if not log.get("response_id"):
        return DispatchResult(success=False, error="This webhook has no associated response ID")

    return await dispatch_webhooks(log["form_id"], log["response_id"])


def run_scheduled_retries():
    """Wrapper to run the async retry sweep from the scheduler"""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        retried = loop.run_until_complete(retry_failed_deliveries())
        if retried:
            logger.info(f"Scheduled webhook retry delivered {retried} events")
    finally:
        loop.close()
