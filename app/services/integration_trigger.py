"""
Integration trigger: runs a form's integrations after a submission.

Webhook-class integrations are handed to the webhook dispatcher in one batched
call. Every other integration runs concurrently with its own status write, so
one failing integration never affects another. Nothing here raises to the
caller; failures surface only through form_integrations.status/last_error.
"""
import asyncio
import html
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List

from app.database import supabase_admin
from app.models.integrations import FormIntegration, IntegrationStatus, SubmissionEvent
from app.services.email_service import send_email
from app.services.webhook_dispatcher import dispatch_webhooks
from app.utils.retry import retry_supabase_query

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_integration_payload(integration: FormIntegration, submission: SubmissionEvent) -> Dict[str, Any]:
    """Normalized payload handed to non-webhook integration handlers"""
    return {
        "formId": submission.form_id,
        "responseId": submission.response_id,
        "submissionData": submission.submission_data,
        "respondentEmail": submission.respondent_email,
        "url_params": submission.url_params,
        "timestamp": _now_iso(),
        "integrationName": integration.name,
    }


def _email_recipients(integration: FormIntegration) -> List[str]:
    recipients = integration.config.get("recipients") or integration.config.get("email") or []
    if isinstance(recipients, str):
        recipients = recipients.split(",")
    return [r.strip() for r in recipients if r and "@" in r]


def _render_submission_email(payload: Dict[str, Any]) -> str:
    rows = "".join(
        f"<tr><td style=\"padding: 4px 12px 4px 0;\"><strong>{html.escape(str(key))}</strong></td>"
        f"<td style=\"padding: 4px 0;\">{html.escape(str(value))}</td></tr>"
        for key, value in (payload.get("submissionData") or {}).items()
    )
    respondent = payload.get("respondentEmail")
    respondent_line = f"<p>Respondent: {html.escape(respondent)}</p>" if respondent else ""

    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
        <h2 style="color: #2563eb;">New form submission</h2>
        {respondent_line}
        <table>{rows}</table>
        <hr style="margin-top: 30px; border: none; border-top: 1px solid #e5e7eb;">
        <p style="color: #6b7280; font-size: 12px;">
            Sent by the {html.escape(payload.get("integrationName") or "email")} integration
            &middot; response {html.escape(payload["responseId"])}
        </p>
    </div>
    """


async def handle_email_integration(integration: FormIntegration, payload: Dict[str, Any]) -> None:
    """Email the submission to the integration's recipients"""
    recipients = _email_recipients(integration)
    if not recipients:
        raise ValueError("No email recipients configured")

    subject = integration.config.get("subject") or f"New submission: {integration.name or 'form'}"
    result = await send_email(recipients, subject, _render_submission_email(payload))
    if not result.get("success"):
        raise RuntimeError(result.get("error") or "Failed to send email")

    logger.info(f"Email integration {integration.id} sent to {len(recipients)} recipients")


IntegrationHandler = Callable[[FormIntegration, Dict[str, Any]], Awaitable[None]]

INTEGRATION_HANDLERS: Dict[str, IntegrationHandler] = {
    "email": handle_email_integration,
}


async def trigger_single_integration(integration: FormIntegration, submission: SubmissionEvent) -> None:
    """Run the type-specific handler; unknown types are logged and skipped"""
    payload = build_integration_payload(integration, submission)
    handler = INTEGRATION_HANDLERS.get(integration.integration_type)

    if handler is None:
        logger.info(f"Integration type {integration.integration_type} not implemented yet")
        return

    await handler(integration, payload)


def _update_integration(integration_id: str, values: Dict[str, Any]) -> None:
    supabase_admin.table("form_integrations").update(values).eq("id", integration_id).execute()


async def _trigger_and_record(integration: FormIntegration, submission: SubmissionEvent) -> None:
    try:
        await trigger_single_integration(integration, submission)
        outcome = {
            "last_triggered_at": _now_iso(),
            "status": IntegrationStatus.CONNECTED.value,
            "last_error": None,
        }
    except Exception as e:
        logger.error(f"Error triggering {integration.name}: {e}")
        outcome = {
            "status": IntegrationStatus.ERROR.value,
            "last_error": str(e) or "Unknown error",
        }

    try:
        _update_integration(integration.id, outcome)
    except Exception as update_error:
        logger.error(f"Error recording status for integration {integration.id}: {update_error}")


async def _delegate_webhooks(submission: SubmissionEvent) -> None:
    logger.info(f"Dispatching webhooks for response {submission.response_id}")
    try:
        result = await dispatch_webhooks(submission.form_id, submission.response_id)
        if not result.success:
            logger.error(f"Webhook dispatch error for response {submission.response_id}: {result.error}")
    except Exception as e:
        logger.error(f"Failed to invoke webhook dispatcher for response {submission.response_id}: {e}")


def load_active_integrations(form_id: str) -> List[FormIntegration]:
    result = retry_supabase_query(
        lambda: supabase_admin.table("form_integrations").select("*").eq(
            "form_id", form_id
        ).eq("is_active", True).execute()
    )
    return [FormIntegration(**row) for row in (result.data or [])]


async def trigger_integrations(submission: SubmissionEvent) -> None:
    """
    Run every active integration of the submitted form.

    Best effort: load failures, delivery failures and unexpected errors are
    logged and swallowed. There is no dedup; triggering the same response
    twice delivers twice.

    Args:
        submission: The persisted submission
    """
    try:
        try:
            integrations = load_active_integrations(submission.form_id)
        except Exception as e:
            logger.error(f"Error fetching integrations for form {submission.form_id}: {e}")
            return

        webhook_integrations = [i for i in integrations if i.is_webhook_class]
        other_integrations = [i for i in integrations if not i.is_webhook_class]

        if webhook_integrations:
            await _delegate_webhooks(submission)

        if other_integrations:
            await asyncio.gather(
                *[_trigger_and_record(integration, submission) for integration in other_integrations],
                return_exceptions=True
            )

    except Exception as e:
        logger.error(f"Error triggering integrations for response {submission.response_id}: {e}")
