"""
Integration trigger after a form submission.
- Webhook-class integrations go to the dispatcher in one call
- Other integrations run concurrently, each recording its own status
- Nothing raises to the caller
"""
from unittest.mock import AsyncMock, patch

import pytest

from app.models.integrations import DispatchResult, FormIntegration, SubmissionEvent
from app.services import integration_trigger
from app.services.integration_trigger import (
    build_integration_payload,
    handle_email_integration,
    trigger_integrations,
)

SUBMISSION = SubmissionEvent(
    formId="form-1",
    responseId="resp-1",
    submissionData={"first_name": "Ada"},
    respondentEmail="ada@example.com",
    urlParams={"utm_source": "ads"},
)


def integration_row(row_id, integration_type, **overrides):
    row = {
        "id": row_id,
        "form_id": "form-1",
        "integration_type": integration_type,
        "name": f"{integration_type} {row_id}",
        "is_active": True,
        "status": "unconfigured",
        "configuration": {},
    }
    row.update(overrides)
    return row


@pytest.fixture
def dispatcher():
    with patch(
        "app.services.integration_trigger.dispatch_webhooks",
        new_callable=AsyncMock,
        return_value=DispatchResult(success=True, dispatched=1, succeeded=1),
    ) as mock:
        yield mock


@pytest.mark.asyncio
async def test_webhook_class_integrations_dispatched_in_one_call(fake_db, dispatcher):
    fake_db.tables["form_integrations"] = [
        integration_row("i1", "webhook"),
        integration_row("i2", "n8n"),
        integration_row("i3", "zapier"),
    ]

    await trigger_integrations(SUBMISSION)

    dispatcher.assert_awaited_once_with("form-1", "resp-1")
    # The dispatcher owns status writes for webhook-class integrations
    assert fake_db.updates == []


@pytest.mark.asyncio
async def test_inactive_and_other_form_integrations_ignored(fake_db, dispatcher):
    fake_db.tables["form_integrations"] = [
        integration_row("i1", "webhook", is_active=False),
        integration_row("i2", "webhook", form_id="form-2"),
    ]

    await trigger_integrations(SUBMISSION)

    dispatcher.assert_not_awaited()


@pytest.mark.asyncio
async def test_unimplemented_type_marked_connected(fake_db, dispatcher):
    fake_db.tables["form_integrations"] = [integration_row("i1", "slack")]

    await trigger_integrations(SUBMISSION)

    dispatcher.assert_not_awaited()
    row = fake_db.tables["form_integrations"][0]
    assert row["status"] == "connected"
    assert row["last_error"] is None
    assert row["last_triggered_at"] is not None


@pytest.mark.asyncio
async def test_failing_integration_does_not_affect_others(fake_db, dispatcher):
    fake_db.tables["form_integrations"] = [
        integration_row("bad", "email"),
        integration_row("good", "crm"),
    ]
    handlers = {
        "email": AsyncMock(side_effect=RuntimeError("SMTP refused")),
        "crm": AsyncMock(return_value=None),
    }

    with patch.dict(integration_trigger.INTEGRATION_HANDLERS, handlers, clear=True):
        await trigger_integrations(SUBMISSION)

    rows = {row["id"]: row for row in fake_db.tables["form_integrations"]}
    assert rows["bad"]["status"] == "error"
    assert rows["bad"]["last_error"] == "SMTP refused"
    assert rows["good"]["status"] == "connected"
    assert rows["good"]["last_error"] is None
    handlers["crm"].assert_awaited_once()


@pytest.mark.asyncio
async def test_error_transitions_back_to_connected(fake_db, dispatcher):
    fake_db.tables["form_integrations"] = [
        integration_row("i1", "crm", status="error", last_error="previous failure"),
    ]

    with patch.dict(integration_trigger.INTEGRATION_HANDLERS, {"crm": AsyncMock()}):
        await trigger_integrations(SUBMISSION)

    row = fake_db.tables["form_integrations"][0]
    assert row["status"] == "connected"
    assert row["last_error"] is None


@pytest.mark.asyncio
async def test_handler_receives_normalized_payload(fake_db, dispatcher):
    fake_db.tables["form_integrations"] = [integration_row("i1", "crm", name="CRM sync")]
    handler = AsyncMock()

    with patch.dict(integration_trigger.INTEGRATION_HANDLERS, {"crm": handler}):
        await trigger_integrations(SUBMISSION)

    integration, payload = handler.await_args.args
    assert integration.id == "i1"
    assert payload["formId"] == "form-1"
    assert payload["responseId"] == "resp-1"
    assert payload["submissionData"] == {"first_name": "Ada"}
    assert payload["respondentEmail"] == "ada@example.com"
    assert payload["url_params"] == {"utm_source": "ads"}
    assert payload["integrationName"] == "CRM sync"
    assert payload["timestamp"]


@pytest.mark.asyncio
async def test_load_failure_is_swallowed(fake_db, dispatcher):
    fake_db.errors[("form_integrations", "select")] = RuntimeError("database unavailable")

    await trigger_integrations(SUBMISSION)

    dispatcher.assert_not_awaited()
    assert fake_db.updates == []


@pytest.mark.asyncio
async def test_dispatch_failure_logged_not_recorded(fake_db):
    fake_db.tables["form_integrations"] = [
        integration_row("hook", "webhook"),
        integration_row("other", "crm"),
    ]

    with patch(
        "app.services.integration_trigger.dispatch_webhooks",
        new_callable=AsyncMock,
        side_effect=RuntimeError("dispatcher unreachable"),
    ) as dispatcher, patch.dict(integration_trigger.INTEGRATION_HANDLERS, {"crm": AsyncMock()}):
        await trigger_integrations(SUBMISSION)

    dispatcher.assert_awaited_once()
    assert fake_db.updates_for("form_integrations", "hook") == []
    assert fake_db.updates_for("form_integrations", "other")[0]["status"] == "connected"


@pytest.mark.asyncio
async def test_unsuccessful_dispatch_result_is_not_retried(fake_db):
    fake_db.tables["form_integrations"] = [integration_row("hook", "zapier")]

    with patch(
        "app.services.integration_trigger.dispatch_webhooks",
        new_callable=AsyncMock,
        return_value=DispatchResult(success=False, error="Failed to build payload"),
    ) as dispatcher:
        await trigger_integrations(SUBMISSION)

    dispatcher.assert_awaited_once()


@pytest.mark.asyncio
async def test_same_response_delivered_twice(fake_db, dispatcher):
    """No dedup exists: triggering the same response twice delivers twice"""
    fake_db.tables["form_integrations"] = [
        integration_row("hook", "webhook"),
        integration_row("other", "crm"),
    ]
    handler = AsyncMock()

    with patch.dict(integration_trigger.INTEGRATION_HANDLERS, {"crm": handler}):
        await trigger_integrations(SUBMISSION)
        await trigger_integrations(SUBMISSION)

    assert dispatcher.await_count == 2
    assert handler.await_count == 2


@pytest.mark.asyncio
async def test_status_write_failure_does_not_raise(fake_db, dispatcher):
    fake_db.tables["form_integrations"] = [integration_row("i1", "crm")]
    fake_db.errors[("form_integrations", "update")] = RuntimeError("write failed")

    with patch.dict(integration_trigger.INTEGRATION_HANDLERS, {"crm": AsyncMock()}):
        await trigger_integrations(SUBMISSION)


class TestEmailHandler:

    @pytest.mark.asyncio
    async def test_sends_to_configured_recipients(self):
        integration = FormIntegration(**integration_row(
            "i1", "email", configuration={"recipients": "owner@example.com, , not-an-email"}
        ))
        payload = build_integration_payload(integration, SUBMISSION)

        with patch(
            "app.services.integration_trigger.send_email",
            new_callable=AsyncMock,
            return_value={"success": True, "id": "em_1"},
        ) as send:
            await handle_email_integration(integration, payload)

        recipients, subject, body = send.await_args.args
        assert recipients == ["owner@example.com"]
        assert subject == "New submission: email i1"
        assert "Ada" in body
        assert "ada@example.com" in body

    @pytest.mark.asyncio
    async def test_missing_recipients_raise(self):
        integration = FormIntegration(**integration_row("i1", "email"))
        with pytest.raises(ValueError, match="No email recipients configured"):
            await handle_email_integration(integration, build_integration_payload(integration, SUBMISSION))

    @pytest.mark.asyncio
    async def test_provider_failure_raises(self):
        integration = FormIntegration(**integration_row("i1", "email", configuration={"recipients": ["a@example.com"]}))
        with patch(
            "app.services.integration_trigger.send_email",
            new_callable=AsyncMock,
            return_value={"success": False, "error": "Failed to send email: 422"},
        ):
            with pytest.raises(RuntimeError, match="422"):
                await handle_email_integration(integration, build_integration_payload(integration, SUBMISSION))


@pytest.mark.asyncio
async def test_failed_status_write_does_not_record_error(fake_db, dispatcher):
    """A delivered integration is never marked error because its status write failed"""
    fake_db.tables["form_integrations"] = [integration_row("i1", "crm")]
    fake_db.errors[("form_integrations", "update")] = [RuntimeError("transient write failure")]
    handler = AsyncMock()

    with patch.dict(integration_trigger.INTEGRATION_HANDLERS, {"crm": handler}):
        await trigger_integrations(SUBMISSION)

    handler.assert_awaited_once()
    row = fake_db.tables["form_integrations"][0]
    assert row["status"] == "unconfigured"
    assert row.get("last_error") is None
    assert fake_db.updates == []
