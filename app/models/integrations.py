"""Integration, dispatch and webhook payload models"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any
from enum import Enum


class IntegrationStatus(str, Enum):
    UNCONFIGURED = "unconfigured"
    CONNECTED = "connected"
    ERROR = "error"


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    RETRYING = "retrying"


# Integrations delivered as HTTPS callbacks through the webhook dispatcher
WEBHOOK_INTEGRATION_TYPES = ("webhook", "n8n", "zapier")


class FormIntegration(BaseModel):
    """Row of the form_integrations table"""
    id: str
    form_id: str
    integration_type: str
    name: Optional[str] = None
    is_active: bool = True
    configuration: Optional[Dict[str, Any]] = None
    status: Optional[str] = IntegrationStatus.UNCONFIGURED.value
    last_triggered_at: Optional[str] = None
    last_error: Optional[str] = None

    @property
    def config(self) -> Dict[str, Any]:
        return self.configuration or {}

    @property
    def is_webhook_class(self) -> bool:
        return self.integration_type in WEBHOOK_INTEGRATION_TYPES


class SubmissionEvent(BaseModel):
    """A persisted form submission, handed to the integration trigger once"""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    form_id: str = Field(..., alias="formId")
    response_id: str = Field(..., alias="responseId")
    submission_data: Dict[str, Any] = Field({}, alias="submissionData")
    respondent_email: Optional[str] = Field(None, alias="respondentEmail")
    url_params: Optional[Dict[str, str]] = Field(None, alias="urlParams")


class WebhookUrlRequest(BaseModel):
    """Webhook URL to check before saving an integration"""
    url: str


class WebhookValidationResult(BaseModel):
    """Structured result of the SSRF checks on a webhook URL"""
    model_config = ConfigDict(populate_by_name=True)

    is_valid: bool = Field(..., alias="isValid")
    error: Optional[str] = None


class DispatchRequest(BaseModel):
    """Webhook dispatch request, keyed by form and response"""
    model_config = ConfigDict(populate_by_name=True)

    form_id: str = Field(..., alias="formId")
    response_id: str = Field(..., alias="responseId")


class DispatchResult(BaseModel):
    """Outcome of a batched webhook dispatch"""
    success: bool
    dispatched: int = 0
    succeeded: int = 0
    failed: int = 0
    message: Optional[str] = None
    error: Optional[str] = None


class ResponseField(BaseModel):
    id: str
    label: str
    type: str
    ref: Optional[str] = None


class ResponseAnswer(BaseModel):
    field: ResponseField
    type: str
    value: Any = None
    file_urls: Optional[List[str]] = None


class ResponseMetadata(BaseModel):
    completion_time_seconds: Optional[int] = None
    completion_time_label: Optional[str] = None
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    referer: Optional[str] = None


class ResponsePayload(BaseModel):
    """Canonical form response, shared by the webhook dispatcher and exports"""
    id: str
    form_id: str
    form_title: Optional[str] = None
    status: str = "complete"
    respondent_id: Optional[str] = None
    respondent_email: Optional[str] = None
    created_at: Optional[str] = None
    submitted_at: Optional[str] = None
    url_params: Dict[str, str] = {}
    metadata: ResponseMetadata = ResponseMetadata()
    answers: List[ResponseAnswer] = []


class WebhookEvent(BaseModel):
    """Body POSTed to webhook-class integrations"""
    event_id: str
    event_type: str = "form_response"
    created_at: str
    form_response: ResponsePayload
