"""Form-related Pydantic models"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, Any, Optional, List


class FormField(BaseModel):
    """Form field directory entry used for recall and payload building"""
    id: Optional[str] = None
    ref: Optional[str] = None
    label: str = ""
    type: str = "text"
    order_index: int = 0


class UrlParamConfig(BaseModel):
    """Declared URL parameter for a form"""
    name: str = ""
    label: Optional[str] = None
    description: Optional[str] = None
    include_in_responses: Optional[bool] = None
    visible_in_exports: Optional[bool] = None
    default_value: Optional[str] = None
    transitive_default: Optional[bool] = None


class UrlParamValidationResult(BaseModel):
    """Result of validating a form's URL parameter configuration"""
    valid: bool
    errors: List[str] = []


class RecallValidationResult(BaseModel):
    """Advisory result of scanning text for recall tokens"""
    model_config = ConfigDict(populate_by_name=True)

    is_valid: bool = Field(..., alias="isValid")
    warnings: List[str] = []


class RecallValidationRequest(BaseModel):
    """Recall lint request from the form builder"""
    model_config = ConfigDict(populate_by_name=True)

    text: str
    fields: List[FormField] = []
    url_params: List[str] = Field([], alias="urlParams")
    current_field_index: Optional[int] = Field(None, alias="currentFieldIndex")


class RecallResolveRequest(BaseModel):
    """Resolve recall tokens against a respondent's answers"""
    model_config = ConfigDict(populate_by_name=True)

    template: Optional[str] = None
    fields: List[FormField] = []
    responses: Dict[str, Any] = Field({}, description="Answers keyed by field id")
    url_params: Dict[str, str] = Field({}, alias="urlParams")


class GenerateRefRequest(BaseModel):
    """Generate a stable field reference from a label"""
    model_config = ConfigDict(populate_by_name=True)

    label: str
    existing_refs: List[str] = Field([], alias="existingRefs")


class FormSubmitRequest(BaseModel):
    """Form submission request"""
    model_config = ConfigDict(populate_by_name=True)

    form_id: str = Field(..., alias="formId")
    submission_data: Dict[str, Any] = Field(..., alias="submissionData", description="Answers keyed by field id")
    respondent_email: Optional[str] = Field(None, alias="respondentEmail")
    respondent_id: Optional[str] = Field(None, alias="respondentId")
    url_params: Dict[str, str] = Field({}, alias="urlParams")
    started_at: Optional[str] = Field(None, alias="startedAt")
    is_partial: bool = Field(False, alias="isPartial")


class FormSubmitResponse(BaseModel):
    """Form submission response"""
    response_id: str
    success: bool
    integrations_queued: bool = False
    error: Optional[str] = None
