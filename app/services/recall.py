"""Recall tokens: authoring-time lint, field refs and runtime resolution"""
import json
import re
from typing import Any, Dict, List, Optional

from app.models.forms import FormField, RecallValidationResult

# {{ field:first_name }}, {{param:utm_source}}, {{ var : total }}
RECALL_PATTERN = re.compile(r"\{\{\s*(field|param|hidden|var)\s*:\s*([a-zA-Z0-9_]+)\s*\}\}")

MAX_REF_LENGTH = 30


def validate_recall_tokens(
    text: str,
    fields: List[FormField],
    url_params: List[str],
    current_field_index: Optional[int] = None
) -> RecallValidationResult:
    """
    Flag recall tokens that point at nothing, or at fields the respondent has
    not reached yet.

    Args:
        text: Label, description or other template text
        fields: Form fields, looked up by ref
        url_params: Declared URL parameter names
        current_field_index: order_index of the field being edited, if any

    Returns:
        RecallValidationResult; advisory only, never blocks saving
    """
    warnings: List[str] = []
    fields_by_ref = {}
    for field in fields:
        if field.ref and field.ref not in fields_by_ref:
            fields_by_ref[field.ref] = field

    for match in RECALL_PATTERN.finditer(text or ""):
        token, kind, name = match.group(0), match.group(1), match.group(2)

        if kind in ("field", "var"):
            field = fields_by_ref.get(name)
            if field is None:
                warnings.append(f'Token {token} references unknown field "{name}"')
            elif current_field_index is not None and field.order_index >= current_field_index:
                warnings.append(f'Token {token} references field "{field.label}" which appears later in form')

        elif kind in ("param", "hidden"):
            if name not in url_params:
                warnings.append(f'Token {token} references undefined URL parameter "{name}"')

    return RecallValidationResult(is_valid=not warnings, warnings=warnings)


def generate_ref(label: str, existing_refs: List[str]) -> str:
    """
    Slugify a field label into a unique ref.

    "First Name!" -> "first_name"; "first_name_1" when "first_name" is taken.
    """
    base = re.sub(r"[^a-z0-9]", "_", (label or "").lower())
    base = base.strip("_")[:MAX_REF_LENGTH]
    if not base:
        base = "field"

    taken = set(existing_refs)
    ref = base
    counter = 1
    while ref in taken:
        ref = f"{base}_{counter}"
        counter += 1

    return ref


def _stringify_answer(raw: Any) -> str:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, bool):
        return "true" if raw else "false"
    if isinstance(raw, (int, float)):
        return str(raw)
    if isinstance(raw, (list, tuple)):
        return ", ".join(_stringify_answer(item) for item in raw)
    return json.dumps(raw)


def build_recall_context(
    fields: List[FormField],
    responses: Dict[str, Any],
    url_params: Optional[Dict[str, str]] = None
) -> Dict[str, Dict[str, Any]]:
    """
    Index a respondent's answers for recall.

    Args:
        fields: Form fields (answers are keyed by field id)
        responses: Answers keyed by field id
        url_params: URL parameters captured for the response

    Returns:
        {"answers_by_ref": ..., "url_params": ..., "variables": ...}
    """
    answers_by_ref: Dict[str, str] = {}
    variables: Dict[str, Any] = {}

    for field in fields:
        if not field.ref or field.id is None:
            continue

        raw = responses.get(field.id)
        if raw is None or raw == "":
            continue

        answers_by_ref[field.ref] = _stringify_answer(raw)
        if field.type == "calculated":
            variables[field.ref] = raw

    return {
        "answers_by_ref": answers_by_ref,
        "url_params": dict(url_params or {}),
        "variables": variables,
    }


def resolve_recall(template: Optional[str], context: Dict[str, Dict[str, Any]]) -> str:
    """Replace recall tokens with answers; unresolved tokens become empty"""
    if not template:
        return ""

    def substitute(match: re.Match) -> str:
        kind, name = match.group(1), match.group(2)
        if kind == "field":
            return context["answers_by_ref"].get(name, "")
        if kind in ("param", "hidden"):
            return context["url_params"].get(name, "")
        value = context["variables"].get(name)
        return "" if value is None else _stringify_answer(value)

    return RECALL_PATTERN.sub(substitute, template)
