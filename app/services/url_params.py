"""URL parameter declarations: name rules, config validation and collection"""
import re
from typing import Dict, List, Optional

from app.models.forms import UrlParamConfig, UrlParamValidationResult

# Query parameters consumed by the embed script and the form renderer
RESERVED_URL_PARAMS = frozenset({
    "embed",
    "mode",
    "org_id",
    "theme",
    "lang",
    "progress",
    "hideTitle",
    "hideDescription",
})

PARAM_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")


def is_reserved_param(name: str) -> bool:
    return name in RESERVED_URL_PARAMS


def is_valid_param_name(name: str) -> bool:
    return bool(PARAM_NAME_PATTERN.match(name or "")) and not is_reserved_param(name)


def validate_url_param_config(config: List[UrlParamConfig]) -> UrlParamValidationResult:
    """
    Validate a form's URL parameter declarations in a single pass.

    Every problem is reported, in declaration order. A missing name skips the
    remaining checks for that entry.
    """
    errors: List[str] = []
    names = set()

    for index, param in enumerate(config):
        if not param.name:
            errors.append(f"Parameter {index + 1}: Name is required")
            continue

        if not is_valid_param_name(param.name):
            if is_reserved_param(param.name):
                errors.append(f'Parameter "{param.name}": Reserved parameter name')
            else:
                errors.append(
                    f'Parameter "{param.name}": Invalid format (use only letters, numbers, and underscores)'
                )

        if param.name in names:
            errors.append(f'Parameter "{param.name}": Duplicate name')
        names.add(param.name)

    return UrlParamValidationResult(valid=not errors, errors=errors)


def collect_url_params(
    config: List[UrlParamConfig],
    query: Optional[Dict[str, str]]
) -> Dict[str, str]:
    """
    Build the url_params mapping stored with a response.

    Only declared parameters are kept; a missing or empty value falls back to
    the declared default. Parameters with include_in_responses=False are
    dropped.
    """
    query = query or {}
    collected: Dict[str, str] = {}

    for param in config:
        if not param.name or param.include_in_responses is False:
            continue

        value = query.get(param.name)
        if value in (None, "") and param.default_value is not None:
            value = param.default_value

        if value not in (None, ""):
            collected[param.name] = value

    return collected
