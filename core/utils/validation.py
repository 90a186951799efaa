import html
from typing import Any, Dict, Iterable, Sequence, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from core.errors import ValidationError

Model = TypeVar("Model", bound=BaseModel)

_LOCATION_PREFIXES = {"body", "query", "path", "form", "header"}


def _field_name(location: Sequence[Any]) -> str:
    parts = [str(part) for part in location]
    if len(parts) > 1 and parts[0] in _LOCATION_PREFIXES:
        parts = parts[1:]
    return ".".join(parts) or "body"


def format_error_message(field: str, error: Dict[str, Any]) -> str:
    """Turn one pydantic error into a short, client-facing reason."""
    error_type = error.get("type", "")
    ctx = error.get("ctx") or {}
    if error_type == "missing":
        return f"{field} is required"
    if field == "email" or field.endswith(".email"):
        return "Invalid email format"
    if error_type in ("string_too_short", "too_short"):
        return f"{field} is too short"
    if error_type in ("string_too_long", "too_long"):
        return f"{field} is too long"
    if error_type in ("greater_than_equal", "greater_than"):
        bound = ctx.get("ge", ctx.get("gt"))
        return f"{field} must be at least {bound}"
    if error_type in ("int_parsing", "int_type", "int_from_float"):
        return f"{field} must be a whole number"
    if error_type in ("bool_parsing", "bool_type"):
        return f"{field} must be true or false"
    message = error.get("msg", "")
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    return message or f"Invalid {field}"


def format_validation_errors(errors: Iterable[Dict[str, Any]]) -> Dict[str, str]:
    """Build the field -> reason mapping returned in the ``details`` of a 400 response."""
    details: Dict[str, str] = {}
    for error in errors:
        field = _field_name(error.get("loc", ()))
        details.setdefault(field, format_error_message(field, error))
    return details


def parse_fields(schema: Type[Model], raw: Dict[str, Any]) -> Model:
    """Validate raw request fields against ``schema``, raising an itemized ValidationError."""
    try:
        return schema(**raw)
    except PydanticValidationError as pve:
        raise ValidationError("Validation failed", details=format_validation_errors(pve.errors()))


def form_fields(**values: Any) -> Dict[str, Any]:
    """Drop form fields the client did not send so they are reported as missing."""
    return {key: value for key, value in values.items() if value is not None}


def sanitize_text(value: Any) -> Any:
    """Trim and HTML-escape free text before it is persisted."""
    if not isinstance(value, str):
        return value
    return html.escape(value.strip())


def sanitize_fields(data: Dict[str, Any], text_fields: Iterable[str]) -> Dict[str, Any]:
    sanitized = dict(data)
    for field in text_fields:
        if field in sanitized:
            value = sanitized[field]
            if isinstance(value, list):
                sanitized[field] = [sanitize_text(item) for item in value]
            else:
                sanitized[field] = sanitize_text(value)
    return sanitized
