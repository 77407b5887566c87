from __future__ import annotations

from typing import Any, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from taskhub.service.errors import ValidationError

ShapeT = TypeVar("ShapeT", bound=BaseModel)


def _field_name(loc: tuple) -> str:
    return ".".join(str(part) for part in loc) or "body"


def _error_details(exc: PydanticValidationError) -> list[dict]:
    return [
        {
            "field": _field_name(err.get("loc", ())),
            "message": err.get("msg", "invalid value"),
            "type": err.get("type"),
        }
        for err in exc.errors(include_url=False, include_input=False)
    ]


def validate(
    shape: Type[ShapeT], raw: Any
) -> Tuple[Optional[ShapeT], Optional[ValidationError]]:
    """Validate an untyped payload against ``shape``.

    Returns ``(value, None)`` on success and ``(None, error)`` otherwise. Only
    the first violation is named in the message; every violation is listed
    under ``detail``. Unknown fields are dropped and declared defaults
    applied by the shape itself.
    """
    if not isinstance(raw, dict):
        return None, ValidationError(
            "Request body must be a JSON object",
            detail=[{"field": "body", "message": "expected an object", "type": "dict_type"}],
        )
    try:
        return shape.model_validate(raw), None
    except PydanticValidationError as exc:
        details = _error_details(exc)
        first = details[0]
        return None, ValidationError(
            f"{first['field']}: {first['message']}", detail=details
        )
