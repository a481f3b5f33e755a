"""Parameter and return-value validation against the declared wire schemas."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from qbank_sync.core.errors import ContentStoreError, SchemaError

T = TypeVar("T", bound=BaseModel)


def _error_fields(exc: ValidationError) -> list[str]:
    fields: list[str] = []
    for error in exc.errors():
        path = ".".join(str(part) for part in error["loc"]) or "<root>"
        if path not in fields:
            fields.append(path)
    return fields


def validate_parameters(schema: type[T], raw: Any) -> T:
    """
    Check raw call arguments against ``schema``.

    Raises:
        SchemaError: listing every missing or mistyped field
    """
    if not isinstance(raw, Mapping):
        raise SchemaError(["<root>"], "Parameters must be an object of named values")
    try:
        return schema.model_validate(dict(raw))
    except ValidationError as exc:
        fields = _error_fields(exc)
        details = "; ".join(f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors())
        raise SchemaError(fields, f"Invalid parameter value detected: {details}") from exc


def validate_returns(schema: type[BaseModel], value: Any) -> dict[str, Any]:
    """Shape a handler result through its return schema."""
    try:
        if isinstance(value, schema):
            model = value
        else:
            model = schema.model_validate(value)
    except ValidationError as exc:
        raise ContentStoreError("Invalid response value detected", str(exc)) from exc
    return model.model_dump(mode="json")
