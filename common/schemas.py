"""
Shared request-model base and response envelope.

Requests and responses use camelCase on the wire; Python code stays
snake_case.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def ok(data: Any = None, message: Optional[str] = None, **extra) -> dict:
    """Standard success envelope: {"success": true, "data": ..., "message"?: ...}."""
    body = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body


def fail(message: str, **extra) -> dict:
    """Soft failure returned with HTTP 200 (e.g. geocoding found nothing)."""
    return {"success": False, "message": message, **extra}


def to_float(value) -> Optional[float]:
    return float(value) if value is not None else None
