from dataclasses import fields, is_dataclass
from enum import Enum
from typing import Any, Optional

from fastapi import HTTPException, Request

from ..errors import ErrorCode
from ..workspace import Workspace

_STATUS_BY_ERROR = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.STORAGE_WRITE_FAILED: 507,
}


def get_workspace(request: Request) -> Workspace:
    return request.app.state.workspace


def serialize(value: Any) -> Any:
    if hasattr(value, "model_dump"):
        return value.model_dump(exclude_none=True)
    if is_dataclass(value) and not isinstance(value, type):
        return {field.name: serialize(getattr(value, field.name)) for field in fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, list):
        return [serialize(item) for item in value]
    if isinstance(value, dict):
        return {key: serialize(val) for key, val in value.items()}
    return value


def raise_for_error(error: Optional[ErrorCode], message: Optional[str] = None) -> None:
    if error is None:
        return
    raise HTTPException(status_code=_STATUS_BY_ERROR.get(error, 400), detail=message or error.value)
