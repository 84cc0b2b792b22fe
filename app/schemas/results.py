"""Result envelope returned by services for every state-changing operation."""
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"


class OperationResult(BaseModel):
    success: bool
    message: str
    data: Optional[Any] = None
    error: Optional[ErrorKind] = None

    @classmethod
    def ok(cls, message: str, data: Any = None) -> "OperationResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, error: ErrorKind, message: str) -> "OperationResult":
        return cls(success=False, message=message, error=error)
