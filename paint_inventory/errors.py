"""
Result values returned by the core operations.

Domain failures never raise; they come back as a failed ``Result`` carrying
an ``ErrorKind`` and a message the client shows verbatim.
"""
import enum
from typing import Any, Optional

from pydantic import BaseModel


class ErrorKind(str, enum.Enum):
    NOT_FOUND = "NotFound"
    DUPLICATE_ID = "DuplicateId"
    INVALID_INPUT = "InvalidInput"
    NOT_AUTHORIZED = "NotAuthorized"
    UNREACHABLE = "Unreachable"


HTTP_STATUS = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.DUPLICATE_ID: 400,
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.NOT_AUTHORIZED: 403,
    ErrorKind.UNREACHABLE: 503,
}


class Result(BaseModel):
    """
    Outcome of a core operation.

    Attributes:
        success (bool): Whether the operation took effect
        error (str): Human-readable failure message
        kind (ErrorKind): Failure category
        value: Operation payload on success
    """
    success: bool
    error: Optional[str] = None
    kind: Optional[ErrorKind] = None
    value: Any = None

    @classmethod
    def ok(cls, value: Any = None) -> "Result":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, kind: ErrorKind, error: str) -> "Result":
        return cls(success=False, kind=kind, error=error)

    @property
    def status_code(self) -> int:
        if self.success:
            return 200
        return HTTP_STATUS.get(self.kind, 400)
