from typing import Any, Generic, Literal, TypeVar

from pydantic import BaseModel, Field

from ..utils.error_handlers import error_info

T = TypeVar("T")


class ErrorInfo(BaseModel):
    code: str
    message: str
    retryable: bool = False
    status_code: int = 500
    details: dict[str, Any] = Field(default_factory=dict)


class Success(BaseModel, Generic[T]):
    ok: Literal[True] = True
    value: T


class Failure(BaseModel):
    ok: Literal[False] = False
    error: ErrorInfo

    @classmethod
    def from_exception(cls, exc: Exception) -> "Failure":
        return cls(error=ErrorInfo(**error_info(exc)))


Outcome = Success | Failure
