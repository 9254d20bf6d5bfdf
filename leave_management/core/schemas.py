from typing import Any, Dict, Generic, Optional, TypeVar
from pydantic import BaseModel

T = TypeVar("T")


class ErrorInfo(BaseModel):
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    error: ErrorInfo

    @classmethod
    def build(cls, message: str, code: str = "INTERNAL_ERROR", details: Optional[Dict[str, Any]] = None) -> "ErrorResponse":
        return cls(error=ErrorInfo(code=code, message=message, details=details))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary with JSON-serializable values, omitting empty details."""
        return self.model_dump(mode="json", exclude_none=True)


class DataResponse(BaseModel, Generic[T]):
    """Success envelope: every endpoint returns {"data": ...}."""
    data: T


class MessageOut(BaseModel):
    message: str
