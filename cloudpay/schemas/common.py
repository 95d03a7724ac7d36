from typing import Any

from pydantic import BaseModel


class GenericApiResponse(BaseModel):
    success: bool
    message: str
    status_code: int | None = None
    data: Any = None


class ErrorResponse(BaseModel):
    success: bool = False
    error_code: str
    message: str
    details: dict[str, Any] = {}
