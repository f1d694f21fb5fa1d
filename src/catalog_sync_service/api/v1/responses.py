"""Response envelope shared by every endpoint."""

from typing import Any

from pydantic import BaseModel


class ApiResponse(BaseModel):
    """``{status, success, message, result}`` envelope."""

    status: int = 200
    success: bool = True
    message: str
    result: Any = None


def ok(message: str, result: Any = None, status: int = 200) -> ApiResponse:
    return ApiResponse(status=status, success=True, message=message, result=result)
