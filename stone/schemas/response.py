from typing import Any, Dict, Generic, Optional, TypeVar

from fastapi import Request
from pydantic import BaseModel

from stone.schemas.errors import ErrorCode

T = TypeVar("T")


class APIResponse(BaseModel, Generic[T]):
    """Standardized API response"""

    success: bool
    data: Optional[T] = None
    message: Optional[str] = None
    request_id: Optional[str] = None


def success_response(
    data: Any = None, message: str = None, request: Request = None
) -> dict:
    """Auto-serialize Pydantic models"""
    if isinstance(data, BaseModel):
        data = data.model_dump()

    return {
        "success": True,
        "data": data,
        "message": message,
        "request_id": (
            getattr(request.state, "request_id", None) if request else None
        ),
    }


def error_response(
    code: ErrorCode,
    message: str,
    details: Any = None,
    request_id: Optional[str] = None,
) -> Dict:
    """Create a standardized error response"""
    response = {
        "success": False,
        "code": code.value,
        "error": message,
        "request_id": request_id,
    }
    if details is not None:
        response["details"] = details
    return response
