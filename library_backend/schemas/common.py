from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from typing import Any, Optional

class CamelModel(BaseModel):
    """Request body accepting camelCase keys (snake_case also allowed)."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True

class ApiResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: Optional[Any] = None

def ok(data: Any = None, message: Optional[str] = None) -> ApiResponse:
    return ApiResponse(success=True, message=message, data=data)

def paged(items: list, pagination: dict, message: Optional[str] = None) -> ApiResponse:
    return ApiResponse(success=True, message=message, data={"items": items, "pagination": pagination})
