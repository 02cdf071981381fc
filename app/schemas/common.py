# app/schemas/common.py
from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


# Wire format is camelCase; snake_case field names are accepted on input too.
class CamelModel(BaseModel):
    class Config:
        from_attributes = True
        populate_by_name = True
        alias_generator = to_camel


class ErrorBody(BaseModel):
    code: str
    message: str


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    data: Optional[T] = None
    error: Optional[ErrorBody] = None


def ok(data=None) -> dict:
    return {"success": True, "data": data}


def fail(code: str, message: str) -> dict:
    return {"success": False, "error": {"code": code, "message": message}}
