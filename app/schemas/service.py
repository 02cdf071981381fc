# app/schemas/service.py

from typing import Optional

from app.schemas.common import CamelModel


class CategoryResponse(CamelModel):
    id: int
    name: str
    description: Optional[str] = None
    icon_url: Optional[str] = None
    sort_order: int


class ServiceResponse(CamelModel):
    id: int
    category_id: int
    name: str
    description: Optional[str] = None
    category_name: Optional[str] = None
