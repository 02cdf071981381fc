# app/api/routes/services.py

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.errors import NotFoundError
from app.db.base import get_db
from app.db.models.category import Category
from app.db.models.service import Service
from app.schemas.common import Envelope, ok
from app.schemas.service import CategoryResponse, ServiceResponse


router = APIRouter(prefix="/services", tags=["services"])


# Active categories (public)

@router.get("/categories", response_model=Envelope[list[CategoryResponse]])
def get_categories(db: Session = Depends(get_db)):
    categories = (
        db.query(Category)
        .filter(Category.is_active == True)
        .order_by(Category.sort_order, Category.name)
        .all()
    )
    return ok([CategoryResponse.model_validate(c) for c in categories])


# Active services in a category (public)

@router.get("/categories/{category_id}/services", response_model=Envelope[list[ServiceResponse]])
def get_services_by_category(category_id: int, db: Session = Depends(get_db)):
    category = (
        db.query(Category)
        .filter(Category.id == category_id, Category.is_active == True)
        .first()
    )
    if not category:
        raise NotFoundError("Category not found")

    services = (
        db.query(Service)
        .filter(Service.category_id == category_id, Service.is_active == True)
        .order_by(Service.name)
        .all()
    )
    return ok([
        ServiceResponse(
            id=s.id,
            category_id=s.category_id,
            name=s.name,
            description=s.description,
            category_name=category.name,
        )
        for s in services
    ])
