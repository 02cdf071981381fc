# app/api/routes/ratings.py
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional

from app.db.base import get_db
from app.db.models.rating import Rating
from app.db.models.user import User
from app.schemas.common import Envelope, ok
from app.schemas.rating import (
    RatingAggregateResponse,
    RatingCreate,
    RatingListResponse,
    RatingResponse,
    RatingUpdate,
)
from app.core.security import get_current_user
from app.services import ratings as rating_service
from app.services.notifications import NotificationDispatcher, get_dispatcher

router = APIRouter(prefix="/ratings", tags=["ratings"])


def _rating_out(rating: Rating, rater_name: Optional[str]) -> RatingResponse:
    out = RatingResponse.model_validate(rating)
    out.rater_name = rater_name
    return out


# Create rating (aggregate is rebuilt in the same transaction)
@router.post("", response_model=Envelope[RatingResponse], status_code=status.HTTP_201_CREATED)
def create_rating(
    rating_in: RatingCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    rating = rating_service.create_rating(db, dispatcher, current_user, rating_in)
    return ok(_rating_out(rating, current_user.name))


@router.put("/{rating_id}", response_model=Envelope[RatingResponse])
def update_rating(
    rating_id: int,
    rating_in: RatingUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    rating = rating_service.update_rating(db, rating_id, current_user, rating_in)
    return ok(_rating_out(rating, current_user.name))


@router.delete("/{rating_id}", response_model=Envelope[dict])
def delete_rating(
    rating_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    rating_service.delete_rating(db, rating_id, current_user)
    return ok({"id": rating_id, "deleted": True})


# List public ratings for a vendor (public)
@router.get("/{vendor_id}", response_model=Envelope[RatingListResponse])
def list_vendor_ratings(
    vendor_id: int,
    min_rating: Optional[float] = Query(None, alias="minRating", ge=1, le=5),
    has_review: Optional[bool] = Query(None, alias="hasReview"),
    verified: Optional[bool] = Query(None),
    sort: str = Query("newest"),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100, alias="perPage"),
    db: Session = Depends(get_db),
):
    total, rows = rating_service.list_ratings(
        db,
        vendor_id,
        min_rating=min_rating,
        has_review=has_review,
        verified=verified,
        sort=sort,
        page=page,
        per_page=per_page,
    )
    return ok(
        RatingListResponse(
            total=total,
            page=page,
            per_page=per_page,
            items=[_rating_out(rating, rater_name) for rating, rater_name in rows],
        )
    )


@router.get("/{vendor_id}/aggregation", response_model=Envelope[RatingAggregateResponse])
def vendor_aggregation(vendor_id: int, db: Session = Depends(get_db)):
    stats = rating_service.get_aggregate(db, vendor_id)
    return ok(RatingAggregateResponse(**stats.as_dict()))
