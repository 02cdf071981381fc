# app/services/ratings.py
"""
Rating & Aggregation Engine.

A vendor's aggregate is never adjusted incrementally. Every rating write
locks the vendor's `VendorRatingAggregate` row and rebuilds it from the
rating set inside the same transaction, so concurrent writers serialize on
the row and the cached totals always equal a replay of the ratings.
"""
import math
from dataclasses import dataclass, field
from typing import Dict, Optional

import structlog
from sqlalchemy import func, insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import (
    DuplicateRatingError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from app.db.models.connection_request import ACCEPTED, ConnectionRequest
from app.db.models.rating import RATING_CATEGORIES, Rating, VendorRatingAggregate
from app.db.models.user import VENDOR, User
from app.schemas.rating import RatingCreate, RatingUpdate
from app.services.notifications import NotificationDispatcher

logger = structlog.get_logger(__name__)

SORT_ORDERS = {
    "newest": (Rating.created_at.desc(), Rating.id.desc()),
    "oldest": (Rating.created_at.asc(), Rating.id.asc()),
    "highest_rating": (Rating.overall_rating.desc(), Rating.created_at.desc(), Rating.id.desc()),
    "lowest_rating": (Rating.overall_rating.asc(), Rating.created_at.desc(), Rating.id.desc()),
}


def overall_of(cost: int, quality: int, timeliness: int, professionalism: int) -> float:
    return (cost + quality + timeliness + professionalism) / 4.0


def star_bucket(overall: float) -> int:
    """Round half up to a whole star: 4.5 -> 5, 4.25 -> 4."""
    return int(math.floor(overall + 0.5))


@dataclass
class AggregateStats:
    vendor_id: int
    count: int = 0
    cost_sum: int = 0
    quality_sum: int = 0
    timeliness_sum: int = 0
    professionalism_sum: int = 0
    distribution: Dict[int, int] = field(default_factory=lambda: {star: 0 for star in range(1, 6)})

    def _average(self, total: int) -> float:
        return total / self.count if self.count else 0.0

    @property
    def average_cost(self) -> float:
        return self._average(self.cost_sum)

    @property
    def average_quality(self) -> float:
        return self._average(self.quality_sum)

    @property
    def average_timeliness(self) -> float:
        return self._average(self.timeliness_sum)

    @property
    def average_professionalism(self) -> float:
        return self._average(self.professionalism_sum)

    @property
    def average_overall(self) -> float:
        # mean of per-rating overalls == sum of all category points / (4 * count)
        if not self.count:
            return 0.0
        total = self.cost_sum + self.quality_sum + self.timeliness_sum + self.professionalism_sum
        return total / (4.0 * self.count)

    def totals(self) -> tuple:
        return (
            self.count,
            self.cost_sum,
            self.quality_sum,
            self.timeliness_sum,
            self.professionalism_sum,
        )

    def as_dict(self) -> dict:
        return {
            "vendor_id": self.vendor_id,
            "count": self.count,
            "average_overall": self.average_overall,
            "average_cost": self.average_cost,
            "average_quality": self.average_quality,
            "average_timeliness": self.average_timeliness,
            "average_professionalism": self.average_professionalism,
            "distribution": dict(self.distribution),
        }


def _live_ratings(db: Session, vendor_id: int):
    return db.query(Rating).filter(
        Rating.rated_id == vendor_id,
        Rating.is_deleted == False,
        Rating.is_public == True,
    )


def _distribution(db: Session, vendor_id: int) -> Dict[int, int]:
    distribution = {star: 0 for star in range(1, 6)}
    for (overall,) in _live_ratings(db, vendor_id).with_entities(Rating.overall_rating):
        distribution[star_bucket(overall)] += 1
    return distribution


def compute_aggregate(db: Session, vendor_id: int) -> AggregateStats:
    """Replay every visible, non-deleted rating of the vendor."""
    row = (
        _live_ratings(db, vendor_id)
        .with_entities(
            func.count(Rating.id),
            func.coalesce(func.sum(Rating.cost_rating), 0),
            func.coalesce(func.sum(Rating.quality_rating), 0),
            func.coalesce(func.sum(Rating.timeliness_rating), 0),
            func.coalesce(func.sum(Rating.professionalism_rating), 0),
        )
        .one()
    )
    count, cost_sum, quality_sum, timeliness_sum, professionalism_sum = (int(v) for v in row)
    return AggregateStats(
        vendor_id=vendor_id,
        count=count,
        cost_sum=cost_sum,
        quality_sum=quality_sum,
        timeliness_sum=timeliness_sum,
        professionalism_sum=professionalism_sum,
        distribution=_distribution(db, vendor_id),
    )


def _ensure_aggregate_row(db: Session, vendor_id: int) -> None:
    # another writer may be creating the vendor's first row at the same time
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = pg_insert(VendorRatingAggregate).values(vendor_id=vendor_id).on_conflict_do_nothing()
    elif dialect == "sqlite":
        stmt = sqlite_insert(VendorRatingAggregate).values(vendor_id=vendor_id).on_conflict_do_nothing()
    else:
        stmt = insert(VendorRatingAggregate).values(vendor_id=vendor_id)
    db.execute(stmt)


def _lock_aggregate(db: Session, vendor_id: int) -> VendorRatingAggregate:
    """
    Row-lock the vendor's aggregate for the rest of the transaction.
    Must run before the rating change is flushed.
    """
    query = (
        db.query(VendorRatingAggregate)
        .filter(VendorRatingAggregate.vendor_id == vendor_id)
        .with_for_update()
    )
    aggregate = query.first()
    if aggregate is None:
        _ensure_aggregate_row(db, vendor_id)
        aggregate = query.one()
    return aggregate


def _rebuild_aggregate(db: Session, aggregate: VendorRatingAggregate) -> VendorRatingAggregate:
    """Rewrite a locked aggregate row from the rating set. Caller commits."""
    db.flush()
    stats = compute_aggregate(db, aggregate.vendor_id)
    aggregate.rating_count = stats.count
    aggregate.cost_sum = stats.cost_sum
    aggregate.quality_sum = stats.quality_sum
    aggregate.timeliness_sum = stats.timeliness_sum
    aggregate.professionalism_sum = stats.professionalism_sum
    return aggregate


def _get_vendor(db: Session, vendor_id: int) -> User:
    vendor = db.query(User).filter(User.id == vendor_id, User.role == VENDOR).first()
    if not vendor:
        raise NotFoundError("Vendor not found")
    return vendor


def _get_own_rating(db: Session, rating_id: int, rater: User) -> Rating:
    rating = db.query(Rating).filter(Rating.id == rating_id, Rating.is_deleted == False).first()
    if not rating:
        raise NotFoundError("Rating not found")
    if rating.rater_id != rater.id:
        raise ForbiddenError("Only the original rater can change this rating")
    return rating


def _set_overall(rating: Rating) -> None:
    rating.overall_rating = overall_of(
        rating.cost_rating,
        rating.quality_rating,
        rating.timeliness_rating,
        rating.professionalism_rating,
    )


def create_rating(
    db: Session,
    dispatcher: NotificationDispatcher,
    rater: User,
    payload: RatingCreate,
) -> Rating:
    vendor = _get_vendor(db, payload.vendor_id)
    if not vendor.is_active:
        raise NotFoundError("Vendor not found")
    if vendor.id == rater.id:
        raise ValidationError("You cannot rate yourself")

    is_verified = False
    if payload.connection_request_id is not None:
        request = (
            db.query(ConnectionRequest)
            .filter(
                ConnectionRequest.id == payload.connection_request_id,
                ConnectionRequest.consumer_id == rater.id,
                ConnectionRequest.vendor_id == vendor.id,
            )
            .first()
        )
        if not request:
            raise NotFoundError("Connection request not found")
        if request.status != ACCEPTED:
            raise ValidationError("Only accepted connection requests can be rated")
        is_verified = True

    existing = (
        db.query(Rating.id)
        .filter(
            Rating.rater_id == rater.id,
            Rating.rated_id == vendor.id,
            Rating.connection_request_id.is_(None)
            if payload.connection_request_id is None
            else Rating.connection_request_id == payload.connection_request_id,
            Rating.is_deleted == False,
        )
        .first()
    )
    if existing:
        raise DuplicateRatingError("You have already rated this vendor for this request")

    aggregate = _lock_aggregate(db, vendor.id)

    scores = payload.ratings
    rating = Rating(
        rater_id=rater.id,
        rated_id=vendor.id,
        connection_request_id=payload.connection_request_id,
        cost_rating=scores.cost,
        quality_rating=scores.quality,
        timeliness_rating=scores.timeliness,
        professionalism_rating=scores.professionalism,
        overall_rating=overall_of(scores.cost, scores.quality, scores.timeliness, scores.professionalism),
        review_text=payload.comment,
        is_public=payload.is_public,
        is_verified=is_verified,
    )
    db.add(rating)
    try:
        _rebuild_aggregate(db, aggregate)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateRatingError("You have already rated this vendor for this request")
    db.refresh(rating)

    logger.info(
        "rating_created",
        rating_id=rating.id,
        rater_id=rater.id,
        vendor_id=vendor.id,
        overall=rating.overall_rating,
    )
    dispatcher.emit(
        db,
        vendor.id,
        "NEW_RATING",
        "New review",
        f"{rater.name} rated you {rating.overall_rating:.2f}/5",
        related_entity_type="rating",
        related_entity_id=rating.id,
        payload={"ratingId": rating.id, "overallRating": rating.overall_rating},
    )
    return rating


def update_rating(db: Session, rating_id: int, rater: User, payload: RatingUpdate) -> Rating:
    rating = _get_own_rating(db, rating_id, rater)
    aggregate = _lock_aggregate(db, rating.rated_id)

    if payload.ratings is not None:
        for category in RATING_CATEGORIES:
            value = getattr(payload.ratings, category)
            if value is not None:
                setattr(rating, f"{category}_rating", value)
    if "comment" in payload.model_fields_set:
        rating.review_text = payload.comment
    if payload.is_public is not None:
        rating.is_public = payload.is_public

    _set_overall(rating)
    _rebuild_aggregate(db, aggregate)
    db.commit()
    db.refresh(rating)

    logger.info("rating_updated", rating_id=rating.id, vendor_id=rating.rated_id)
    return rating


def delete_rating(db: Session, rating_id: int, rater: User) -> None:
    rating = _get_own_rating(db, rating_id, rater)
    aggregate = _lock_aggregate(db, rating.rated_id)
    rating.is_deleted = True
    _rebuild_aggregate(db, aggregate)
    db.commit()

    logger.info("rating_deleted", rating_id=rating_id, vendor_id=rating.rated_id)


def get_aggregate(db: Session, vendor_id: int) -> AggregateStats:
    """Cached totals for the vendor; agrees with `compute_aggregate`."""
    _get_vendor(db, vendor_id)
    aggregate = (
        db.query(VendorRatingAggregate)
        .filter(VendorRatingAggregate.vendor_id == vendor_id)
        .first()
    )
    if aggregate is None:
        return AggregateStats(vendor_id=vendor_id)
    return AggregateStats(
        vendor_id=vendor_id,
        count=aggregate.rating_count,
        cost_sum=aggregate.cost_sum,
        quality_sum=aggregate.quality_sum,
        timeliness_sum=aggregate.timeliness_sum,
        professionalism_sum=aggregate.professionalism_sum,
        distribution=_distribution(db, vendor_id),
    )


def list_ratings(
    db: Session,
    vendor_id: int,
    min_rating: Optional[float] = None,
    has_review: Optional[bool] = None,
    verified: Optional[bool] = None,
    sort: str = "newest",
    page: int = 1,
    per_page: int = 20,
):
    if sort not in SORT_ORDERS:
        raise ValidationError(f"sort must be one of: {', '.join(SORT_ORDERS)}")
    _get_vendor(db, vendor_id)

    q = _live_ratings(db, vendor_id)
    if min_rating is not None:
        q = q.filter(Rating.overall_rating >= min_rating)
    if has_review is True:
        q = q.filter(Rating.review_text.isnot(None), Rating.review_text != "")
    elif has_review is False:
        q = q.filter((Rating.review_text.is_(None)) | (Rating.review_text == ""))
    if verified is not None:
        q = q.filter(Rating.is_verified == verified)

    total = q.count()
    offset = (page - 1) * per_page
    rows = (
        q.join(User, Rating.rater_id == User.id)
        .add_columns(User.name)
        .order_by(*SORT_ORDERS[sort])
        .offset(offset)
        .limit(per_page)
        .all()
    )
    return total, rows
