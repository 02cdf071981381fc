# app/db/models/rating.py
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
    text,
)
from sqlalchemy.orm import relationship
from datetime import datetime
from app.db.base import Base

RATING_CATEGORIES = ("cost", "quality", "timeliness", "professionalism")


class Rating(Base):
    __tablename__ = "ratings"
    __table_args__ = tuple(
        CheckConstraint(
            f"{name}_rating BETWEEN 1 AND 5", name=f"ck_ratings_{name}_range"
        )
        for name in RATING_CATEGORIES
    )

    id = Column(Integer, primary_key=True, index=True)
    rater_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    rated_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    connection_request_id = Column(Integer, ForeignKey("connection_requests.id"), nullable=True)

    cost_rating = Column(Integer, nullable=False)             # 1..5
    quality_rating = Column(Integer, nullable=False)          # 1..5
    timeliness_rating = Column(Integer, nullable=False)       # 1..5
    professionalism_rating = Column(Integer, nullable=False)  # 1..5

    # mean of the four categories, always a multiple of 0.25
    overall_rating = Column(Float, nullable=False)

    review_text = Column(String, nullable=True)
    is_public = Column(Boolean, nullable=False, default=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    is_deleted = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # relationships (helpful for response shaping)
    rater = relationship("User", foreign_keys=[rater_id])
    rated = relationship("User", foreign_keys=[rated_id])
    connection_request = relationship("ConnectionRequest", foreign_keys=[connection_request_id])


Index(
    "uq_ratings_live_triple",
    Rating.rater_id,
    Rating.rated_id,
    func.coalesce(Rating.connection_request_id, 0),
    unique=True,
    postgresql_where=text("is_deleted = false"),
    sqlite_where=text("is_deleted = 0"),
)


class VendorRatingAggregate(Base):
    """
    Cached per-vendor rating totals over visible, non-deleted ratings.

    Only integer sums are stored so every average can be derived at full
    precision. The row is rewritten from the rating set on every rating
    write and can always be rebuilt by replaying `ratings`.
    """
    __tablename__ = "vendor_rating_aggregates"

    vendor_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    rating_count = Column(Integer, nullable=False, default=0)
    cost_sum = Column(Integer, nullable=False, default=0)
    quality_sum = Column(Integer, nullable=False, default=0)
    timeliness_sum = Column(Integer, nullable=False, default=0)
    professionalism_sum = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

