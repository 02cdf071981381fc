# app/schemas/rating.py
from pydantic import Field, conint, field_serializer
from typing import Dict, List, Optional
from datetime import datetime

from app.schemas.common import CamelModel

Score = conint(ge=1, le=5)


class CategoryScores(CamelModel):
    cost: Score = Field(..., description="Rating 1-5")
    quality: Score = Field(..., description="Rating 1-5")
    timeliness: Score = Field(..., description="Rating 1-5")
    professionalism: Score = Field(..., description="Rating 1-5")


class PartialCategoryScores(CamelModel):
    cost: Optional[Score] = None
    quality: Optional[Score] = None
    timeliness: Optional[Score] = None
    professionalism: Optional[Score] = None


class RatingCreate(CamelModel):
    vendor_id: int
    connection_request_id: Optional[int] = None
    ratings: CategoryScores
    comment: Optional[str] = None
    is_public: bool = True


class RatingUpdate(CamelModel):
    ratings: Optional[PartialCategoryScores] = None
    comment: Optional[str] = None
    is_public: Optional[bool] = None


class RatingResponse(CamelModel):
    id: int
    rater_id: int
    rated_id: int
    connection_request_id: Optional[int] = None
    cost_rating: int
    quality_rating: int
    timeliness_rating: int
    professionalism_rating: int
    overall_rating: float
    review_text: Optional[str] = None
    is_public: bool
    is_verified: bool
    created_at: datetime
    updated_at: Optional[datetime] = None
    rater_name: Optional[str] = None

    @field_serializer("overall_rating")
    def round_overall(self, value: float) -> float:
        return round(value, 2)


class RatingListResponse(CamelModel):
    total: int
    page: int
    per_page: int
    items: List[RatingResponse]


class RatingAggregateResponse(CamelModel):
    vendor_id: int
    count: int
    average_overall: float
    average_cost: float
    average_quality: float
    average_timeliness: float
    average_professionalism: float
    distribution: Dict[int, int]

    @field_serializer(
        "average_overall",
        "average_cost",
        "average_quality",
        "average_timeliness",
        "average_professionalism",
    )
    def round_average(self, value: float) -> float:
        return round(value, 2)
