# =============================================
# File: app/services/types.py
# Purpose: Shared enums and pydantic models for the recommendation core
# =============================================
from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Strategy(str, Enum):
    COLLABORATIVE = "collaborative"
    CONTENT_BASED = "content_based"
    TRENDING = "trending"
    FREQUENTLY_BOUGHT_TOGETHER = "frequently_bought_together"


class EventType(str, Enum):
    PRODUCT_VIEWED = "product_viewed"
    PRODUCT_CLICKED = "product_clicked"
    ADD_TO_CART = "add_to_cart"
    REMOVE_FROM_CART = "remove_from_cart"
    PURCHASE = "purchase"
    RECOMMENDATION_CLICKED = "recommendation_clicked"
    RECOMMENDATION_IMPRESSED = "recommendation_impressed"


class ExperimentStatus(str, Enum):
    DRAFT = "draft"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


class Metric(str, Enum):
    CTR = "ctr"
    CONVERSION_RATE = "conversion_rate"
    REVENUE_PER_VISITOR = "revenue_per_visitor"


class Variant(str, Enum):
    CONTROL = "control"
    VARIANT = "variant"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RecommendationItem(_CamelModel):
    product_id: str
    score: float = Field(ge=0.0, le=1.0)
    reason: str


class EnrichedItem(RecommendationItem):
    name: Optional[str] = None
    image_url: Optional[str] = None
    price: Optional[float] = None


class RecommendationRequest(_CamelModel):
    """
    Validated recommendation request.
    - limit: 1..50 items, default 8.
    - strategy: explicit strategy; loses to a running experiment only when absent.
    - product_id: context product (required for co-purchase results, otherwise trending is served).
    - placement_id: UI slot that may host an experiment.
    """
    tenant_id: str = Field(..., min_length=1, max_length=128)
    user_id: str = Field(..., min_length=1, max_length=256)
    limit: int = Field(8, ge=1, le=50)
    strategy: Optional[Strategy] = None
    product_id: Optional[str] = None
    placement_id: Optional[str] = None


class RecommendationMeta(_CamelModel):
    strategy: Strategy
    is_fallback: bool = False
    experiment_id: Optional[str] = None
    variant: Optional[Variant] = None
    cached: bool = False


class RecommendationResponse(_CamelModel):
    data: List[EnrichedItem]
    meta: RecommendationMeta
