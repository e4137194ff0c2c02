# app/routers/recommend.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request

from app.services.recommender import get_recommendations
from app.services.stores import Stores, get_stores
from app.services.types import RecommendationRequest, RecommendationResponse, Strategy
from app.utils import slog

router = APIRouter(tags=["recommend"])


def _serve(req: RecommendationRequest, request: Request, stores: Stores, background: BackgroundTasks) -> RecommendationResponse:
    # Cache writes run after the response is sent
    result = get_recommendations(req, stores, defer=background.add_task)
    request.state.log_context = slog.recommendation_context(req.tenant_id, req.user_id, result.meta, len(result.data))
    return result


@router.get("/recommendations", response_model=RecommendationResponse)
def get_recommendations_endpoint(
    request: Request,
    background: BackgroundTasks,
    tenant_id: str = Query(..., min_length=1, max_length=128),
    user_id: str = Query(..., min_length=1, max_length=256),
    limit: int = Query(8, ge=1, le=50),
    strategy: Optional[Strategy] = None,
    product_id: Optional[str] = None,
    placement_id: Optional[str] = None,
    stores: Stores = Depends(get_stores),
) -> RecommendationResponse:
    """
    Personalized recommendations for one shopper.

    Strategy precedence: running experiment on the placement (only when no explicit
    strategy is given) > explicit strategy > tenant default > trending.
    """
    req = RecommendationRequest(
        tenant_id=tenant_id,
        user_id=user_id,
        limit=limit,
        strategy=strategy,
        product_id=product_id,
        placement_id=placement_id,
    )
    return _serve(req, request, stores, background)


@router.post("/recommendations", response_model=RecommendationResponse)
def post_recommendations(
    req: RecommendationRequest,
    request: Request,
    background: BackgroundTasks,
    stores: Stores = Depends(get_stores),
) -> RecommendationResponse:
    """Same as GET, with the request as a JSON body (camelCase or snake_case keys)."""
    return _serve(req, request, stores, background)
