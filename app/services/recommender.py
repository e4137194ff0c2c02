# =============================================
# File: app/services/recommender.py
# Purpose: Recommendation orchestrator: resolve the strategy (experiment > explicit > tenant default),
#          apply the cold-start override, consult the cache, walk the fallback chain, enrich.
# =============================================
from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from loguru import logger

from app.services.experiments import get_experiment_assignment, strategy_for
from app.services.stores import Stores
from app.services.strategies import MIN_USER_EVENTS, StrategyContext, run_strategy
from app.services.types import (
    EnrichedItem,
    RecommendationItem,
    RecommendationMeta,
    RecommendationRequest,
    RecommendationResponse,
    Strategy,
    Variant,
)
from app.utils import metrics, rcache, slog

# Ordered by decreasing personalization; evaluated lazily, first non-empty wins
FALLBACK_CHAINS: Dict[Strategy, Tuple[Strategy, ...]] = {
    Strategy.COLLABORATIVE: (Strategy.COLLABORATIVE, Strategy.CONTENT_BASED, Strategy.TRENDING),
    Strategy.CONTENT_BASED: (Strategy.CONTENT_BASED, Strategy.TRENDING),
    Strategy.FREQUENTLY_BOUGHT_TOGETHER: (Strategy.FREQUENTLY_BOUGHT_TOGETHER, Strategy.TRENDING),
    Strategy.TRENDING: (Strategy.TRENDING,),
}

Defer = Callable[[Callable[[], None]], None]


def _run_now(fn: Callable[[], None]) -> None:
    fn()


@dataclass
class Resolution:
    strategy: Strategy
    is_fallback: bool = False
    experiment_id: Optional[str] = None
    variant: Optional[Variant] = None
    bucket: Optional[int] = None


def _coerce(value: Optional[str], default: Strategy = Strategy.TRENDING) -> Strategy:
    if not value:
        return default
    try:
        return Strategy(value)
    except ValueError:
        logger.warning(f"[recommend] unknown strategy '{value}', using {default.value}")
        return default


def resolve_strategy(req: RecommendationRequest, stores: Stores) -> Resolution:
    res: Optional[Resolution] = None

    if req.placement_id and req.strategy is None:
        try:
            exp = stores.experiments.find_running_experiment(req.tenant_id, req.placement_id)
        except Exception as e:
            logger.warning(f"[recommend] experiment lookup failed tenant={req.tenant_id}: {e}")
            exp = None
        if exp is not None:
            assignment = get_experiment_assignment(req.user_id, exp.id, exp.traffic_split)
            res = Resolution(
                strategy=_coerce(strategy_for(exp, assignment.variant)),
                experiment_id=exp.id,
                variant=assignment.variant,
                bucket=assignment.bucket,
            )

    if res is None and req.strategy is not None:
        res = Resolution(strategy=Strategy(req.strategy))

    if res is None:
        try:
            default = stores.tenants.get_default_strategy(req.tenant_id)
        except Exception as e:
            logger.warning(f"[recommend] tenant config lookup failed tenant={req.tenant_id}: {e}")
            default = None
        res = Resolution(strategy=_coerce(default))

    # Cold start overrides experiments and explicit requests alike
    overridden = False
    if res.strategy != Strategy.TRENDING:
        try:
            n_events = stores.events.count_events(req.tenant_id, req.user_id)
        except Exception as e:
            logger.warning(f"[recommend] event count failed tenant={req.tenant_id}: {e}")
            n_events = 0
        if n_events < MIN_USER_EVENTS:
            overridden = True
            res.strategy = Strategy.TRENDING
            res.is_fallback = True

    if res.strategy == Strategy.FREQUENTLY_BOUGHT_TOGETHER and not req.product_id:
        res.strategy = Strategy.TRENDING
        res.is_fallback = True

    if res.experiment_id is not None:
        slog.log_event(
            "experiment.assigned",
            tenant_id=req.tenant_id,
            experiment_id=res.experiment_id,
            variant=res.variant.value if res.variant else None,
            bucket=res.bucket,
            uhash=slog.uhash(req.user_id),
            overridden_by_cold_start=overridden,
        )
        metrics.record_assignment(res.experiment_id, res.variant.value if res.variant else "")
    return res


def execute_chain(
    strategy: Strategy, stores: Stores, ctx: StrategyContext
) -> Tuple[List[RecommendationItem], Strategy, bool]:
    """Returns (items, strategy that produced them, whether a fallback was taken)."""
    chain = FALLBACK_CHAINS[strategy]
    items: List[RecommendationItem] = []
    served = chain[-1]
    for name in chain:
        try:
            items = run_strategy(name, stores, ctx)
        except Exception as e:
            logger.exception(f"[recommend] strategy={name.value} failed tenant={ctx.tenant_id}: {e}")
            items = []
        if items:
            served = name
            break
        logger.debug(f"[recommend] strategy={name.value} empty for user={ctx.user_id}")
    return items, served, served != strategy


def enrich(stores: Stores, tenant_id: str, items: List[RecommendationItem]) -> List[EnrichedItem]:
    """One batched catalog read; order and scores are kept as ranked."""
    try:
        catalog = {c.product_id: c for c in stores.catalog.find_items(tenant_id, [i.product_id for i in items])}
    except Exception as e:
        logger.warning(f"[recommend] enrichment failed tenant={tenant_id}: {e}")
        catalog = {}
    out: List[EnrichedItem] = []
    for item in items:
        row = catalog.get(item.product_id)
        out.append(
            EnrichedItem(
                product_id=item.product_id,
                score=item.score,
                reason=item.reason,
                name=row.name if row else None,
                image_url=row.image_url if row else None,
                price=row.price if row else None,
            )
        )
    return out


def get_recommendations(
    req: RecommendationRequest,
    stores: Stores,
    cache: Optional[rcache.ResultCache] = None,
    defer: Optional[Defer] = None,
    now: Optional[datetime] = None,
) -> RecommendationResponse:
    """
    Produce ranked, enriched recommendations with provenance metadata.
    Never raises for a validated request; worst case is an empty trending list.
    """
    cache = cache if cache is not None else rcache.get_cache()
    defer = defer or _run_now

    t0 = time.perf_counter()
    res = resolve_strategy(req, stores)
    key = rcache.make_key(req.tenant_id, res.strategy.value, req.limit, req.user_id, req.product_id)

    hit = cache.get(key)
    if hit is not None:
        items = [RecommendationItem.model_validate(i) for i in hit.get("items", [])]
        served = _coerce(hit.get("strategy"), res.strategy)
        is_fallback = res.is_fallback or bool(hit.get("isFallback"))
        cached = True
    else:
        ctx = StrategyContext(
            tenant_id=req.tenant_id,
            user_id=req.user_id,
            limit=req.limit,
            product_id=req.product_id,
            exclude=frozenset([req.product_id]) if req.product_id else frozenset(),
        )
        if now is not None:
            ctx.now = now
        items, served, chain_fallback = execute_chain(res.strategy, stores, ctx)
        is_fallback = res.is_fallback or chain_fallback
        cached = False

        payload = {
            "strategy": served.value,
            "isFallback": chain_fallback,
            "items": [i.model_dump(by_alias=True) for i in items],
        }
        ttl = rcache.ttl_for(res.strategy.value)
        defer(lambda: cache.set(key, payload, ttl))

    data = enrich(stores, req.tenant_id, items)

    metrics.record_recommendation(served.value, is_fallback, cached)
    logger.info(
        f"[recommend] tenant={req.tenant_id} user={req.user_id} strategy={served.value} "
        f"fallback={is_fallback} cached={cached} items={len(data)} ms={int((time.perf_counter() - t0) * 1000)}"
    )
    return RecommendationResponse(
        data=data,
        meta=RecommendationMeta(
            strategy=served,
            is_fallback=is_fallback,
            experiment_id=res.experiment_id,
            variant=res.variant,
            cached=cached,
        ),
    )
