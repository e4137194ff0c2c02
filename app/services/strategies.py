# =============================================
# File: app/services/strategies.py
# Purpose: The four ranking strategies (trending, collaborative, content-based, frequently bought
#          together) and the registry the orchestrator dispatches through.
# =============================================
from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, FrozenSet, List, Optional

from loguru import logger

from app.db.models import CatalogItem, utcnow
from app.services.stores import EventFilter, Stores, max_candidates
from app.services.types import EventType, RecommendationItem, Strategy

EVENT_WEIGHTS: Dict[str, float] = {
    EventType.PRODUCT_VIEWED.value: 1.0,
    EventType.PRODUCT_CLICKED.value: 2.0,
    EventType.ADD_TO_CART.value: 3.0,
    EventType.REMOVE_FROM_CART.value: 0.0,
    EventType.PURCHASE.value: 5.0,
    EventType.RECOMMENDATION_CLICKED.value: 2.0,
    EventType.RECOMMENDATION_IMPRESSED.value: 0.0,
}

TRENDING_WINDOW = timedelta(hours=24)
CO_PURCHASE_WINDOW = timedelta(days=7)
MIN_USER_EVENTS = 5
MAX_NEIGHBORS = 20
PROFILE_EVENTS = 50
TOP_CATEGORIES = 5
OVERFETCH = 5

# Content-based bonus caps; they sum to 1.0
CATEGORY_BONUS = 0.4
PRICE_BONUS = 0.3
ATTRIBUTE_BONUS = 0.3


@dataclass
class StrategyContext:
    tenant_id: str
    user_id: str
    limit: int
    product_id: Optional[str] = None
    exclude: FrozenSet[str] = frozenset()
    now: datetime = field(default_factory=utcnow)


def weight(event_type: str) -> float:
    return EVENT_WEIGHTS.get(event_type, 0.0)


def _rank(
    stores: Stores,
    ctx: StrategyContext,
    scores: Dict[str, float],
    reason: str,
) -> List[RecommendationItem]:
    """
    Availability-filter raw scores, then normalize by the best surviving score,
    sort descending and truncate to ctx.limit.
    """
    positive = {pid: s for pid, s in scores.items() if s > 0 and pid not in ctx.exclude}
    if not positive:
        return []
    # Bound the availability lookup; ties broken by product id for stable output
    ordered = sorted(positive.items(), key=lambda kv: (-kv[1], kv[0]))[: max_candidates()]
    available = {
        item.product_id
        for item in stores.catalog.find_items(ctx.tenant_id, [pid for pid, _ in ordered], available_only=True)
    }
    kept = [(pid, s) for pid, s in ordered if pid in available]
    if not kept:
        return []
    top = kept[0][1]
    return [
        RecommendationItem(product_id=pid, score=s / top, reason=reason)
        for pid, s in kept[: ctx.limit]
    ]


class RankingStrategy(ABC):
    name: Strategy

    @abstractmethod
    def recommend(self, stores: Stores, ctx: StrategyContext) -> List[RecommendationItem]: ...


class TrendingStrategy(RankingStrategy):
    """Weighted event velocity over the last 24h. Ignores the user entirely."""

    name = Strategy.TRENDING

    def recommend(self, stores: Stores, ctx: StrategyContext) -> List[RecommendationItem]:
        flt = EventFilter(ctx.tenant_id, since=ctx.now - TRENDING_WINDOW)
        scores: Dict[str, float] = defaultdict(float)
        for product_id, event_type, n in stores.events.product_tally(flt):
            scores[product_id] += weight(event_type) * n

        items = _rank(stores, ctx, scores, "Trending now")
        if items:
            return items
        return self._recent_catalog(stores, ctx)

    @staticmethod
    def _recent_catalog(stores: Stores, ctx: StrategyContext) -> List[RecommendationItem]:
        recent = stores.catalog.recent_items(ctx.tenant_id, ctx.limit, exclude=ctx.exclude)
        count = len(recent)
        return [
            RecommendationItem(product_id=item.product_id, score=1 - rank / count, reason="Popular in catalog")
            for rank, item in enumerate(recent)
        ]


class CollaborativeStrategy(RankingStrategy):
    """User-user neighborhood over shared product interactions."""

    name = Strategy.COLLABORATIVE

    def recommend(self, stores: Stores, ctx: StrategyContext) -> List[RecommendationItem]:
        if stores.events.count_events(ctx.tenant_id, ctx.user_id) < MIN_USER_EVENTS:
            return []

        own = {p for _, p, _, _ in stores.events.user_product_tally(EventFilter(ctx.tenant_id, user_id=ctx.user_id))}
        if not own:
            return []

        # overlap = number of the user's products each neighbor also touched
        touched: Dict[str, set] = defaultdict(set)
        flt = EventFilter(ctx.tenant_id, product_ids=own, exclude_user_id=ctx.user_id)
        for user_id, product_id, _, _ in stores.events.user_product_tally(flt):
            touched[user_id].add(product_id)
        if not touched:
            return []

        neighbors = sorted(touched.items(), key=lambda kv: (-len(kv[1]), kv[0]))[:MAX_NEIGHBORS]
        overlap = {user_id: len(products) for user_id, products in neighbors}
        max_overlap = max(overlap.values())

        scores: Dict[str, float] = defaultdict(float)
        skip = own | ctx.exclude
        for user_id, product_id, event_type, n in stores.events.user_product_tally(
            EventFilter(ctx.tenant_id, user_ids=overlap.keys())
        ):
            if product_id in skip:
                continue
            scores[product_id] += (overlap[user_id] / max_overlap) * weight(event_type) * n

        logger.debug(f"[collaborative] user={ctx.user_id} neighbors={len(overlap)} candidates={len(scores)}")
        return _rank(stores, ctx, scores, "Users with similar taste also liked this")


def _attribute_pairs(attributes: Optional[dict]) -> set:
    # Values are compared by exact equality; JSON-encode so lists/dicts are hashable
    return {(k, json.dumps(v, sort_keys=True)) for k, v in (attributes or {}).items()}


class ContentBasedStrategy(RankingStrategy):
    """Category / price / attribute affinity against the user's recent interactions."""

    name = Strategy.CONTENT_BASED

    def recommend(self, stores: Stores, ctx: StrategyContext) -> List[RecommendationItem]:
        recent = stores.events.find_events(EventFilter(ctx.tenant_id, user_id=ctx.user_id, limit=PROFILE_EVENTS))
        if not recent:
            return []

        interacted = {item.product_id: item for item in stores.catalog.find_items(
            ctx.tenant_id, [e.product_id for e in recent]
        )}
        if not interacted:
            return []

        # Category histogram counts interactions, so repeat visits weigh in
        categories: Counter = Counter(
            interacted[e.product_id].category
            for e in recent
            if e.product_id in interacted and interacted[e.product_id].category
        )
        if not categories:
            return []
        total = sum(categories.values())

        prices = [item.price for item in interacted.values() if item.price is not None]
        liked_pairs: set = set()
        for item in interacted.values():
            liked_pairs |= _attribute_pairs(item.attributes)

        candidates = stores.catalog.items_in_categories(
            ctx.tenant_id,
            [c for c, _ in categories.most_common(TOP_CATEGORIES)],
            exclude=set(interacted) | ctx.exclude,
            limit=min(ctx.limit * OVERFETCH, max_candidates()),
        )

        scores: Dict[str, float] = {}
        top_category: Dict[str, str] = {}
        for cand in candidates:
            score = CATEGORY_BONUS * categories.get(cand.category, 0) / total
            score += PRICE_BONUS * _price_closeness(cand, prices)
            pairs = _attribute_pairs(cand.attributes)
            if pairs:
                score += ATTRIBUTE_BONUS * len(pairs & liked_pairs) / len(pairs)
            if score > 0:
                scores[cand.product_id] = score
                top_category[cand.product_id] = cand.category or ""

        if not scores:
            return []
        ranked = sorted(scores.items(), key=lambda kv: (-kv[1], kv[0]))[: ctx.limit]
        best = ranked[0][1]
        return [
            RecommendationItem(
                product_id=pid,
                score=s / best,
                reason=f"Matches your interest in {top_category[pid]}",
            )
            for pid, s in ranked
        ]


def _price_closeness(item: CatalogItem, prices: List[float]) -> float:
    """1.0 at the midpoint of the observed price range, falling linearly to 0."""
    if item.price is None or not prices:
        return 0.0
    lo, hi = min(prices), max(prices)
    mid = (lo + hi) / 2
    spread = hi - lo
    if spread <= 0:
        spread = mid if mid > 0 else 1.0
    return max(0.0, 1.0 - abs(item.price - mid) / spread)


class FrequentlyBoughtTogetherStrategy(RankingStrategy):
    """Co-purchase counts for a context product over the last 7 days."""

    name = Strategy.FREQUENTLY_BOUGHT_TOGETHER

    def recommend(self, stores: Stores, ctx: StrategyContext) -> List[RecommendationItem]:
        if not ctx.product_id:
            return []
        since = ctx.now - CO_PURCHASE_WINDOW
        purchase = [EventType.PURCHASE]

        buyers = {
            u for u, _, _, _ in stores.events.user_product_tally(
                EventFilter(ctx.tenant_id, product_ids=[ctx.product_id], event_types=purchase, since=since)
            )
        }
        if not buyers:
            return []

        # co-occurrence = distinct buyers of the context product who also bought p
        co_buyers: Dict[str, set] = defaultdict(set)
        for user_id, product_id, _, _ in stores.events.user_product_tally(
            EventFilter(ctx.tenant_id, user_ids=buyers, event_types=purchase, since=since)
        ):
            if product_id != ctx.product_id:
                co_buyers[product_id].add(user_id)

        scores = {pid: float(len(users)) for pid, users in co_buyers.items()}
        return _rank(stores, ctx, scores, "Frequently bought together")


STRATEGIES: Dict[Strategy, RankingStrategy] = {
    s.name: s
    for s in (
        TrendingStrategy(),
        CollaborativeStrategy(),
        ContentBasedStrategy(),
        FrequentlyBoughtTogetherStrategy(),
    )
}


def get_strategy(name: Strategy | str) -> RankingStrategy:
    return STRATEGIES[Strategy(name)]


def run_strategy(name: Strategy | str, stores: Stores, ctx: StrategyContext) -> List[RecommendationItem]:
    return get_strategy(name).recommend(stores, ctx)
