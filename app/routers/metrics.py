# =============================================
# File: app/routers/metrics.py
# Purpose: Expose in-process serving metrics (requests, strategy usage, fallbacks, cache) as JSON
# =============================================
from __future__ import annotations
from typing import Any, Dict

from fastapi import APIRouter
from app.utils.metrics import snapshot

router = APIRouter(tags=["metrics"])


def _rate(num: int, den: int) -> float:
    return round(num / den, 4) if den else 0.0


@router.get("/metrics")
def get_metrics() -> Dict[str, Any]:
    """Counters and histograms, plus fallback and cache-hit rates over served recommendations."""
    snap = snapshot()
    c = snap["counters"]
    served = c["recommendations_total"]
    snap["rates"] = {
        "fallback_rate": _rate(c["fallbacks_total"], served),
        "cache_hit_rate": _rate(c["cache_hits_total"], served),
    }
    return snap
