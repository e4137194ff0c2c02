# =============================================
# File: app/utils/metrics.py
# Purpose: In-process counters & histograms for /metrics
# =============================================
from __future__ import annotations
from typing import Dict, Any, List
import threading
import time

# Simple in-memory registry (thread-safe enough for dev)
_lock = threading.Lock()

# Counters
_counters: Dict[str, int] = {
    "requests_total": 0,
    "recommendations_total": 0,
    "fallbacks_total": 0,
    "cache_hits_total": 0,
    "cache_misses_total": 0,
    "experiment_assignments_total": 0,
}

# Labeled counters
_strategy_usage: Dict[str, int] = {}   # served strategy -> count
_variant_counts: Dict[str, int] = {}   # "experiment_id:variant" -> count

# Fixed-bucket histogram for latency (milliseconds)
# Buckets: <=10,25,50,100,250,500,1000,2500, +inf
_latency_buckets: List[int] = [10, 25, 50, 100, 250, 500, 1000, 2500]
_latency_counts: List[int] = [0 for _ in _latency_buckets] + [0]  # last is +inf (overflow)

# Per-endpoint latency samples (bounded) and counters for avg/p95
_MAX_SAMPLES: int = 1000
_endpoint_latency: Dict[str, List[float]] = {}   # key: "METHOD /path" -> [ms]
_endpoint_counts: Dict[str, int] = {}            # key: "METHOD /path" -> count

def _avg(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0

def _p95(values: List[float]) -> float:
    if not values:
        return 0.0
    xs = sorted(values)
    idx = int(0.95 * (len(xs) - 1))
    return xs[idx]

def _observe_latency_ms(ms: int) -> None:
    idx = len(_latency_buckets)  # default overflow
    for i, thr in enumerate(_latency_buckets):
        if ms <= thr:
            idx = i
            break
    _latency_counts[idx] += 1

def record_request(latency_ms: int) -> None:
    with _lock:
        _counters["requests_total"] += 1
        _observe_latency_ms(int(latency_ms))

def record_recommendation(strategy: str, is_fallback: bool, cached: bool) -> None:
    with _lock:
        _counters["recommendations_total"] += 1
        _strategy_usage[strategy] = _strategy_usage.get(strategy, 0) + 1
        if is_fallback:
            _counters["fallbacks_total"] += 1
        _counters["cache_hits_total" if cached else "cache_misses_total"] += 1

def record_assignment(experiment_id: str, variant: str) -> None:
    key = f"{experiment_id}:{variant}"
    with _lock:
        _counters["experiment_assignments_total"] += 1
        _variant_counts[key] = _variant_counts.get(key, 0) + 1

def record_endpoint(method: str, path: str, latency_ms: float) -> None:
    key = f"{method.upper()} {path}"
    with _lock:
        _endpoint_counts[key] = _endpoint_counts.get(key, 0) + 1
        buf = _endpoint_latency.setdefault(key, [])
        buf.append(float(latency_ms))
        # bound buffer
        if len(buf) > _MAX_SAMPLES:
            del buf[: len(buf) - _MAX_SAMPLES]


def snapshot() -> Dict[str, Any]:
    with _lock:
        perf: Dict[str, Dict[str, float]] = {}
        for key, buf in _endpoint_latency.items():
            perf[key] = {
                "count": float(_endpoint_counts.get(key, 0)),
                "avg_latency_ms": _avg(buf),
                "p95_latency_ms": _p95(buf),
            }
        return {
            "counters": dict(_counters),
            "strategy_usage": dict(_strategy_usage),
            "experiment_variants": dict(_variant_counts),
            "latency_ms": {
                "buckets": list(_latency_buckets) + ["+Inf"],
                "counts": list(_latency_counts),
            },
            "performance": {
                "endpoints": perf,
                "generated_at": time.time(),
            },
        }

def reset() -> None:
    with _lock:
        for k in _counters:
            _counters[k] = 0
        _strategy_usage.clear()
        _variant_counts.clear()
        for i in range(len(_latency_counts)):
            _latency_counts[i] = 0
        _endpoint_latency.clear()
        _endpoint_counts.clear()
