# =============================================
# File: app/services/statistics.py
# Purpose: Experiment statistics from aggregated per-variant counters: metric values, Wilson
#          intervals, lift and two-proportion z-test significance. Pure functions, no I/O.
# =============================================
from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Dict, Tuple

Z_95 = 1.96
ALPHA = 0.05
MIN_REVENUE_SAMPLE = 30


@dataclass
class VariantMetrics:
    impressions: int = 0
    clicks: int = 0
    conversions: int = 0
    revenue: float = 0.0
    sample_size: int = 0

    def as_dict(self) -> Dict[str, float]:
        d = asdict(self)
        d["sampleSize"] = d.pop("sample_size")
        return d


@dataclass
class ExperimentStats:
    control_metric_value: float
    variant_metric_value: float
    control_confidence_interval: Tuple[float, float]
    variant_confidence_interval: Tuple[float, float]
    lift: float
    p_value: float
    is_significant: bool


def _div(num: float, den: float) -> float:
    if not den:
        return 0.0
    out = num / den
    return out if math.isfinite(out) else 0.0


def normal_cdf(z: float) -> float:
    """Standard normal CDF via the Abramowitz-Stegun 7.1.26 erf approximation."""
    a1, a2, a3, a4, a5 = 0.254829592, -0.284496736, 1.421413741, -1.453152027, 1.061405429
    p = 0.3275911
    sign = -1.0 if z < 0 else 1.0
    x = abs(z) / math.sqrt(2.0)
    t = 1.0 / (1.0 + p * x)
    erf = 1.0 - (((((a5 * t + a4) * t) + a3) * t + a2) * t + a1) * t * math.exp(-x * x)
    return 0.5 * (1.0 + sign * erf)


def wilson_interval(successes: float, trials: float, z: float = Z_95) -> Tuple[float, float]:
    if trials <= 0:
        return (0.0, 0.0)
    p = _div(successes, trials)
    z2 = z * z
    denom = 1 + z2 / trials
    center = (p + z2 / (2 * trials)) / denom
    margin = z * math.sqrt(max(0.0, p * (1 - p) / trials + z2 / (4 * trials * trials))) / denom
    return (max(0.0, center - margin), min(1.0, center + margin))


def two_proportion_p_value(s1: float, n1: float, s2: float, n2: float) -> float:
    """Two-tailed p-value of a pooled two-proportion z-test; 1.0 when undefined."""
    if n1 <= 0 or n2 <= 0:
        return 1.0
    p1, p2 = s1 / n1, s2 / n2
    pooled = (s1 + s2) / (n1 + n2)
    se = math.sqrt(max(0.0, pooled * (1 - pooled) * (1 / n1 + 1 / n2)))
    if se == 0:
        return 1.0
    z = (p2 - p1) / se
    return 2 * (1 - normal_cdf(abs(z)))


def _proportion(metric: str, m: VariantMetrics) -> Tuple[float, float]:
    if metric == "ctr":
        return m.clicks, m.impressions
    return m.conversions, m.sample_size


def metric_value(metric: str, m: VariantMetrics) -> float:
    if metric == "revenue_per_visitor":
        return _div(m.revenue, m.sample_size)
    return _div(*_proportion(metric, m))


def compute_experiment_results(metric: str, control: VariantMetrics, variant: VariantMetrics) -> ExperimentStats:
    c_val = metric_value(metric, control)
    v_val = metric_value(metric, variant)
    lift = _div(v_val - c_val, c_val)

    if metric == "revenue_per_visitor":
        # Sample-size gate only, not a t-test. Dashboards key off these exact values.
        small = control.sample_size < MIN_REVENUE_SAMPLE or variant.sample_size < MIN_REVENUE_SAMPLE
        p_value = 1.0 if small else 0.5
        c_ci = (c_val, c_val)
        v_ci = (v_val, v_val)
    else:
        cs, cn = _proportion(metric, control)
        vs, vn = _proportion(metric, variant)
        p_value = two_proportion_p_value(cs, cn, vs, vn)
        c_ci = wilson_interval(cs, cn)
        v_ci = wilson_interval(vs, vn)

    if not math.isfinite(p_value):
        p_value = 1.0

    return ExperimentStats(
        control_metric_value=round(c_val, 4),
        variant_metric_value=round(v_val, 4),
        control_confidence_interval=(round(c_ci[0], 4), round(c_ci[1], 4)),
        variant_confidence_interval=(round(v_ci[0], 4), round(v_ci[1], 4)),
        lift=round(lift, 4),
        p_value=round(p_value, 4),
        is_significant=p_value < ALPHA,
    )
