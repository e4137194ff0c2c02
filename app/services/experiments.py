# =============================================
# File: app/services/experiments.py
# Purpose: Deterministic experiment bucketing and the experiment lifecycle (status state machine,
#          single running experiment per placement, delete guard).
# =============================================
from __future__ import annotations

import hashlib
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from loguru import logger

from app.db.models import Experiment, as_utc, utcnow
from app.services.statistics import VariantMetrics, compute_experiment_results
from app.services.stores import ExperimentStore
from app.services.types import ExperimentStatus, Variant
from app.utils.errors import BadRequestError, ConflictError, NotFoundError

VALID_TRANSITIONS: Dict[str, tuple] = {
    ExperimentStatus.DRAFT.value: (ExperimentStatus.RUNNING.value,),
    ExperimentStatus.RUNNING.value: (ExperimentStatus.PAUSED.value, ExperimentStatus.COMPLETED.value),
    ExperimentStatus.PAUSED.value: (ExperimentStatus.RUNNING.value, ExperimentStatus.COMPLETED.value),
    ExperimentStatus.COMPLETED.value: (),
}


@dataclass(frozen=True)
class Assignment:
    variant: Variant
    bucket: int


def bucket_for(user_id: str, experiment_id: str) -> int:
    """First 8 hex chars of sha256("{user}:{experiment}") as an unsigned int, mod 100."""
    digest = hashlib.sha256(f"{user_id}:{experiment_id}".encode("utf-8")).hexdigest()
    return int(digest[:8], 16) % 100


def get_experiment_assignment(user_id: str, experiment_id: str, traffic_split: int) -> Assignment:
    bucket = bucket_for(user_id, experiment_id)
    variant = Variant.CONTROL if bucket < traffic_split else Variant.VARIANT
    return Assignment(variant=variant, bucket=bucket)


def strategy_for(experiment: Experiment, variant: Variant) -> str:
    return experiment.control_strategy if variant == Variant.CONTROL else experiment.variant_strategy


def can_transition(current: str, target: str) -> bool:
    return target in VALID_TRANSITIONS.get(current, ())


def transition(
    store: ExperimentStore,
    experiment: Experiment,
    target: str,
    now: Optional[datetime] = None,
) -> Experiment:
    """Move an experiment to `target`, stamping start/completion times. Does not persist."""
    if not can_transition(experiment.status, target):
        raise BadRequestError(f"Cannot transition from '{experiment.status}' to '{target}'")

    if target == ExperimentStatus.RUNNING.value and experiment.placement_id:
        other = store.find_running_experiment(experiment.tenant_id, experiment.placement_id, exclude_id=experiment.id)
        if other is not None:
            raise ConflictError("Another experiment is already running for this placement")

    now = as_utc(now) if now else utcnow()
    experiment.status = target
    if target == ExperimentStatus.RUNNING.value:
        experiment.started_at = now
    elif target == ExperimentStatus.COMPLETED.value:
        experiment.completed_at = now
    logger.info(f"[experiments] id={experiment.id} status={target}")
    return experiment


def ensure_deletable(experiment: Experiment) -> None:
    if experiment.status in (ExperimentStatus.RUNNING.value, ExperimentStatus.PAUSED.value):
        raise BadRequestError("Cannot delete a running or paused experiment")


def require(store: ExperimentStore, tenant_id: str, experiment_id: str) -> Experiment:
    exp = store.get(tenant_id, experiment_id)
    if exp is None:
        raise NotFoundError("Experiment not found")
    return exp


def duration_days(started_at: Optional[datetime], now: Optional[datetime] = None) -> int:
    if started_at is None:
        return 0
    elapsed = (as_utc(now or utcnow()) - as_utc(started_at)).total_seconds()
    return max(0, math.ceil(elapsed / 86400))


def build_results(store: ExperimentStore, experiment: Experiment, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Assemble the experiment results document from the two aggregated counter rows."""
    rows = {r.variant: r for r in store.get_results(experiment.id)}

    def metrics(variant: str) -> VariantMetrics:
        row = rows.get(variant)
        if row is None:
            return VariantMetrics()
        return VariantMetrics(
            impressions=row.impressions or 0,
            clicks=row.clicks or 0,
            conversions=row.conversions or 0,
            revenue=float(row.revenue or 0),
            sample_size=row.sample_size or 0,
        )

    control, variant = metrics(Variant.CONTROL.value), metrics(Variant.VARIANT.value)
    stats = compute_experiment_results(experiment.metric, control, variant)

    return {
        "experimentId": experiment.id,
        "experimentName": experiment.name,
        "status": experiment.status,
        "metric": experiment.metric,
        "control": {
            "strategy": experiment.control_strategy,
            **control.as_dict(),
            "metricValue": stats.control_metric_value,
            "confidenceInterval": list(stats.control_confidence_interval),
        },
        "variant": {
            "strategy": experiment.variant_strategy,
            **variant.as_dict(),
            "metricValue": stats.variant_metric_value,
            "confidenceInterval": list(stats.variant_confidence_interval),
        },
        "lift": stats.lift,
        "pValue": stats.p_value,
        "isSignificant": stats.is_significant,
        "duration": {
            "startedAt": experiment.started_at.isoformat() if experiment.started_at else None,
            "days": duration_days(experiment.started_at, now),
        },
    }
