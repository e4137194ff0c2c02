# =============================================
# File: app/routers/experiments.py
# Purpose: Experiment lifecycle endpoints and the results/significance view
# =============================================
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.db.models import Experiment
from app.services import experiments as svc
from app.services.stores import Stores, get_stores
from app.services.types import ExperimentStatus, Metric, Strategy

router = APIRouter(prefix="/tenants/{tenant_id}/experiments", tags=["experiments"])


# ---------- Schemas ----------
class _Camel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ExperimentCreate(_Camel):
    name: str = Field(..., min_length=1, max_length=200)
    control_strategy: Strategy
    variant_strategy: Strategy
    traffic_split: int = Field(50, ge=1, le=99)
    metric: Metric = Metric.CTR
    placement_id: Optional[str] = Field(None, max_length=100)


class ExperimentUpdate(_Camel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    traffic_split: Optional[int] = Field(None, ge=1, le=99)
    status: Optional[ExperimentStatus] = None


class ExperimentOut(_Camel):
    id: str
    tenant_id: str
    name: str
    control_strategy: str
    variant_strategy: str
    traffic_split: int
    metric: str
    placement_id: Optional[str] = None
    status: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def of(cls, exp: Experiment) -> "ExperimentOut":
        return cls.model_validate(exp.model_dump())


def _dump(exp: Experiment) -> Dict[str, Any]:
    return ExperimentOut.of(exp).model_dump(by_alias=True, mode="json")


# ---------- Endpoints ----------
@router.get("")
def list_experiments(
    tenant_id: str,
    status: Optional[ExperimentStatus] = None,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    stores: Stores = Depends(get_stores),
) -> Dict[str, Any]:
    items, total = stores.experiments.list_for_tenant(
        tenant_id, status.value if status else None, limit=limit, offset=offset
    )
    data: List[Dict[str, Any]] = [_dump(e) for e in items]
    return {
        "data": data,
        "pagination": {"total": total, "limit": limit, "offset": offset, "hasMore": offset + len(data) < total},
    }


@router.post("", status_code=201)
def create_experiment(tenant_id: str, body: ExperimentCreate, stores: Stores = Depends(get_stores)) -> Dict[str, Any]:
    exp = Experiment(
        tenant_id=tenant_id,
        name=body.name,
        control_strategy=body.control_strategy.value,
        variant_strategy=body.variant_strategy.value,
        traffic_split=body.traffic_split,
        metric=body.metric.value,
        placement_id=body.placement_id,
    )
    return {"data": _dump(stores.experiments.create(exp))}


@router.get("/{experiment_id}")
def get_experiment(tenant_id: str, experiment_id: str, stores: Stores = Depends(get_stores)) -> Dict[str, Any]:
    return {"data": _dump(svc.require(stores.experiments, tenant_id, experiment_id))}


@router.put("/{experiment_id}")
def update_experiment(
    tenant_id: str, experiment_id: str, body: ExperimentUpdate, stores: Stores = Depends(get_stores)
) -> Dict[str, Any]:
    exp = svc.require(stores.experiments, tenant_id, experiment_id)
    if body.status is not None:
        svc.transition(stores.experiments, exp, body.status.value)
    if body.name:
        exp.name = body.name
    if body.traffic_split:
        exp.traffic_split = body.traffic_split
    return {"data": _dump(stores.experiments.save(exp))}


@router.delete("/{experiment_id}")
def delete_experiment(tenant_id: str, experiment_id: str, stores: Stores = Depends(get_stores)) -> Dict[str, Any]:
    exp = svc.require(stores.experiments, tenant_id, experiment_id)
    svc.ensure_deletable(exp)
    stores.experiments.delete(exp)
    return {"data": {"message": "Experiment deleted"}}


@router.get("/{experiment_id}/results")
def get_experiment_results(tenant_id: str, experiment_id: str, stores: Stores = Depends(get_stores)) -> Dict[str, Any]:
    exp = svc.require(stores.experiments, tenant_id, experiment_id)
    return {"data": svc.build_results(stores.experiments, exp)}
