# =============================================
# File: app/services/stores.py
# Purpose: Tenant-scoped read paths (and experiment writes) over SQLModel sessions.
#          The recommendation core only talks to these classes, never to the engine.
# =============================================
from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlmodel import Session, col, select

from app.db.models import CatalogItem, Event, Experiment, ExperimentResult, Tenant
from app.db.repo import get_session


def max_candidates() -> int:
    """Upper bound on rows pulled for any single candidate read (env: REC_MAX_CANDIDATES)."""
    return int(os.getenv("REC_MAX_CANDIDATES", "500"))


@dataclass
class EventFilter:
    tenant_id: str
    user_id: Optional[str] = None
    user_ids: Optional[Iterable[str]] = None
    exclude_user_id: Optional[str] = None
    product_ids: Optional[Iterable[str]] = None
    event_types: Optional[Iterable[str]] = None
    since: Optional[datetime] = None
    limit: Optional[int] = None


class EventStore:
    def __init__(self, session: Session) -> None:
        self._session = session

    @staticmethod
    def _apply(stmt, flt: EventFilter):
        stmt = stmt.where(Event.tenant_id == flt.tenant_id)
        if flt.user_id is not None:
            stmt = stmt.where(Event.user_id == flt.user_id)
        if flt.user_ids is not None:
            stmt = stmt.where(col(Event.user_id).in_(list(flt.user_ids)))
        if flt.exclude_user_id is not None:
            stmt = stmt.where(Event.user_id != flt.exclude_user_id)
        if flt.product_ids is not None:
            stmt = stmt.where(col(Event.product_id).in_(list(flt.product_ids)))
        if flt.event_types is not None:
            stmt = stmt.where(col(Event.event_type).in_([getattr(t, "value", t) for t in flt.event_types]))
        if flt.since is not None:
            stmt = stmt.where(Event.timestamp >= flt.since)
        return stmt

    def find_events(self, flt: EventFilter) -> List[Event]:
        """Matching events, newest first."""
        stmt = self._apply(select(Event), flt).order_by(col(Event.timestamp).desc(), col(Event.id).desc())
        if flt.limit is not None:
            stmt = stmt.limit(flt.limit)
        return list(self._session.exec(stmt).all())

    def count_events(self, tenant_id: str, user_id: str) -> int:
        stmt = self._apply(select(func.count()).select_from(Event), EventFilter(tenant_id, user_id=user_id))
        return int(self._session.exec(stmt).one())

    def product_tally(self, flt: EventFilter) -> List[Tuple[str, str, int]]:
        """(product_id, event_type, count) aggregated in the database."""
        stmt = select(Event.product_id, Event.event_type, func.count())
        stmt = self._apply(stmt, flt).group_by(Event.product_id, Event.event_type)
        return [(p, t, int(n)) for p, t, n in self._session.exec(stmt).all()]

    def user_product_tally(self, flt: EventFilter) -> List[Tuple[str, str, str, int]]:
        """(user_id, product_id, event_type, count) aggregated in the database."""
        stmt = select(Event.user_id, Event.product_id, Event.event_type, func.count())
        stmt = self._apply(stmt, flt).group_by(Event.user_id, Event.product_id, Event.event_type)
        return [(u, p, t, int(n)) for u, p, t, n in self._session.exec(stmt).all()]


class CatalogStore:
    def __init__(self, session: Session) -> None:
        self._session = session

    def find_items(self, tenant_id: str, product_ids: Iterable[str], available_only: bool = False) -> List[CatalogItem]:
        ids = list(dict.fromkeys(product_ids))
        if not ids:
            return []
        stmt = select(CatalogItem).where(CatalogItem.tenant_id == tenant_id, col(CatalogItem.product_id).in_(ids))
        if available_only:
            stmt = stmt.where(CatalogItem.available == True)  # noqa: E712
        return list(self._session.exec(stmt).all())

    def recent_items(self, tenant_id: str, limit: int, exclude: Iterable[str] = ()) -> List[CatalogItem]:
        """Most recently created available items."""
        stmt = select(CatalogItem).where(CatalogItem.tenant_id == tenant_id, CatalogItem.available == True)  # noqa: E712
        excluded = list(exclude)
        if excluded:
            stmt = stmt.where(col(CatalogItem.product_id).not_in(excluded))
        stmt = stmt.order_by(col(CatalogItem.created_at).desc(), col(CatalogItem.id).desc()).limit(limit)
        return list(self._session.exec(stmt).all())

    def items_in_categories(
        self,
        tenant_id: str,
        categories: Iterable[str],
        exclude: Iterable[str] = (),
        limit: int = 40,
    ) -> List[CatalogItem]:
        cats = list(categories)
        if not cats:
            return []
        stmt = select(CatalogItem).where(
            CatalogItem.tenant_id == tenant_id,
            CatalogItem.available == True,  # noqa: E712
            col(CatalogItem.category).in_(cats),
        )
        excluded = list(exclude)
        if excluded:
            stmt = stmt.where(col(CatalogItem.product_id).not_in(excluded))
        stmt = stmt.order_by(col(CatalogItem.created_at).desc(), col(CatalogItem.id).desc()).limit(limit)
        return list(self._session.exec(stmt).all())


class TenantStore:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get_default_strategy(self, tenant_id: str) -> Optional[str]:
        tenant = self._session.get(Tenant, tenant_id)
        if tenant is None:
            return None
        return (tenant.config or {}).get("defaultStrategy")


class ExperimentStore:
    def __init__(self, session: Session) -> None:
        self._session = session

    def find_running_experiment(
        self, tenant_id: str, placement_id: Optional[str], exclude_id: Optional[str] = None
    ) -> Optional[Experiment]:
        if not placement_id:
            return None
        stmt = select(Experiment).where(
            Experiment.tenant_id == tenant_id,
            Experiment.placement_id == placement_id,
            Experiment.status == "running",
        )
        if exclude_id is not None:
            stmt = stmt.where(Experiment.id != exclude_id)
        return self._session.exec(stmt).first()

    def get_results(self, experiment_id: str) -> List[ExperimentResult]:
        stmt = select(ExperimentResult).where(ExperimentResult.experiment_id == experiment_id)
        return list(self._session.exec(stmt).all())

    def get(self, tenant_id: str, experiment_id: str) -> Optional[Experiment]:
        exp = self._session.get(Experiment, experiment_id)
        if exp is None or exp.tenant_id != tenant_id:
            return None
        return exp

    def list_for_tenant(
        self, tenant_id: str, status: Optional[str] = None, limit: int = 20, offset: int = 0
    ) -> Tuple[List[Experiment], int]:
        where = [Experiment.tenant_id == tenant_id]
        if status:
            where.append(Experiment.status == status)
        total = int(self._session.exec(select(func.count()).select_from(Experiment).where(*where)).one())
        stmt = (
            select(Experiment)
            .where(*where)
            .order_by(col(Experiment.created_at).desc())
            .offset(offset)
            .limit(limit)
        )
        return list(self._session.exec(stmt).all()), total

    def create(self, experiment: Experiment) -> Experiment:
        """Persist a new experiment together with its two zeroed result rows."""
        self._session.add(experiment)
        self._session.flush()
        for variant in ("control", "variant"):
            self._session.add(ExperimentResult(experiment_id=experiment.id, variant=variant))
        self._session.commit()
        self._session.refresh(experiment)
        return experiment

    def save(self, experiment: Experiment) -> Experiment:
        self._session.add(experiment)
        self._session.commit()
        self._session.refresh(experiment)
        return experiment

    def delete(self, experiment: Experiment) -> None:
        for row in self.get_results(experiment.id):
            self._session.delete(row)
        self._session.delete(experiment)
        self._session.commit()


@dataclass
class Stores:
    events: EventStore
    catalog: CatalogStore
    tenants: TenantStore
    experiments: ExperimentStore
    session: Optional[Session] = field(default=None, repr=False)

    @classmethod
    def from_session(cls, session: Session) -> "Stores":
        return cls(
            events=EventStore(session),
            catalog=CatalogStore(session),
            tenants=TenantStore(session),
            experiments=ExperimentStore(session),
            session=session,
        )


def get_stores():
    """FastAPI dependency: one session per request."""
    for session in get_session():
        yield Stores.from_session(session)
