# =============================================
# File: tests/conftest.py
# Purpose: In-memory SQLite stores, a small data seeder and an app client wired to them
# =============================================
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from datetime import timedelta
from typing import Optional

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from app.db.models import CatalogItem, Event, Experiment, ExperimentResult, Tenant, utcnow
from app.services.stores import Stores
from app.utils import metrics, rcache

TENANT = "tenant-1"


class Seeder:
    def __init__(self, session: Session) -> None:
        self.session = session

    def tenant(self, tenant_id: str = TENANT, default_strategy: Optional[str] = None) -> Tenant:
        config = {"defaultStrategy": default_strategy} if default_strategy else {}
        t = Tenant(id=tenant_id, name=f"Shop {tenant_id}", config=config)
        self.session.add(t)
        self.session.commit()
        return t

    def item(
        self,
        product_id: str,
        category: Optional[str] = None,
        price: Optional[float] = None,
        available: bool = True,
        attributes: Optional[dict] = None,
        age: timedelta = timedelta(0),
        tenant_id: str = TENANT,
    ) -> CatalogItem:
        it = CatalogItem(
            tenant_id=tenant_id,
            product_id=product_id,
            name=f"Product {product_id}",
            category=category,
            price=price,
            image_url=f"https://img.example.com/{product_id}.png",
            attributes=attributes or {},
            available=available,
            created_at=utcnow() - age,
        )
        self.session.add(it)
        self.session.commit()
        return it

    def event(
        self,
        user_id: str,
        product_id: str,
        event_type: str = "product_viewed",
        n: int = 1,
        ago: timedelta = timedelta(minutes=5),
        tenant_id: str = TENANT,
    ) -> None:
        for _ in range(n):
            self.session.add(
                Event(
                    tenant_id=tenant_id,
                    event_type=event_type,
                    user_id=user_id,
                    product_id=product_id,
                    timestamp=utcnow() - ago,
                )
            )
        self.session.commit()

    def experiment(
        self,
        control: str = "content_based",
        variant: str = "collaborative",
        placement_id: Optional[str] = "home",
        status: str = "running",
        traffic_split: int = 50,
        metric: str = "ctr",
        tenant_id: str = TENANT,
    ) -> Experiment:
        exp = Experiment(
            tenant_id=tenant_id,
            name="home ranking test",
            control_strategy=control,
            variant_strategy=variant,
            traffic_split=traffic_split,
            metric=metric,
            placement_id=placement_id,
            status=status,
            started_at=utcnow() - timedelta(days=2) if status != "draft" else None,
        )
        self.session.add(exp)
        self.session.flush()
        for v in ("control", "variant"):
            self.session.add(ExperimentResult(experiment_id=exp.id, variant=v))
        self.session.commit()
        self.session.refresh(exp)
        return exp

    def counters(self, experiment_id: str, variant: str, **values) -> None:
        row = next(r for r in Stores.from_session(self.session).experiments.get_results(experiment_id) if r.variant == variant)
        for k, v in values.items():
            setattr(row, k, v)
        self.session.add(row)
        self.session.commit()


@pytest.fixture(autouse=True)
def _reset_process_state():
    rcache.clear()
    metrics.reset()
    yield


@pytest.fixture
def session():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    SQLModel.metadata.create_all(engine)
    with Session(engine) as s:
        yield s


@pytest.fixture
def stores(session):
    return Stores.from_session(session)


@pytest.fixture
def seed(session):
    s = Seeder(session)
    s.tenant()
    return s


@pytest.fixture
def client(session):
    from fastapi.testclient import TestClient
    from app.main import app
    from app.services.stores import get_stores

    app.dependency_overrides[get_stores] = lambda: Stores.from_session(session)
    yield TestClient(app)
    app.dependency_overrides.clear()
