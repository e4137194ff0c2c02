# =============================================
# File: app/db/models.py
# Purpose: SQLModel ORM definitions read by the recommendation core: tenants, behavioral events,
#          catalog items, experiments and their per-variant aggregated counters.
# =============================================
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Column, DateTime, UniqueConstraint
from sqlalchemy.types import TypeDecorator
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Aware UTC datetimes on the Python side. SQLite has no zone support, so it stores naive UTC."""

    impl = DateTime
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(DateTime())
        return dialect.type_descriptor(DateTime(timezone=True))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = as_utc(value)
        return value.replace(tzinfo=None) if dialect.name == "sqlite" else value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return as_utc(value)


def new_id() -> str:
    return uuid.uuid4().hex


class Tenant(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    name: str
    config: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class Event(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    tenant_id: str = Field(index=True)
    event_type: str
    user_id: str = Field(index=True)
    product_id: str = Field(index=True)
    session_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow, index=True, sa_type=UTCDateTime)
    # "metadata" is reserved on declarative classes
    meta: Dict[str, Any] = Field(default_factory=dict, sa_column=Column("metadata", JSON))


class CatalogItem(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("tenant_id", "product_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tenant_id: str = Field(index=True)
    product_id: str
    name: str
    category: Optional[str] = Field(default=None, index=True)
    price: Optional[float] = None
    image_url: Optional[str] = None
    attributes: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    available: bool = True
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class Experiment(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    tenant_id: str = Field(index=True)
    name: str
    control_strategy: str
    variant_strategy: str
    traffic_split: int = 50
    metric: str = "ctr"
    placement_id: Optional[str] = None
    status: str = "draft"
    started_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    completed_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class ExperimentResult(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    experiment_id: str = Field(foreign_key="experiment.id", index=True)
    variant: str
    impressions: int = 0
    clicks: int = 0
    conversions: int = 0
    revenue: float = 0.0
    sample_size: int = 0
