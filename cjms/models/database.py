"""Database tables shared by the models, and schema creation."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
)
from sqlalchemy.engine import Engine
from sqlalchemy.types import TypeDecorator


class NotFoundError(LookupError):
    """Raised when a query that must return one row returns none."""


class _UTCDateTime(TypeDecorator):
    """Timestamps stored as naive UTC and returned timezone-aware in UTC."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class _GUID(TypeDecorator):
    """UUIDs stored as their canonical 36-character text form."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Any) -> str | None:
        if value is None:
            return None
        if not isinstance(value, uuid.UUID):
            value = uuid.UUID(str(value))
        return str(value)

    def process_result_value(self, value: Any, dialect: Any) -> uuid.UUID | None:
        if value is None:
            return None
        return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


metadata = MetaData()


def _aic_columns() -> list[Column]:
    return [
        Column("id", _GUID(), primary_key=True),
        Column("cj_event_value", String, nullable=False),
        Column("flow_id", String, nullable=False, unique=True),
        Column("created", _UTCDateTime(), nullable=False),
        Column("expires", _UTCDateTime(), nullable=False),
    ]


aic_table = Table("aic", metadata, *_aic_columns())
aic_archive_table = Table("aic_archive", metadata, *_aic_columns())

subscriptions_table = Table(
    "subscriptions",
    metadata,
    Column("id", _GUID(), primary_key=True),
    Column("flow_id", String, nullable=False, unique=True),
    Column("subscription_id", String, nullable=False, unique=True),
    Column("report_timestamp", _UTCDateTime(), nullable=False),
    Column("subscription_created", _UTCDateTime(), nullable=False),
    Column("fxa_uid", String, nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("plan_id", String, nullable=False),
    Column("plan_currency", String, nullable=False),
    Column("plan_amount", Integer, nullable=False),
    Column("country", String, nullable=True),
    Column("coupons", String, nullable=True),
    Column("aic_id", _GUID(), nullable=True),
    Column("aic_expires", _UTCDateTime(), nullable=True),
    Column("cj_event_value", String, nullable=True),
    Column("status", String, nullable=True),
    Column("status_t", _UTCDateTime(), nullable=True),
    Column("status_history", JSON(none_as_null=True), nullable=True),
)

refunds_table = Table(
    "refunds",
    metadata,
    Column("id", _GUID(), primary_key=True),
    Column("refund_id", String, nullable=False, unique=True),
    Column("subscription_id", String, nullable=False),
    Column("refund_created", _UTCDateTime(), nullable=False),
    Column("refund_amount", Integer, nullable=False),
    Column("refund_status", String, nullable=True),
    Column("refund_reason", String, nullable=True),
    Column("correction_file_date", Date, nullable=True),
    Column("status", String, nullable=True),
    Column("status_t", _UTCDateTime(), nullable=True),
    Column("status_history", JSON(none_as_null=True), nullable=True),
)


def create_schema(engine: Engine) -> None:
    """Create every table that does not exist yet."""
    metadata.create_all(engine)