"""Subscriptions attributed to an AIC and their reporting status."""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any

from sqlalchemy import func, insert, select, update
from sqlalchemy.engine import Engine

from cjms.models.database import NotFoundError, subscriptions_table
from cjms.models.status_history import DateRange, Status, StatusTracked


def _unix_seconds(t: datetime) -> int:
    return math.floor(t.timestamp())


def _same_optional_time(a: datetime | None, b: datetime | None) -> bool:
    if a is None or b is None:
        return a is None and b is None
    return _unix_seconds(a) == _unix_seconds(b)


@dataclass(eq=False)
class Subscription(StatusTracked):
    """A new subscription and the affiliate cookie it is attributed to."""

    id: uuid.UUID
    flow_id: str
    subscription_id: str
    report_timestamp: datetime
    subscription_created: datetime
    # A hash, not the raw account id.
    fxa_uid: str
    quantity: int
    plan_id: str
    plan_currency: str
    plan_amount: int
    country: str | None = None
    coupons: str | None = None
    aic_id: uuid.UUID | None = None
    aic_expires: datetime | None = None
    cj_event_value: str | None = None
    status: str | None = None
    status_t: datetime | None = None
    status_history: Any = None

    @classmethod
    def new(
        cls,
        flow_id: str,
        subscription_id: str,
        report_timestamp: datetime,
        subscription_created: datetime,
        fxa_uid: str,
        quantity: int,
        plan_id: str,
        plan_currency: str,
        plan_amount: int,
        country: str | None = None,
        coupons: str | None = None,
        aic_id: uuid.UUID | None = None,
        aic_expires: datetime | None = None,
        cj_event_value: str | None = None,
        id: uuid.UUID | None = None,  # noqa: A002
    ) -> Subscription:
        """Create a subscription whose status starts as not reported."""
        sub = cls(
            id=id if id is not None else uuid.uuid4(),
            flow_id=flow_id,
            subscription_id=subscription_id,
            report_timestamp=report_timestamp,
            subscription_created=subscription_created,
            fxa_uid=fxa_uid,
            quantity=quantity,
            plan_id=plan_id,
            plan_currency=plan_currency,
            plan_amount=plan_amount,
            country=country,
            coupons=coupons,
            aic_id=aic_id,
            aic_expires=aic_expires,
            cj_event_value=cj_event_value,
        )
        sub.update_status(Status.NOT_REPORTED)
        return sub

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Subscription):
            return NotImplemented
        # Timestamps lose precision in and out of the database; the history
        # is left out of the comparison.
        return (
            self.id == other.id
            and self.flow_id == other.flow_id
            and self.subscription_id == other.subscription_id
            and _unix_seconds(self.report_timestamp) == _unix_seconds(other.report_timestamp)
            and _unix_seconds(self.subscription_created)
            == _unix_seconds(other.subscription_created)
            and self.fxa_uid == other.fxa_uid
            and self.quantity == other.quantity
            and self.plan_id == other.plan_id
            and self.plan_currency == other.plan_currency
            and self.plan_amount == other.plan_amount
            and self.country == other.country
            and self.coupons == other.coupons
            and self.aic_id == other.aic_id
            and self.cj_event_value == other.cj_event_value
            and self.status == other.status
            and _same_optional_time(self.aic_expires, other.aic_expires)
            and _same_optional_time(self.status_t, other.status_t)
        )

    __hash__ = None  # type: ignore[assignment]


def _values(sub: Subscription) -> dict[str, Any]:
    return {spec.name: getattr(sub, spec.name) for spec in fields(sub)}


def _from_row(row: Any) -> Subscription:
    return Subscription(**dict(row._mapping))


class SubscriptionModel:
    """Queries on the ``subscriptions`` table."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def _fetch_one(self, *criteria: Any) -> Subscription:
        with self._engine.connect() as conn:
            row = conn.execute(select(subscriptions_table).where(*criteria).limit(1)).first()
        if row is None:
            raise NotFoundError("no subscription found")
        return _from_row(row)

    def _fetch_all(self, *criteria: Any) -> list[Subscription]:
        with self._engine.connect() as conn:
            rows = conn.execute(select(subscriptions_table).where(*criteria)).all()
        return [_from_row(row) for row in rows]

    def create_from_sub(self, sub: Subscription) -> Subscription:
        """Insert ``sub`` as given and return the stored row."""
        with self._engine.begin() as conn:
            conn.execute(insert(subscriptions_table).values(**_values(sub)))
            row = conn.execute(
                select(subscriptions_table).where(subscriptions_table.c.id == sub.id)
            ).one()
        return _from_row(row)

    def fetch_one_by_id(self, sub_id: uuid.UUID) -> Subscription:
        """Return the subscription with ``sub_id``."""
        return self._fetch_one(subscriptions_table.c.id == sub_id)

    def fetch_one_by_flow_id(self, flow_id: str) -> Subscription:
        """Return the subscription with ``flow_id``."""
        return self._fetch_one(subscriptions_table.c.flow_id == flow_id)

    def fetch_one_by_subscription_id(self, subscription_id: str) -> Subscription:
        """Return the subscription with ``subscription_id``."""
        return self._fetch_one(subscriptions_table.c.subscription_id == subscription_id)

    def fetch_all(self) -> list[Subscription]:
        """Return every subscription."""
        return self._fetch_all()

    def fetch_all_by_status(self, status: Status) -> list[Subscription]:
        """Return the subscriptions with ``status`` and a status time."""
        return self._fetch_all(
            subscriptions_table.c.status == status.value,
            subscriptions_table.c.status_t.is_not(None),
        )

    def update_sub_status(self, sub_id: uuid.UUID, new_status: Status) -> Subscription:
        """Move the subscription with ``sub_id`` to ``new_status``, recording the change."""
        sub = self.fetch_one_by_id(sub_id)
        sub.update_status(new_status)
        with self._engine.begin() as conn:
            result = conn.execute(
                update(subscriptions_table)
                .where(subscriptions_table.c.id == sub_id)
                .values(
                    status=sub.status,
                    status_t=sub.status_t,
                    status_history=sub.status_history,
                )
            )
            if result.rowcount == 0:
                raise NotFoundError(f"no subscription with id {sub_id}")
            row = conn.execute(
                select(subscriptions_table).where(subscriptions_table.c.id == sub_id)
            ).one()
        return _from_row(row)

    def get_reported_date_range(self) -> DateRange:
        """Return the earliest and latest status time of reported subscriptions."""
        column = subscriptions_table.c.status_t
        with self._engine.connect() as conn:
            row = conn.execute(
                select(func.min(column).label("min"), func.max(column).label("max")).where(
                    subscriptions_table.c.status == Status.REPORTED.value,
                    column.is_not(None),
                )
            ).one()
        return DateRange(min=row.min, max=row.max)