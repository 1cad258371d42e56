"""Refunds of subscriptions and their reporting status."""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, fields
from datetime import date, datetime
from typing import Any

from sqlalchemy import func, insert, select, update
from sqlalchemy.engine import Engine

from cjms.models.database import NotFoundError, refunds_table
from cjms.models.status_history import DateRange, Status, StatusTracked


def _unix_seconds(t: datetime) -> int:
    return math.floor(t.timestamp())


def _same_optional_time(a: datetime | None, b: datetime | None) -> bool:
    if a is None or b is None:
        return a is None and b is None
    return _unix_seconds(a) == _unix_seconds(b)


@dataclass(eq=False)
class Refund(StatusTracked):
    """A refund of a subscription, as reported to us and as we report it on."""

    id: uuid.UUID
    refund_id: str
    subscription_id: str
    refund_created: datetime
    refund_amount: int
    refund_status: str | None = None
    refund_reason: str | None = None
    correction_file_date: date | None = None
    status: str | None = None
    status_t: datetime | None = None
    status_history: Any = None

    @classmethod
    def new(
        cls,
        refund_id: str,
        subscription_id: str,
        refund_created: datetime,
        refund_amount: int,
        refund_status: str | None = None,
        refund_reason: str | None = None,
        correction_file_date: date | None = None,
        id: uuid.UUID | None = None,  # noqa: A002
    ) -> Refund:
        """Create a refund whose status starts as not reported."""
        refund = cls(
            id=id if id is not None else uuid.uuid4(),
            refund_id=refund_id,
            subscription_id=subscription_id,
            refund_created=refund_created,
            refund_amount=refund_amount,
            refund_status=refund_status,
            refund_reason=refund_reason,
            correction_file_date=correction_file_date,
        )
        refund.update_status(Status.NOT_REPORTED)
        return refund

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Refund):
            return NotImplemented
        # Timestamps lose precision in and out of the database; the history
        # is left out of the comparison.
        return (
            self.id == other.id
            and self.refund_id == other.refund_id
            and self.subscription_id == other.subscription_id
            and _unix_seconds(self.refund_created) == _unix_seconds(other.refund_created)
            and self.refund_amount == other.refund_amount
            and self.refund_status == other.refund_status
            and self.refund_reason == other.refund_reason
            and self.correction_file_date == other.correction_file_date
            and self.status == other.status
            and _same_optional_time(self.status_t, other.status_t)
        )

    __hash__ = None  # type: ignore[assignment]


def _values(refund: Refund) -> dict[str, Any]:
    return {spec.name: getattr(refund, spec.name) for spec in fields(refund)}


def _from_row(row: Any) -> Refund:
    return Refund(**dict(row._mapping))


class RefundModel:
    """Queries on the ``refunds`` table."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def create_from_refund(self, refund: Refund) -> Refund:
        """Insert ``refund`` as given and return the stored row."""
        with self._engine.begin() as conn:
            conn.execute(insert(refunds_table).values(**_values(refund)))
            row = conn.execute(
                select(refunds_table).where(refunds_table.c.id == refund.id)
            ).one()
        return _from_row(row)

    def fetch_one_by_refund_id(self, refund_id: str) -> Refund:
        """Return the refund with ``refund_id``."""
        with self._engine.connect() as conn:
            row = conn.execute(
                select(refunds_table).where(refunds_table.c.refund_id == refund_id).limit(1)
            ).first()
        if row is None:
            raise NotFoundError(f"no refund with refund_id {refund_id!r}")
        return _from_row(row)

    def _update_by_refund_id(self, refund_id: str, values: dict[str, Any]) -> Refund:
        with self._engine.begin() as conn:
            result = conn.execute(
                update(refunds_table)
                .where(refunds_table.c.refund_id == refund_id)
                .values(**values)
            )
            if result.rowcount == 0:
                raise NotFoundError(f"no refund with refund_id {refund_id!r}")
            row = conn.execute(
                select(refunds_table).where(refunds_table.c.refund_id == refund_id)
            ).one()
        return _from_row(row)

    def update_refund(self, refund: Refund) -> Refund:
        """Store every field of ``refund`` except its ids, matched by ``refund_id``."""
        values = _values(refund)
        del values["id"]
        del values["refund_id"]
        return self._update_by_refund_id(refund.refund_id, values)

    def update_refund_status(self, refund_id: str, new_status: Status) -> Refund:
        """Move the refund with ``refund_id`` to ``new_status``, recording the change."""
        refund = self.fetch_one_by_refund_id(refund_id)
        refund.update_status(new_status)
        return self._update_by_refund_id(
            refund_id,
            {
                "status": refund.status,
                "status_t": refund.status_t,
                "status_history": refund.status_history,
            },
        )

    def fetch_all(self) -> list[Refund]:
        """Return every refund."""
        with self._engine.connect() as conn:
            rows = conn.execute(select(refunds_table)).all()
        return [_from_row(row) for row in rows]

    def fetch_all_by_status(self, status: Status) -> list[Refund]:
        """Return the refunds with ``status`` and a status time."""
        with self._engine.connect() as conn:
            rows = conn.execute(
                select(refunds_table).where(
                    refunds_table.c.status == status.value,
                    refunds_table.c.status_t.is_not(None),
                )
            ).all()
        return [_from_row(row) for row in rows]

    def fetch_by_correction_file_day(self, day: date) -> list[Refund]:
        """Return the refunds placed in the correction file of ``day``."""
        with self._engine.connect() as conn:
            rows = conn.execute(
                select(refunds_table).where(refunds_table.c.correction_file_date == day)
            ).all()
        return [_from_row(row) for row in rows]

    def get_reported_date_range(self) -> DateRange:
        """Return the earliest and latest status time of reported refunds."""
        column = refunds_table.c.status_t
        with self._engine.connect() as conn:
            row = conn.execute(
                select(func.min(column).label("min"), func.max(column).label("max")).where(
                    refunds_table.c.status == Status.REPORTED.value,
                    column.is_not(None),
                )
            ).one()
        return DateRange(min=row.min, max=row.max)