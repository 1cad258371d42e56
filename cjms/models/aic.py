"""Affiliate identifier cookies (AICs) and their archive."""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import Table, delete, insert, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from cjms.models.database import NotFoundError, aic_archive_table, aic_table
from cjms.settings import Settings
from cjms.telemetry import LogKey, error


def _unix_seconds(t: datetime) -> int:
    return math.floor(t.timestamp())


@dataclass(eq=False)
class AIC:
    """One affiliate identifier cookie linking a CJ event to a flow."""

    id: uuid.UUID
    cj_event_value: str
    flow_id: str
    created: datetime
    expires: datetime

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AIC):
            return NotImplemented
        # Timestamps lose precision in and out of the database.
        return (
            self.id == other.id
            and self.cj_event_value == other.cj_event_value
            and self.flow_id == other.flow_id
            and _unix_seconds(self.created) == _unix_seconds(other.created)
            and _unix_seconds(self.expires) == _unix_seconds(other.expires)
        )

    __hash__ = None  # type: ignore[assignment]


def _values(aic: AIC) -> dict[str, Any]:
    return {
        "id": aic.id,
        "cj_event_value": aic.cj_event_value,
        "flow_id": aic.flow_id,
        "created": aic.created,
        "expires": aic.expires,
    }


def _from_row(row: Any) -> AIC:
    return AIC(**dict(row._mapping))


def _lifetime(settings: Settings) -> tuple[datetime, datetime]:
    created = datetime.now(timezone.utc)
    return created, created + timedelta(days=settings.aic_expiration_days)


class AICModel:
    """Queries on the ``aic`` and ``aic_archive`` tables."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def _insert(self, table: Table, aic: AIC) -> AIC:
        with self._engine.begin() as conn:
            conn.execute(insert(table).values(**_values(aic)))
            row = conn.execute(select(table).where(table.c.id == aic.id)).one()
        return _from_row(row)

    def _fetch_one(self, table: Table, *criteria: Any) -> AIC:
        with self._engine.connect() as conn:
            row = conn.execute(select(table).where(*criteria).limit(1)).first()
        if row is None:
            raise NotFoundError(f"no row found in {table.name}")
        return _from_row(row)

    def _update(self, aic_id: uuid.UUID, **values: Any) -> AIC:
        with self._engine.begin() as conn:
            result = conn.execute(update(aic_table).where(aic_table.c.id == aic_id).values(**values))
            if result.rowcount == 0:
                raise NotFoundError(f"no aic with id {aic_id}")
            row = conn.execute(select(aic_table).where(aic_table.c.id == aic_id)).one()
        return _from_row(row)

    def create_from_aic(self, aic: AIC) -> AIC:
        """Insert ``aic`` as given and return the stored row."""
        return self._insert(aic_table, aic)

    def create(self, cj_event_value: str, flow_id: str, settings: Settings) -> AIC:
        """Create a new AIC that expires after the configured number of days."""
        created, expires = _lifetime(settings)
        aic = AIC(
            id=uuid.uuid4(),
            cj_event_value=cj_event_value,
            flow_id=flow_id,
            created=created,
            expires=expires,
        )
        try:
            return self._insert(aic_table, aic)
        except SQLAlchemyError as exc:
            error(LogKey.AIC_RECORD_CREATE_FAILED, "Failed to execute query", error=exc)
            raise

    def update_flow_id(self, aic_id: uuid.UUID, flow_id: str) -> AIC:
        """Change the flow id only; the expiry is kept."""
        return self._update(aic_id, flow_id=flow_id)

    def update_flow_id_and_cj_event_value(
        self, aic_id: uuid.UUID, cj_event_value: str, flow_id: str, settings: Settings
    ) -> AIC:
        """Change the event value and flow id, restarting the expiry clock."""
        created, expires = _lifetime(settings)
        return self._update(
            aic_id,
            cj_event_value=cj_event_value,
            flow_id=flow_id,
            created=created,
            expires=expires,
        )

    def fetch_expired(self) -> list[AIC]:
        """Return every AIC whose expiry has passed."""
        now = datetime.now(timezone.utc)
        with self._engine.connect() as conn:
            rows = conn.execute(select(aic_table).where(aic_table.c.expires < now)).all()
        return [_from_row(row) for row in rows]

    def fetch_one(self) -> AIC:
        """Return any one AIC."""
        return self._fetch_one(aic_table)

    def fetch_one_by_id(self, aic_id: uuid.UUID) -> AIC:
        """Return the AIC with ``aic_id``."""
        return self._fetch_one(aic_table, aic_table.c.id == aic_id)

    def fetch_one_by_flow_id(self, flow_id: str) -> AIC:
        """Return the AIC with ``flow_id``."""
        return self._fetch_one(aic_table, aic_table.c.flow_id == flow_id)

    def fetch_one_by_id_from_archive(self, aic_id: uuid.UUID) -> AIC:
        """Return the archived AIC with ``aic_id``."""
        return self._fetch_one(aic_archive_table, aic_archive_table.c.id == aic_id)

    def fetch_one_by_flow_id_from_archive(self, flow_id: str) -> AIC:
        """Return the archived AIC with ``flow_id``."""
        return self._fetch_one(aic_archive_table, aic_archive_table.c.flow_id == flow_id)

    def create_archive_from_aic(self, aic: AIC) -> AIC:
        """Insert ``aic`` into the archive and return the stored row."""
        return self._insert(aic_archive_table, aic)

    def archive_aic(self, aic: AIC) -> None:
        """Move ``aic`` to the archive in one transaction."""
        with self._engine.begin() as conn:
            conn.execute(delete(aic_table).where(aic_table.c.id == aic.id))
            conn.execute(insert(aic_archive_table).values(**_values(aic)))