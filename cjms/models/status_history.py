"""Reporting status of records, with a timestamped history of changes."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from cjms.telemetry import LogKey, error


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _unix_seconds(t: datetime) -> int:
    return math.floor(t.timestamp())


@dataclass
class DateRange:
    """The earliest and latest of a set of timestamps, if there were any."""

    min: datetime | None = None
    max: datetime | None = None


class Status(str, Enum):
    """Where a record is in the reporting process."""

    NOT_REPORTED = "NotReported"
    REPORTED = "Reported"
    WILL_NOT_REPORT = "WillNotReport"
    CJ_RECEIVED = "CJReceived"
    CJ_NOT_RECEIVED = "CJNotReceived"

    def __str__(self) -> str:
        return self.value


@dataclass(eq=False)
class StatusHistoryEntry:
    """One status change and the time it happened."""

    t: datetime
    status: Status

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StatusHistoryEntry):
            return NotImplemented
        return self.status == other.status and _unix_seconds(self.t) == _unix_seconds(other.t)

    __hash__ = None  # type: ignore[assignment]


@dataclass
class StatusHistory:
    """The ordered list of status changes of a record."""

    entries: list[StatusHistoryEntry] = field(default_factory=list)

    @classmethod
    def from_json_value(cls, value: Any) -> StatusHistory:
        """Build a history from its JSON form; log and return an empty one if invalid."""
        try:
            return cls(entries=[_parse_entry(raw) for raw in _entries_of(value)])
        except (TypeError, ValueError, KeyError) as exc:
            error(
                LogKey.STATUS_HISTORY_DESERIALIZE_ERROR,
                "Error deserializing status_history",
                error=exc,
                v=json.dumps(value, default=str),
            )
            return cls()

    def to_json_value(self) -> dict[str, Any]:
        """Return the JSON form of the history."""
        return {
            "entries": [
                {"t": entry.t.astimezone(timezone.utc).isoformat(), "status": entry.status.value}
                for entry in self.entries
            ]
        }


def _entries_of(value: Any) -> list[Any]:
    if not isinstance(value, dict):
        raise TypeError("status history must be an object")
    entries = value["entries"]
    if not isinstance(entries, list):
        raise TypeError("status history entries must be a list")
    return entries


def _parse_entry(raw: Any) -> StatusHistoryEntry:
    if not isinstance(raw, dict):
        raise TypeError("status history entry must be an object")
    t_raw = raw["t"]
    if not isinstance(t_raw, str):
        raise TypeError("status history time must be a string")
    t = datetime.fromisoformat(t_raw)
    if t.tzinfo is None:
        t = t.replace(tzinfo=timezone.utc)
    return StatusHistoryEntry(t=t, status=Status(raw["status"]))


class StatusTracked:
    """Mixin for records holding raw ``status``, ``status_t`` and ``status_history``.

    ``status`` is the status name as text, ``status_t`` the time of the last
    change and ``status_history`` the JSON form of the full history.
    """

    status: str | None
    status_t: datetime | None
    status_history: Any

    def get_status(self) -> Status | None:
        """Return the current status, or ``None`` if it is missing or unknown."""
        try:
            return Status(self.status or "")
        except ValueError:
            return None

    def get_status_history(self) -> StatusHistory | None:
        """Return the parsed history, or ``None`` if there is none."""
        if self.status_history is None:
            return None
        return StatusHistory.from_json_value(self.status_history)

    def update_status(self, new_status: Status) -> None:
        """Set a new status now and append it to the history."""
        t = _utc_now()
        self.status_t = t
        self.status = new_status.value
        history = self.get_status_history() or StatusHistory()
        history.entries.append(StatusHistoryEntry(t=t, status=new_status))
        self.status_history = history.to_json_value()