"""Job that moves not-reported refunds into the daily correction batch."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from cjms.models.database import NotFoundError
from cjms.models.refunds import RefundModel
from cjms.models.status_history import Status
from cjms.telemetry import LogKey, StatsD, error_and_incr, info_and_incr

SUCCEEDED = "succeeded"


def _next_status(refund_status: str | None) -> Status:
    if refund_status is None or refund_status == SUCCEEDED:
        return Status.REPORTED
    return Status.WILL_NOT_REPORT


def batch_refunds_by_day(engine: Engine, statsd: StatsD) -> None:
    """Mark every not-reported refund as reported today, or as not to be reported.

    Refunds that did not succeed will not be reported. A refund with no
    known refund status is reported. Reported refunds are placed in the
    correction file of the current UTC day.
    """
    refunds = RefundModel(engine)
    try:
        not_reported = refunds.fetch_all_by_status(Status.NOT_REPORTED)
    except SQLAlchemyError as exc:
        raise RuntimeError("Could not retrieve refunds from DB.") from exc
    statsd.gauge(LogKey.BATCH_REFUNDS_N_NOT_REPORTED, len(not_reported))

    for refund in not_reported:
        next_status = _next_status(refund.refund_status)
        if next_status is Status.REPORTED:
            refund.correction_file_date = datetime.now(timezone.utc).date()
        refund.update_status(next_status)
        try:
            updated = refunds.update_refund(refund)
        except (NotFoundError, SQLAlchemyError) as exc:
            error_and_incr(
                statsd,
                LogKey.BATCH_REFUNDS_UPDATE_FAILED,
                "Could not update refund to be reported",
                error=exc,
                refund_id=refund.refund_id,
            )
        else:
            info_and_incr(
                statsd,
                LogKey.BATCH_REFUNDS_UPDATE,
                "Success updating refund",
                refund_id=updated.refund_id,
            )