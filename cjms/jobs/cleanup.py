"""Job that archives expired affiliate cookies."""

from __future__ import annotations

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from cjms.models.aic import AICModel
from cjms.telemetry import LogKey, StatsD, error_and_incr, info_and_incr


def archive_expired_aics(engine: Engine, statsd: StatsD) -> None:
    """Move every expired AIC to the archive table, continuing past failures."""
    aic_model = AICModel(engine)
    try:
        expired = aic_model.fetch_expired()
    except SQLAlchemyError as exc:
        raise RuntimeError("Could not get expired AICs") from exc

    for aic in expired:
        try:
            aic_model.archive_aic(aic)
        except SQLAlchemyError as exc:
            error_and_incr(
                statsd,
                LogKey.CLEANUP_AIC_ARCHIVE_FAILED,
                "Could not archive aic. Continuing...",
                error=exc,
                aic_id=str(aic.id),
            )
        else:
            info_and_incr(
                statsd,
                LogKey.CLEANUP_AIC_ARCHIVE,
                "Successfully archived aic",
                aic_id=str(aic.id),
            )