"""Job that reports new subscriptions to CJ."""

from __future__ import annotations

from typing import Any, Protocol

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from cjms.models.database import NotFoundError
from cjms.models.status_history import Status
from cjms.models.subscriptions import Subscription, SubscriptionModel
from cjms.telemetry import LogKey, StatsD, error_and_incr, info_and_incr

HTTP_OK = 200


class _CJReporter(Protocol):
    def report_subscription(self, sub: Subscription) -> Any:
        """Send ``sub`` to CJ and return a response with a ``status_code``."""


def _mark(
    subscriptions: SubscriptionModel,
    statsd: StatsD,
    sub: Subscription,
    status: Status,
    done: tuple[LogKey, str],
    failed: tuple[LogKey, str],
) -> None:
    sub_id = str(sub.id)
    try:
        subscriptions.update_sub_status(sub.id, status)
    except (NotFoundError, SQLAlchemyError) as exc:
        error_and_incr(statsd, failed[0], failed[1], error=exc, sub_id=sub_id)
    else:
        info_and_incr(statsd, done[0], done[1], sub_id=sub_id)


def _should_not_report(sub: Subscription, statsd: StatsD) -> bool:
    sub_id = str(sub.id)
    if sub.aic_expires is None:
        error_and_incr(
            statsd,
            LogKey.REPORT_SUBSCRIPTIONS_SUBSCRIPTION_HAS_NO_AIC_EXPIRY,
            "Subscription does not have an AIC expiry. Will not report.",
            sub_id=sub_id,
        )
        return True
    if sub.aic_expires < sub.subscription_created:
        info_and_incr(
            statsd,
            LogKey.REPORT_SUBSCRIPTIONS_AIC_EXPIRED_BEFORE_SUBSCRIPTION_CREATED,
            "AIC expired before subscription created. Will not report.",
            sub_id=sub_id,
        )
        return True
    return False


def report_subscriptions_to_cj(engine: Engine, cj_client: _CJReporter, statsd: StatsD) -> None:
    """Report every not-reported subscription to CJ and record the outcome.

    ``cj_client.report_subscription(sub)`` must return a response with a
    ``status_code``; a 200 marks the subscription reported, anything else or
    an exception leaves it not reported for the next run.
    """
    subscriptions = SubscriptionModel(engine)
    try:
        not_reported = subscriptions.fetch_all_by_status(Status.NOT_REPORTED)
    except SQLAlchemyError as exc:
        raise RuntimeError("Could not retrieve subscriptions from DB.") from exc
    statsd.gauge(LogKey.REPORT_SUBSCRIPTIONS_N_NOT_REPORTED, len(not_reported))

    for sub in not_reported:
        sub_id = str(sub.id)
        if _should_not_report(sub, statsd):
            _mark(
                subscriptions,
                statsd,
                sub,
                Status.WILL_NOT_REPORT,
                (LogKey.REPORT_SUBSCRIPTION_MARK_WILL_NOT_REPORT,
                 "Successfully marked as WillNotReport"),
                (LogKey.REPORT_SUBSCRIPTION_MARK_WILL_NOT_REPORT_FAILED,
                 "Could not mark subscription as WillNotReport."),
            )
            continue

        try:
            response = cj_client.report_subscription(sub)
        except Exception as exc:  # any client failure leaves the sub for the next run
            error_and_incr(
                statsd,
                LogKey.REPORT_SUBSCRIPTION_REPORT_TO_CJ_FAILED,
                "Could not report sub to CJ; unknown application failure.",
                error=exc,
                sub_id=sub_id,
            )
            mark_not_reported = True
        else:
            if response.status_code == HTTP_OK:
                _mark(
                    subscriptions,
                    statsd,
                    sub,
                    Status.REPORTED,
                    (LogKey.REPORT_SUBSCRIPTION_REPORT_TO_CJ,
                     "Successfully reported sub to CJ; received 200 status"),
                    (LogKey.REPORT_SUBSCRIPTION_REPORT_TO_CJ_BUT_COULD_NOT_MARK_REPORTED,
                     "Successfully reported sub to CJ; received 200 status, "
                     "but could not mark the sub as reported locally."),
                )
                mark_not_reported = False
            else:
                error_and_incr(
                    statsd,
                    LogKey.REPORT_SUBSCRIPTION_REPORT_TO_CJ_FAILED,
                    "Could not report sub to CJ; received non-200 status.",
                    sub_id=sub_id,
                )
                mark_not_reported = True

        if mark_not_reported:
            _mark(
                subscriptions,
                statsd,
                sub,
                Status.NOT_REPORTED,
                (LogKey.REPORT_SUBSCRIPTION_MARK_NOT_REPORTED,
                 "Successfully marked as NotReported."),
                (LogKey.REPORT_SUBSCRIPTION_MARK_NOT_REPORTED_FAILED,
                 "Could not mark subscription as NotReported."),
            )