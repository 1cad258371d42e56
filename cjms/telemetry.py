"""Structured logging and statsd metrics keyed by :class:`LogKey`."""

from __future__ import annotations

import json
import logging
import os
import socket
import time as _time
from datetime import timedelta
from enum import Enum
from typing import IO, Any

from cjms.settings import Settings

LOGGER_NAME = "cjms"
METRIC_PREFIX = "cjms"

_logger = logging.getLogger(LOGGER_NAME)
_FIELDS_ATTR = "_cjms_fields"

_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

# Syslog severities used by the mozlog format.
_SEVERITIES = {
    logging.CRITICAL: 2,
    logging.ERROR: 3,
    logging.WARNING: 4,
    logging.INFO: 6,
    logging.DEBUG: 7,
}


class LogKey(str, Enum):
    """Names shared by log events and statsd metrics, in kebab case."""

    def _generate_next_value_(name, start, count, last_values):  # noqa: N805
        return name.lower().replace("_", "-")

    AIC_RECORD_CREATE = "aic-record-create"
    AIC_RECORD_CREATE_FAILED = "aic-record-create-failed"
    AIC_RECORD_UPDATE = "aic-record-update"
    AIC_RECORD_UPDATE_FAILED = "aic-record-update-failed"
    AIC_RECORD_UPDATE_FAILED_NOT_FOUND = "aic-record-update-failed-not-found"
    BATCH_REFUNDS = "batch-refunds"
    BATCH_REFUNDS_ENDING = "batch-refunds-ending"
    BATCH_REFUNDS_N_NOT_REPORTED = "batch-refunds-n-not-reported"
    BATCH_REFUNDS_STARTING = "batch-refunds-starting"
    BATCH_REFUNDS_TIMER = "batch-refunds-timer"
    BATCH_REFUNDS_UPDATE = "batch-refunds-update"
    BATCH_REFUNDS_UPDATE_FAILED = "batch-refunds-update-failed"
    BIG_QUERY = "big-query"
    CHECK_REFUNDS = "check-refunds"
    CHECK_REFUNDS_BYTES_FROM_BQ = "check-refunds-bytes-from-bq"
    CHECK_REFUNDS_DESERIALIZE_BIG_QUERY = "check-refunds-deserialize-big-query"
    CHECK_REFUNDS_DESERIALIZE_BIG_QUERY_FAILED = "check-refunds-deserialize-big-query-failed"
    CHECK_REFUNDS_ENDING = "check-refunds-ending"
    CHECK_REFUNDS_N_FROM_BQ = "check-refunds-n-from-bq"
    CHECK_REFUNDS_REFUND_CREATE = "check-refunds-refund-create"
    CHECK_REFUNDS_REFUND_CREATE_DATABASE_ERROR = "check-refunds-refund-create-database-error"
    CHECK_REFUNDS_REFUND_CREATE_DUPLICATE_KEY_VIOLATION = (
        "check-refunds-refund-create-duplicate-key-violation"
    )
    CHECK_REFUNDS_REFUND_CREATE_FAILED = "check-refunds-refund-create-failed"
    CHECK_REFUNDS_REFUND_DATA_CHANGED = "check-refunds-refund-data-changed"
    CHECK_REFUNDS_REFUND_DATA_UNCHANGED = "check-refunds-refund-data-unchanged"
    CHECK_REFUNDS_REFUND_FETCH_FAILED = "check-refunds-refund-fetch-failed"
    CHECK_REFUNDS_REFUND_UPDATE = "check-refunds-refund-update"
    CHECK_REFUNDS_REFUND_UPDATE_FAILED = "check-refunds-refund-update-failed"
    CHECK_REFUNDS_STARTING = "check-refunds-starting"
    CHECK_REFUNDS_SUBSCRIPTION_MISSING_FROM_DATABASE = (
        "check-refunds-subscription-missing-from-database"
    )
    CHECK_REFUNDS_TIMER = "check-refunds-timer"
    CHECK_REFUNDS_TOTAL_N_FROM_BQ = "check-refunds-total-n-from-bq"
    CHECK_SUBSCRIPTIONS = "check-subscriptions"
    CHECK_SUBSCRIPTIONS_AIC_ARCHIVE = "check-subscriptions-aic-archive"
    CHECK_SUBSCRIPTIONS_AIC_ARCHIVE_FAILED = "check-subscriptions-aic-archive-failed"
    CHECK_SUBSCRIPTIONS_AIC_FETCH = "check-subscriptions-aic-fetch"
    CHECK_SUBSCRIPTIONS_AIC_FETCH_FAILED = "check-subscriptions-aic-fetch-failed"
    CHECK_SUBSCRIPTIONS_AIC_FETCH_FROM_ARCHIVE = "check-subscriptions-aic-fetch-from-archive"
    CHECK_SUBSCRIPTIONS_BYTES_FROM_BQ = "check-subscriptions-bytes-from-bq"
    CHECK_SUBSCRIPTIONS_DESERIALIZE_BIG_QUERY = "check-subscriptions-deserialize-big-query"
    CHECK_SUBSCRIPTIONS_DESERIALIZE_BIG_QUERY_FAILED = (
        "check-subscriptions-deserialize-big-query-failed"
    )
    CHECK_SUBSCRIPTIONS_ENDING = "check-subscriptions-ending"
    CHECK_SUBSCRIPTIONS_N_FROM_BQ = "check-subscriptions-n-from-bq"
    CHECK_SUBSCRIPTIONS_STARTING = "check-subscriptions-starting"
    CHECK_SUBSCRIPTIONS_SUBSCRIPTION_CREATE = "check-subscriptions-subscription-create"
    CHECK_SUBSCRIPTIONS_SUBSCRIPTION_CREATE_DATABASE_ERROR = (
        "check-subscriptions-subscription-create-database-error"
    )
    CHECK_SUBSCRIPTIONS_SUBSCRIPTION_CREATE_DUPLICATE_KEY_VIOLATION = (
        "check-subscriptions-subscription-create-duplicate-key-violation"
    )
    CHECK_SUBSCRIPTIONS_SUBSCRIPTION_CREATE_FAILED = (
        "check-subscriptions-subscription-create-failed"
    )
    CHECK_SUBSCRIPTIONS_TIMER = "check-subscriptions-timer"
    CHECK_SUBSCRIPTIONS_TOTAL_N_FROM_BQ = "check-subscriptions-total-n-from-bq"
    CLEANUP = "cleanup"
    CLEANUP_AIC_ARCHIVE = "cleanup-aic-archive"
    CLEANUP_AIC_ARCHIVE_FAILED = "cleanup-aic-archive-failed"
    CLEANUP_ENDING = "cleanup-ending"
    CLEANUP_STARTING = "cleanup-starting"
    CLEANUP_TIMER = "cleanup-timer"
    CORRECTIONS_REPORT = "corrections-report"
    CORRECTIONS_REPORT_BY_DAY_ACCESSED = "corrections-report-by-day-accessed"
    CORRECTIONS_REPORT_TODAY_ACCESSED = "corrections-report-today-accessed"
    CORRECTIONS_SUBSCRIPTION_FETCH = "corrections-subscription-fetch"
    CORRECTIONS_SUBSCRIPTION_FETCH_FAILED = "corrections-subscription-fetch-failed"
    REPORT_SUBSCRIPTION_MARK_NOT_REPORTED = "report-subscription-mark-not-reported"
    REPORT_SUBSCRIPTION_MARK_NOT_REPORTED_FAILED = "report-subscription-mark-not-reported-failed"
    REPORT_SUBSCRIPTION_MARK_WILL_NOT_REPORT = "report-subscription-mark-will-not-report"
    REPORT_SUBSCRIPTION_MARK_WILL_NOT_REPORT_FAILED = (
        "report-subscription-mark-will-not-report-failed"
    )
    REPORT_SUBSCRIPTION_REPORT_TO_CJ = "report-subscription-report-to-cj"
    REPORT_SUBSCRIPTION_REPORT_TO_CJ_BUT_COULD_NOT_MARK_REPORTED = (
        "report-subscription-report-to-cj-but-could-not-mark-reported"
    )
    REPORT_SUBSCRIPTION_REPORT_TO_CJ_FAILED = "report-subscription-report-to-cj-failed"
    REPORT_SUBSCRIPTIONS = "report-subscriptions"
    REPORT_SUBSCRIPTIONS_AIC_EXPIRED_BEFORE_SUBSCRIPTION_CREATED = (
        "report-subscriptions-aic-expired-before-subscription-created"
    )
    REPORT_SUBSCRIPTIONS_ENDING = "report-subscriptions-ending"
    REPORT_SUBSCRIPTIONS_N_NOT_REPORTED = "report-subscriptions-n-not-reported"
    REPORT_SUBSCRIPTIONS_STARTING = "report-subscriptions-starting"
    REPORT_SUBSCRIPTIONS_SUBSCRIPTION_HAS_NO_AIC_EXPIRY = (
        "report-subscriptions-subscription-has-no-aic-expiry"
    )
    REPORT_SUBSCRIPTIONS_TIMER = "report-subscriptions-timer"
    REQUEST_LOG_TEST = "request-log-test"
    STATS_D_ERROR = "stats-d-error"
    STATUS_HISTORY_DESERIALIZE_ERROR = "status-history-deserialize-error"
    VERIFY_REPORTS = "verify-reports"
    VERIFY_REPORTS_COUNT = "verify-reports-count"
    VERIFY_REPORTS_ENDING = "verify-reports-ending"
    VERIFY_REPORTS_NO_COUNT = "verify-reports-no-count"
    VERIFY_REPORTS_QUERY = "verify-reports-query"
    VERIFY_REPORTS_REFUND_FOUND = "verify-reports-refund-found"
    VERIFY_REPORTS_REFUND_NOT_FOUND = "verify-reports-refund-not-found"
    VERIFY_REPORTS_REFUND_MATCHED = "verify-reports-refund-matched"
    VERIFY_REPORTS_REFUND_NOT_MATCHED = "verify-reports-refund-not-matched"
    VERIFY_REPORTS_REFUND_UPDATE_FAILED = "verify-reports-refund-update-failed"
    VERIFY_REPORTS_REFUND_UPDATED = "verify-reports-refund-updated"
    VERIFY_REPORTS_STARTING = "verify-reports-starting"
    VERIFY_REPORTS_SUBSCRIPTION_MATCHED = "verify-reports-subscription-matched"
    VERIFY_REFUNDS_SUBSCRIPTION_MISSING_FROM_DATABASE = (
        "verify-refunds-subscription-missing-from-database"
    )
    VERIFY_REPORTS_SUBSCRIPTION_NOT_FOUND = "verify-reports-subscription-not-found"
    VERIFY_REPORTS_SUBSCRIPTION_NOT_MATCHED = "verify-reports-subscription-not-matched"
    VERIFY_REPORTS_SUBSCRIPTION_FOUND = "verify-reports-subscription-found"
    VERIFY_REPORTS_SUBSCRIPTION_UPDATE_FAILED = "verify-reports-subscription-update-failed"
    VERIFY_REPORTS_SUBSCRIPTION_UPDATED = "verify-reports-subscription-updated"
    VERIFY_REPORTS_TIMER = "verify-reports-timer"
    VERIFY_REPORTS_TOO_MANY_RECORDS = "verify-reports-too-many-records"
    WEB_APP = "web-app"
    WEB_APP_ENDING = "web-app-ending"
    WEB_APP_STARTING = "web-app-starting"
    WEB_APP_TIMER = "web-app-timer"

    # For test cases
    TEST = "test"
    TEST_ENDING = "test-ending"
    TEST_ERROR_INCR = "test-error-incr"
    TEST_GAUGE = "test-gauge"
    TEST_INCR = "test-incr"
    TEST_INFO_INCR = "test-info-incr"
    TEST_STARTING = "test-starting"
    TEST_TIME = "test-time"
    TEST_TIMER = "test-timer"

    def __str__(self) -> str:
        return self.value

    def add_suffix(self, suffix: str) -> LogKey:
        """Return the key named ``<self>-<suffix>``, or ``self`` if there is none."""
        try:
            return LogKey(f"{self.value}-{suffix}")
        except ValueError:
            return self


class _MozLogFormatter(logging.Formatter):
    """Render records as single-line mozlog JSON documents."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self._service_name = service_name
        self._hostname = socket.gethostname()

    def format(self, record: logging.LogRecord) -> str:
        fields = dict(getattr(record, _FIELDS_ATTR, {}))
        event_type = fields.pop("type", "<unknown>")
        fields["msg"] = record.getMessage()
        document = {
            "Timestamp": int(record.created * 1_000_000_000),
            "Type": event_type,
            "Logger": self._service_name,
            "Hostname": self._hostname,
            "EnvVersion": "2.0",
            "Severity": _SEVERITIES.get(record.levelno, 7),
            "Pid": os.getpid(),
            "Fields": fields,
        }
        return json.dumps(document, default=str)


def init_tracing(service_name: str, log_level: str, stream: IO[str]) -> None:
    """Send log events at or above ``log_level`` to ``stream`` in mozlog format."""
    level = _LEVELS.get(log_level.strip().lower(), logging.ERROR)
    handler = logging.StreamHandler(stream)
    handler.setFormatter(_MozLogFormatter(service_name))
    for existing in list(_logger.handlers):
        _logger.removeHandler(existing)
    _logger.addHandler(handler)
    _logger.setLevel(level)
    _logger.propagate = False


def _log(level: int, key: LogKey | str, message: str, fields: dict[str, Any]) -> None:
    _logger.log(level, message, extra={_FIELDS_ATTR: {"type": str(key), **fields}})


def info(key: LogKey | str, message: str, **kwargs: Any) -> None:
    """Log an info-level event of type ``key`` with extra fields."""
    _log(logging.INFO, key, message, kwargs)


def error(key: LogKey | str, message: str, **kwargs: Any) -> None:
    """Log an error-level event of type ``key``; an ``error`` field is shown by repr."""
    if "error" in kwargs:
        kwargs["error"] = repr(kwargs["error"])
    _log(logging.ERROR, key, message, kwargs)


def info_and_incr(statsd: StatsD, key: LogKey, message: str, **kwargs: Any) -> None:
    """Log an info event and increment the counter of the same name."""
    info(key, message, **kwargs)
    statsd.incr(key)


def error_and_incr(statsd: StatsD, key: LogKey, message: str, **kwargs: Any) -> None:
    """Log an error event and increment the counter of the same name."""
    error(key, message, **kwargs)
    statsd.incr(key)


class StatsD:
    """A statsd client sending metrics over UDP under the ``cjms`` prefix."""

    def __init__(self, settings: Settings) -> None:
        infos = socket.getaddrinfo(
            settings.statsd_host, settings.statsd_port, socket.AF_INET, socket.SOCK_DGRAM
        )
        self._address = infos[0][4]
        self._socket = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self._socket.bind(("0.0.0.0", 0))

    def close(self) -> None:
        """Release the underlying socket."""
        self._socket.close()

    def _send(self, key: str, value: int, kind: str) -> None:
        payload = f"{METRIC_PREFIX}.{key}:{value}|{kind}".encode("utf-8")
        self._socket.sendto(payload, self._address)

    def incr(self, key: LogKey) -> None:
        """Increment the counter ``key`` by one."""
        name = str(key)
        try:
            self._send(name, 1, "c")
        except OSError as exc:
            error(LogKey.STATS_D_ERROR, "Could not increment statsd tag", error=exc, key=name)

    def gauge(self, key: LogKey, value: int) -> None:
        """Record ``value`` for the gauge ``key``."""
        name = str(key)
        amount = int(value)
        try:
            self._send(name, amount, "g")
        except OSError as exc:
            error(
                LogKey.STATS_D_ERROR,
                "Could not record value for statsd tag",
                error=exc,
                key=name,
                value=amount,
            )

    def time(self, key: LogKey, duration: timedelta) -> None:
        """Record ``duration`` in whole milliseconds for the timer ``key``."""
        name = str(key)
        microseconds = (duration.days * 86_400 + duration.seconds) * 1_000_000 + duration.microseconds
        whole = abs(microseconds) // 1000
        milliseconds = (whole if microseconds >= 0 else -whole) % 2**64
        try:
            self._send(name, milliseconds, "ms")
        except OSError as exc:
            error(
                LogKey.STATS_D_ERROR,
                "Could not record time for statsd tag",
                error=exc,
                key=name,
                time=repr(duration),
            )


_ = _time  # monotonic clock is available to callers timing jobs