# cjms

A library for tracking affiliate conversions. It stores affiliate
identifier cookies (AICs) and the subscriptions and refunds that follow
from them, keeps a status history for every subscription and refund,
sends structured logs and statsd metrics, and provides the periodic jobs
that archive expired cookies, batch refunds and report subscriptions.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Settings

`cjms.settings.get_settings()` reads `settings.yaml` from the working
directory. When that file does not exist, every field is taken from the
environment variable with the upper-cased field name (`HOST`, `PORT`,
`DATABASE_URL`, ...). `load_settings(path)` does the same with another
file name.

The fields are `aic_expiration_days`, `authentication`,
`cj_api_access_token`, `cj_cid`, `cj_sftp_user`, `cj_signature`,
`cj_subid`, `cj_type`, `database_url`, `environment`, `gcp_project`,
`host`, `log_level`, `port`, `sentry_dsn`, `sentry_environment`,
`statsd_host` and `statsd_port`. All are required. `aic_expiration_days`
is an unsigned integer, `port` and `statsd_port` fit in 16 bits, and
`cj_api_access_token`, `database_url` and `sentry_dsn` are wrapped in a
`Secret`, whose repr hides the value and whose `reveal()` returns it.

```python
from cjms.settings import get_settings

settings = get_settings()
settings.server_address()        # "<host>:<port>"
settings.database_url.reveal()   # the plain string
```

`SettingsError` is raised when a field is missing or has the wrong type,
when the settings path is a directory, or when the file is not YAML.

## Version file

```python
from cjms.version import VersionInfo, read_version, write_version

write_version("version.yaml", VersionInfo(commit="a1b2c3", source="source", version="1.0"))
info = read_version("version.yaml")
```

`VersionFileError` is raised when the file cannot be opened or does not
hold `commit`, `source` and `version`. `cjms.version.VERSION_FILE` is
`"version.yaml"`.

## Telemetry

Every log event and metric is named by a `LogKey`, whose value is the
kebab-case name (`LogKey.CLEANUP_AIC_ARCHIVE` is `"cleanup-aic-archive"`).
`add_suffix` reaches a related key, or returns the key itself when the
combined name does not exist:

```python
from cjms.telemetry import LogKey

LogKey.CLEANUP.add_suffix("starting")   # LogKey.CLEANUP_STARTING
LogKey.CLEANUP.add_suffix("invalid")    # LogKey.CLEANUP
```

`init_tracing(service_name, log_level, stream)` writes events of the
`cjms` logger at or above `log_level` to `stream`, one JSON document per
line in mozlog layout. `info(key, message, **fields)` and
`error(key, message, **fields)` log an event; `error` shows an `error`
field by its repr.

`StatsD(settings)` sends metrics over UDP to `statsd_host:statsd_port`,
prefixed with `cjms.`: `incr(key)`, `gauge(key, value)` and
`time(key, duration)` (a `timedelta`, sent in whole milliseconds). A
failed send is logged under `LogKey.STATS_D_ERROR` and not raised.
`close()` releases the socket. `info_and_incr` and `error_and_incr` log
an event and increment the counter of the same key.

## Models

Records are stored through SQLAlchemy in the tables `aic`,
`aic_archive`, `subscriptions` and `refunds`; `create_schema(engine)`
creates those that do not exist yet. Timestamps are stored as UTC and
come back timezone-aware.

```python
from sqlalchemy import create_engine
from cjms.models.database import create_schema
from cjms.models.aic import AICModel
from cjms.models.subscriptions import SubscriptionModel
from cjms.models.status_history import Status

engine = create_engine("sqlite://")
create_schema(engine)

aics = AICModel(engine)
aic = aics.create("cj-event-value", "flow-id", settings)   # expires after aic_expiration_days
aics.archive_aic(aic)                                       # moved to aic_archive in one transaction

subs = SubscriptionModel(engine)
pending = subs.fetch_all_by_status(Status.NOT_REPORTED)
```

- `AICModel`: create, update the flow id (keeps the expiry) or the event
  value and flow id (restarts the expiry), fetch by id or flow id from
  either table, fetch expired cookies, archive.
- `SubscriptionModel` and `RefundModel`: create, fetch one or all, fetch
  by status (only rows with a status time), change status, and
  `get_reported_date_range()` for the earliest and latest status time of
  reported records. `RefundModel` also updates a whole refund and fetches
  refunds by correction-file day.

`Subscription.new(...)` and `Refund.new(...)` create records whose status
is `Status.NOT_REPORTED`. Both carry `get_status()`,
`get_status_history()` and `update_status(status)`; each update records
the time and appends to the history. Lookups that find nothing raise
`NotFoundError`. Equality of records compares timestamps to the second
and leaves out the history.

## Jobs

```python
from cjms.jobs.cleanup import archive_expired_aics
from cjms.jobs.batch_refunds import batch_refunds_by_day
from cjms.jobs.report_subscriptions import report_subscriptions_to_cj

archive_expired_aics(engine, statsd)
batch_refunds_by_day(engine, statsd)
report_subscriptions_to_cj(engine, cj_client, statsd)
```

- `archive_expired_aics` archives every expired cookie.
- `batch_refunds_by_day` marks not-reported refunds as reported with
  today's (UTC) correction-file date when their refund status is
  `"succeeded"` or unknown, and as not to be reported otherwise.
- `report_subscriptions_to_cj` skips subscriptions whose cookie has no
  expiry or expired before the subscription was created, and passes the
  rest to `cj_client.report_subscription(sub)`. A response with
  `status_code` 200 marks the subscription reported; any other status or
  an exception leaves it not reported.

Each job logs and counts every outcome and continues past failures of a
single record. If the records to work on cannot be read at all, it
raises `RuntimeError`.

## What is not included

The package is a library only. It has no command, no HTTP server or
endpoints for creating and updating cookies, no client for the affiliate
network's API (the reporting job takes one from the caller), no import
of subscriptions or refunds from a data warehouse, no job that verifies
reports against the network, and no error-reporting service setup.
Schema migrations are limited to `create_schema`.