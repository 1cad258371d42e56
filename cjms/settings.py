"""Application settings loaded from a YAML file or from environment variables."""

from __future__ import annotations

import os
import stat
from dataclasses import dataclass, field, fields
from typing import Any

import yaml

SETTINGS_FILE = "settings.yaml"

_UNSIGNED_LIMITS = {
    "aic_expiration_days": 2**64 - 1,
    "port": 2**16 - 1,
    "statsd_port": 2**16 - 1,
}
_SECRET_FIELDS = frozenset({"cj_api_access_token", "database_url", "sentry_dsn"})


class SettingsError(Exception):
    """Raised when settings cannot be located, parsed or validated."""


class Secret:
    """A string value that is kept out of reprs and logs."""

    __slots__ = ("_value",)

    def __init__(self, value: str) -> None:
        self._value = value

    def reveal(self) -> str:
        """Return the wrapped value."""
        return self._value

    def __repr__(self) -> str:
        return "Secret([REDACTED])"

    __str__ = __repr__

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Secret):
            return self._value == other._value
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)


@dataclass
class Settings:
    """Runtime configuration of the service."""

    aic_expiration_days: int
    authentication: str
    cj_api_access_token: Secret
    cj_cid: str
    cj_sftp_user: str
    cj_signature: str
    cj_subid: str
    cj_type: str
    database_url: Secret
    environment: str
    gcp_project: str
    host: str
    log_level: str
    port: int
    sentry_dsn: Secret
    # Not part of equality between two settings objects.
    sentry_environment: str = field(compare=False)
    statsd_host: str
    statsd_port: int

    def server_address(self) -> str:
        """Return the ``host:port`` address the server binds to."""
        return f"{self.host}:{self.port}"


def _read_source(path: str) -> dict[str, Any]:
    try:
        info = os.stat(path)
    except FileNotFoundError:
        return {key.lower(): value for key, value in os.environ.items()}
    except OSError as exc:
        raise SettingsError("Unexpected error when loading metadata.") from exc

    if not stat.S_ISREG(info.st_mode):
        raise SettingsError("Given settings file is not a file")

    try:
        with open(path, encoding="utf-8") as handle:
            data = yaml.load(handle, Loader=yaml.BaseLoader)
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
        raise SettingsError("Config couldn't be built.") from exc

    if data is None or data == "":
        return {}
    if not isinstance(data, dict):
        raise SettingsError("Config couldn't be built.")
    return {str(key).lower(): value for key, value in data.items()}


def _mismatch(detail: str) -> SettingsError:
    return SettingsError(f"Config didn't match serialization. {detail}")


def _as_string(name: str, raw: Any) -> str:
    if isinstance(raw, (dict, list)):
        raise _mismatch(f"invalid type for `{name}`: expected a string")
    return str(raw)


def _as_unsigned(name: str, raw: Any) -> int:
    text = _as_string(name, raw).strip()
    if not text.isdigit():
        raise _mismatch(f"invalid value for `{name}`: expected an unsigned integer")
    value = int(text)
    if value > _UNSIGNED_LIMITS[name]:
        raise _mismatch(f"invalid value for `{name}`: out of range")
    return value


def _build(values: dict[str, Any]) -> Settings:
    kwargs: dict[str, Any] = {}
    for spec in fields(Settings):
        name = spec.name
        if name not in values:
            raise _mismatch(f"missing field `{name}`")
        raw = values[name]
        if name in _UNSIGNED_LIMITS:
            kwargs[name] = _as_unsigned(name, raw)
        elif name in _SECRET_FIELDS:
            kwargs[name] = Secret(_as_string(name, raw))
        else:
            kwargs[name] = _as_string(name, raw)
    return Settings(**kwargs)


def load_settings(path: str) -> Settings:
    """Load settings from ``path``, or from the environment if it does not exist."""
    return _build(_read_source(path))


def get_settings() -> Settings:
    """Load settings from ``settings.yaml`` or the environment."""
    return load_settings(SETTINGS_FILE)