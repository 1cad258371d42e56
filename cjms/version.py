"""Reading and writing of the deployment version file."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

import yaml

VERSION_FILE = "version.yaml"


class VersionFileError(Exception):
    """Raised when the version file cannot be read, parsed or written."""


@dataclass
class VersionInfo:
    """Build information about the running release."""

    commit: str
    source: str
    version: str


def _parse(data: Any) -> VersionInfo:
    if not isinstance(data, dict):
        raise ValueError("version file is not a mapping")
    values = {}
    for name in ("commit", "source", "version"):
        raw = data.get(name)
        if raw is None or isinstance(raw, (dict, list)):
            raise ValueError(f"invalid or missing field {name!r}")
        values[name] = str(raw)
    return VersionInfo(**values)


def read_version(path: str) -> VersionInfo:
    """Read the version file at ``path``."""
    try:
        handle = open(path, encoding="utf-8")
    except OSError as exc:
        raise VersionFileError("Couldn't read version file.") from exc
    with handle:
        try:
            return _parse(yaml.load(handle, Loader=yaml.BaseLoader))
        except (yaml.YAMLError, UnicodeDecodeError, ValueError) as exc:
            raise VersionFileError("Couldn't parse YAML from version file.") from exc


def write_version(path: str, data: VersionInfo) -> None:
    """Write ``data`` as YAML to ``path``."""
    try:
        handle = open(path, "w", encoding="utf-8")
    except OSError as exc:
        raise VersionFileError("Couldn't create version file.") from exc
    with handle:
        try:
            yaml.safe_dump(asdict(data), handle, sort_keys=False, default_flow_style=False)
        except (yaml.YAMLError, OSError) as exc:
            raise VersionFileError("Couldn't write YAML to file.") from exc