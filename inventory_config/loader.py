"""
Configuration Loader (``inventory_config.loader``).

Responsibility
--------------
Builds ``LedgerSettings`` from three layers, later layers winning:

1. dataclass defaults
2. the ``ledger:`` mapping of a YAML file
3. environment variables (``INVENTORY_*``; ``DATABASE_URL`` as a fallback
   for the database URL)

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key or badly typed value  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
import os
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any, Mapping

import yaml

from inventory_config.settings import LedgerSettings

CONFIG_PATH_ENV = "INVENTORY_LEDGER_CONFIG"

# Environment variable -> settings field
ENV_OVERRIDES: dict[str, str] = {
    "INVENTORY_DATABASE_URL": "database_url",
    "INVENTORY_DB_ECHO": "echo",
    "INVENTORY_POOL_SIZE": "pool_size",
    "INVENTORY_LOCK_TIMEOUT_MS": "lock_timeout_ms",
    "INVENTORY_MAX_RETRIES": "max_retries",
    "INVENTORY_RETRY_BACKOFF_MS": "retry_backoff_ms",
    "INVENTORY_COST_DECIMAL_PLACES": "cost_decimal_places",
    "INVENTORY_PUBLISH_EVENTS": "publish_events",
    "INVENTORY_PUBLISHER_MAX_WORKERS": "publisher_max_workers",
    "INVENTORY_LOG_LEVEL": "log_level",
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if ``path`` does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _coerce(name: str, value: Any, target: type) -> Any:
    if target is bool:
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ValueError(f"{name}: expected a boolean, got {value!r}")
    if target is int:
        if isinstance(value, bool):
            raise ValueError(f"{name}: expected an integer, got {value!r}")
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValueError(f"{name}: expected an integer, got {value!r}") from None
    return str(value)


def _field_types() -> dict[str, type]:
    # Annotations are strings under postponed evaluation.
    mapping = {"str": str, "bool": bool, "int": int}
    return {f.name: mapping[str(f.type)] for f in fields(LedgerSettings)}


def parse_settings(data: Mapping[str, Any]) -> dict[str, Any]:
    """
    Validate and coerce a raw mapping into LedgerSettings keyword arguments.

    Raises:
        ValueError: on unknown keys or uncoercible values.
    """
    types = _field_types()
    unknown = set(data) - set(types)
    if unknown:
        raise ValueError(f"Unknown ledger settings: {sorted(unknown)}")
    return {name: _coerce(name, value, types[name]) for name, value in data.items()}


def env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    raw: dict[str, Any] = {}
    if environ.get("DATABASE_URL"):
        raw["database_url"] = environ["DATABASE_URL"]
    for var, name in ENV_OVERRIDES.items():
        if environ.get(var) not in (None, ""):
            raw[name] = environ[var]
    return parse_settings(raw)


def load_settings(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> LedgerSettings:
    """
    Build settings from defaults, an optional YAML file and the environment.

    Args:
        path: YAML file with a top-level ``ledger:`` mapping.  Falls back
            to ``$INVENTORY_LEDGER_CONFIG`` when None.
        environ: Environment mapping, ``os.environ`` when None.
    """
    if environ is None:
        environ = os.environ

    values: dict[str, Any] = {}
    if path is None and environ.get(CONFIG_PATH_ENV):
        path = environ[CONFIG_PATH_ENV]
    if path is not None:
        document = load_yaml_file(Path(path))
        section = document.get("ledger", {})
        if not isinstance(section, dict):
            raise ValueError(f"{path}: 'ledger' must be a mapping")
        values.update(parse_settings(section))
    values.update(env_overrides(environ))
    return LedgerSettings(**values)


def compute_checksum(settings: LedgerSettings) -> str:
    """Deterministic SHA-256 of the settings, database credentials excluded."""
    data = asdict(settings)
    data["database_url"] = data["database_url"].split("@")[-1]
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode()).hexdigest()
