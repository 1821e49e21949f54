"""
Settings Loader (``caja_config.loader``).

Responsibility
--------------
Reads ``defaults.yaml``, merges an optional operator settings file on top of
it, applies ``CAJA_*`` environment overrides, and parses the result into a
frozen ``Settings`` instance.

Architecture position
---------------------
**Config layer**.  Has no dependency on ``caja_kernel``; the bridges in
``caja_config.bridges`` translate ``Settings`` into kernel inputs.

Invariants enforced
-------------------
* Unknown keys are rejected, so a misspelled key never silently falls back
  to its default.
* Every parsed value is type-checked; ``Settings`` is immutable.

Failure modes
-------------
* Missing settings file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key or bad value  -> ``ValueError``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

# environment variable -> settings key
ENV_OVERRIDES = {
    "CAJA_DATABASE_URL": "database_url",
    "CAJA_LOG_LEVEL": "log_level",
    "CAJA_LOCK_TIMEOUT_MS": "lock_timeout_ms",
}

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the ledger and its tooling."""

    database_url: str
    echo_sql: bool
    pool_size: int
    max_overflow: int
    lock_timeout_ms: int | None
    utc_offset_hours: int
    receipt_counter_key: str
    default_opening_balance: Decimal
    log_level: str


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping, got {type(data).__name__}")
    return data


def _as_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false", "1", "0", "yes", "no"):
        return value.lower() in ("true", "1", "yes")
    raise ValueError(f"{key}: expected a boolean, got {value!r}")


def _as_int(key: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{key}: expected an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{key}: expected an integer, got {value!r}") from exc


def _as_money(key: str, value: Any) -> Decimal:
    if isinstance(value, float):
        # YAML reads 0.00 unquoted as a float
        value = repr(value)
    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{key}: expected a decimal amount, got {value!r}") from exc
    if amount < 0:
        raise ValueError(f"{key}: must not be negative, got {value!r}")
    return amount.quantize(Decimal("0.01"))


def parse_settings(data: dict[str, Any]) -> Settings:
    """
    Build ``Settings`` from a fully merged dict.

    Raises:
        ValueError: unknown or missing keys, or values of the wrong type.
    """
    known = {f.name for f in fields(Settings)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown settings keys: {', '.join(unknown)}")
    missing = sorted(known - set(data))
    if missing:
        raise ValueError(f"Missing settings keys: {', '.join(missing)}")

    database_url = str(data["database_url"] or "").strip()
    if not database_url:
        raise ValueError("database_url must not be empty")

    lock_timeout = data["lock_timeout_ms"]
    lock_timeout_ms = None if lock_timeout in (None, "") else _as_int("lock_timeout_ms", lock_timeout)
    if lock_timeout_ms is not None and lock_timeout_ms < 0:
        raise ValueError(f"lock_timeout_ms must not be negative, got {lock_timeout_ms}")

    offset = _as_int("utc_offset_hours", data["utc_offset_hours"])
    if not -12 <= offset <= 14:
        raise ValueError(f"utc_offset_hours out of range: {offset}")

    log_level = str(data["log_level"]).upper()
    if log_level not in _LOG_LEVELS:
        raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}, got {data['log_level']!r}")

    counter_key = str(data["receipt_counter_key"] or "").strip()
    if not counter_key:
        raise ValueError("receipt_counter_key must not be empty")

    return Settings(
        database_url=database_url,
        echo_sql=_as_bool("echo_sql", data["echo_sql"]),
        pool_size=_as_int("pool_size", data["pool_size"]),
        max_overflow=_as_int("max_overflow", data["max_overflow"]),
        lock_timeout_ms=lock_timeout_ms,
        utc_offset_hours=offset,
        receipt_counter_key=counter_key,
        default_opening_balance=_as_money(
            "default_opening_balance", data["default_opening_balance"]
        ),
        log_level=log_level,
    )


def load_settings(
    path: Path | str | None = None,
    environ: dict[str, str] | None = None,
) -> Settings:
    """
    Load settings: defaults, then ``path`` (if given), then environment.

    Args:
        path: Optional operator settings file; its keys override defaults.
        environ: Environment mapping (defaults to ``os.environ``).
    """
    data = load_yaml_file(DEFAULTS_PATH)
    if path is not None:
        data.update(load_yaml_file(Path(path)))

    env = os.environ if environ is None else environ
    for variable, key in ENV_OVERRIDES.items():
        if env.get(variable):
            data[key] = env[variable]

    return parse_settings(data)
