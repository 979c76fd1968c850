"""
Configuration Loader (``pawn_config.loader``).

Responsibility
--------------
Loads a YAML settings file and parses it into the typed
``pawn_config.schema`` dataclasses.  Runtime callers go through
``pawn_config.get_active_config()``; tests and tooling may call
``load_config`` with an explicit path.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  No dependency on kernel
services, models or engines.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required sections.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Non-numeric amounts or rates  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from pawn_config.schema import (
    HandlingFeeSettings,
    InterestDefaults,
    PawnConfig,
    PledgeSettings,
    PuritySetting,
    SequenceSettings,
    StorageSettings,
)

_FEE_TYPES = ("fixed", "percentage")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_date(value: Any) -> date:
    """Parse a date from YAML (string or date object)."""
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value)
    raise ValueError(f"Cannot parse date from {value!r}")


def parse_decimal(value: Any, field_name: str) -> Decimal:
    """Parse an amount or rate; YAML numbers go through ``str`` first."""
    if isinstance(value, bool) or value is None:
        raise ValueError(f"{field_name}: expected a number, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"{field_name}: invalid number {value!r}") from e


def parse_pledge(data: dict[str, Any]) -> PledgeSettings:
    return PledgeSettings(
        term_months=int(data["term_months"]),
        grace_period_days=int(data["grace_period_days"]),
        max_renewal_months=int(data["max_renewal_months"]),
        default_loan_percentages=tuple(
            parse_decimal(p, "pledge.default_loan_percentages")
            for p in data.get("default_loan_percentages", ())
        ),
    )


def parse_interest(data: dict[str, Any]) -> InterestDefaults:
    return InterestDefaults(
        standard=parse_decimal(data["standard"], "interest.standard"),
        extended=parse_decimal(data["extended"], "interest.extended"),
        overdue=parse_decimal(data["overdue"], "interest.overdue"),
        extended_after_months=int(data.get("extended_after_months", 6)),
    )


def parse_handling_fee(data: dict[str, Any]) -> HandlingFeeSettings:
    fee_type = data.get("type", "fixed")
    if fee_type not in _FEE_TYPES:
        raise ValueError(f"handling_fee.type must be one of {_FEE_TYPES}, got {fee_type!r}")
    return HandlingFeeSettings(
        enabled=bool(data.get("enabled", True)),
        fee_type=fee_type,
        value=parse_decimal(data["value"], "handling_fee.value"),
        minimum=parse_decimal(data.get("minimum", "0"), "handling_fee.minimum"),
        min_loan=parse_decimal(data.get("min_loan", "0"), "handling_fee.min_loan"),
    )


def parse_sequence(data: dict[str, Any]) -> SequenceSettings:
    prefixes = data["prefixes"]
    return SequenceSettings(
        padding=int(data.get("padding", 4)),
        prefixes=tuple(sorted((str(k), str(v)) for k, v in prefixes.items())),
    )


def parse_purities(data: dict[str, Any]) -> tuple[PuritySetting, ...]:
    return tuple(
        PuritySetting(
            code=str(code),
            name=str(entry.get("name", code)),
            percentage=parse_decimal(entry["percentage"], f"purities.{code}.percentage"),
        )
        for code, entry in data.items()
    )


def parse_storage(data: dict[str, Any]) -> StorageSettings:
    return StorageSettings(
        default_slots_per_box=int(data["default_slots_per_box"]),
        default_boxes_per_vault=int(data["default_boxes_per_vault"]),
    )


def parse_config(data: dict[str, Any], source_path: str | None = None) -> PawnConfig:
    """Parse a full settings mapping into a ``PawnConfig``."""
    return PawnConfig(
        version=int(data.get("version", 1)),
        currency=str(data.get("currency", "MYR")),
        pledge=parse_pledge(data["pledge"]),
        interest=parse_interest(data["interest"]),
        handling_fee=parse_handling_fee(data["handling_fee"]),
        sequence=parse_sequence(data["sequence"]),
        storage=parse_storage(data["storage"]),
        purities=parse_purities(data.get("purities", {})),
        checksum=compute_checksum(data),
        source_path=source_path,
    )


def load_config(path: Path | str) -> PawnConfig:
    """Load and parse the settings file at ``path``."""
    path = Path(path)
    return parse_config(load_yaml_file(path), source_path=str(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
