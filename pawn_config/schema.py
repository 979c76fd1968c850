"""
PawnConfig schema.

Defines the human-authored, reviewable settings document for a pawnshop
deployment.  The loader parses YAML into these types; bridges translate
them into the kernel's ``PawnPolicy``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class PledgeSettings:
    term_months: int
    grace_period_days: int
    max_renewal_months: int
    default_loan_percentages: tuple[Decimal, ...]


@dataclass(frozen=True)
class InterestDefaults:
    """Fallback monthly rates used when a branch has no InterestRate rows."""

    standard: Decimal
    extended: Decimal
    overdue: Decimal
    extended_after_months: int = 6


@dataclass(frozen=True)
class HandlingFeeSettings:
    enabled: bool
    fee_type: str  # "fixed" or "percentage"
    value: Decimal
    minimum: Decimal = Decimal("0")
    min_loan: Decimal = Decimal("0")


@dataclass(frozen=True)
class SequenceSettings:
    padding: int
    prefixes: tuple[tuple[str, str], ...]  # (kind, prefix)


@dataclass(frozen=True)
class PuritySetting:
    code: str
    name: str
    percentage: Decimal


@dataclass(frozen=True)
class StorageSettings:
    default_slots_per_box: int
    default_boxes_per_vault: int


@dataclass(frozen=True)
class PawnConfig:
    """
    Complete settings document.

    ``checksum`` is the SHA-256 of the parsed source mapping; identical
    YAML content always yields the same checksum.
    """

    version: int
    currency: str
    pledge: PledgeSettings
    interest: InterestDefaults
    handling_fee: HandlingFeeSettings
    sequence: SequenceSettings
    storage: StorageSettings
    purities: tuple[PuritySetting, ...] = ()
    checksum: str = ""
    source_path: str | None = field(default=None, compare=False)

    @property
    def purity_codes(self) -> tuple[str, ...]:
        return tuple(p.code for p in self.purities)
