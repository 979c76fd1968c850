"""
Policy -- Business settings as the kernel consumes them.

Responsibility:
    Frozen, validated settings that services and engines receive as
    explicit inputs: pledge terms, handling-fee rule, document numbering
    and storage defaults.  The kernel never reads configuration files;
    ``pawn_config.bridges.build_policy`` turns a loaded configuration into
    a ``PawnPolicy``.

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from pawn_kernel.domain.values import ZERO, RateSchedule, to_decimal
from pawn_kernel.exceptions import InvalidLoanTermsError


class HandlingFeeType(str, Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"


@dataclass(frozen=True)
class HandlingFeePolicy:
    """
    Handling charge levied on a pledge, renewal or redemption.

    ``fixed`` charges ``value``; ``percentage`` charges ``value`` percent
    of the principal, never less than ``minimum``.  No fee is charged when
    disabled or when the principal does not exceed ``min_loan``.
    """

    fee_type: HandlingFeeType = HandlingFeeType.FIXED
    value: Decimal = Decimal("0.50")
    minimum: Decimal = ZERO
    enabled: bool = True
    min_loan: Decimal = ZERO

    def __post_init__(self) -> None:
        object.__setattr__(self, "fee_type", HandlingFeeType(self.fee_type))
        for name in ("value", "minimum", "min_loan"):
            amount = to_decimal(getattr(self, name))
            if amount < ZERO:
                raise ValueError(f"handling fee {name} cannot be negative")
            object.__setattr__(self, name, amount)


@dataclass(frozen=True)
class PledgePolicy:
    """Loan terms applied when pledges are created, renewed and redeemed."""

    rates: RateSchedule
    term_months: int = 6
    grace_days: int = 7
    max_renewal_months: int = 6
    extended_after_months: int = 6
    loan_percentages: tuple[Decimal, ...] = (Decimal("80"), Decimal("70"), Decimal("60"))
    handling_fee: HandlingFeePolicy = field(default_factory=HandlingFeePolicy)
    currency: str = "MYR"

    def __post_init__(self) -> None:
        if self.term_months < 1:
            raise InvalidLoanTermsError("term must be at least one month")
        if self.grace_days < 0:
            raise InvalidLoanTermsError("grace period cannot be negative")
        if self.max_renewal_months < 1:
            raise InvalidLoanTermsError("max renewal months must be at least one")
        if self.extended_after_months < 0:
            raise InvalidLoanTermsError("extended tier boundary cannot be negative")
        object.__setattr__(
            self, "loan_percentages", tuple(to_decimal(p) for p in self.loan_percentages)
        )


@dataclass(frozen=True)
class NumberingPolicy:
    """Prefixes per document kind and the zero-padding width."""

    prefixes: Mapping[str, str] = field(default_factory=lambda: {
        "pledge": "PLG",
        "receipt": "RCP",
        "renewal": "RNW",
        "redemption": "RDM",
    })
    padding: int = 4

    def __post_init__(self) -> None:
        if self.padding < 1:
            raise ValueError("sequence padding must be at least 1")
        object.__setattr__(self, "prefixes", MappingProxyType(dict(self.prefixes)))

    def prefix_for(self, kind: str) -> str:
        try:
            return self.prefixes[kind]
        except KeyError:
            raise ValueError(f"No document prefix configured for kind {kind!r}") from None


@dataclass(frozen=True)
class StoragePolicy:
    slots_per_box: int = 20
    boxes_per_vault: int = 100


@dataclass(frozen=True)
class PawnPolicy:
    """Everything the kernel needs from configuration, in one object."""

    pledge: PledgePolicy
    numbering: NumberingPolicy = field(default_factory=NumberingPolicy)
    storage: StoragePolicy = field(default_factory=StoragePolicy)
