"""
Values -- Immutable, self-validating domain value objects.

Responsibility:
    Provides the value types every pledge computation is built on:
    currency/weight quantization, the stone-deduction tagged variant, the
    gold price snapshot, the interest rate schedule and the payment split.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Decimal-only arithmetic: float inputs are rejected at construction.
    - Currency amounts round half-up to 2 decimal places, weights to 3.
    - Rate tiers are non-decreasing (standard <= extended <= overdue), which
      is what makes accrued interest monotone in time.

Failure modes:
    - TypeError when a float reaches a money or weight field.
    - UnknownPurityError when a snapshot has no price for a purity code.
    - InvalidLoanTermsError for a malformed rate schedule.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping

from pawn_kernel.exceptions import InvalidLoanTermsError, UnknownPurityError

MONEY_QUANTUM = Decimal("0.01")
WEIGHT_QUANTUM = Decimal("0.001")
HUNDRED = Decimal("100")
ZERO = Decimal("0")


def to_decimal(value: Decimal | str | int) -> Decimal:
    """
    Convert a caller-supplied number to Decimal.

    Raises:
        TypeError: For float input (binary floats cannot represent grams or
            ringgit exactly).
        ValueError: For unparseable strings.
    """
    if isinstance(value, bool):
        raise TypeError("bool is not a numeric amount")
    if isinstance(value, float):
        raise TypeError(f"float not allowed for exact amounts: {value!r}")
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid numeric value: {value!r}") from e


def round_money(value: Decimal | str | int) -> Decimal:
    """Round half-up to currency precision (2 dp)."""
    return to_decimal(value).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def round_weight(value: Decimal | str | int) -> Decimal:
    """Round half-up to weight precision (3 dp, milligrams)."""
    return to_decimal(value).quantize(WEIGHT_QUANTUM, rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------------
# Stone deduction (tagged variant)
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PercentageDeduction:
    """Deduct ``value`` percent of the gross weight before pricing."""

    value: Decimal
    kind: str = field(default="percentage", init=False)


@dataclass(frozen=True, slots=True)
class GramsDeduction:
    """Deduct ``value`` grams from the gross weight before pricing."""

    value: Decimal
    kind: str = field(default="grams", init=False)


@dataclass(frozen=True, slots=True)
class AmountDeduction:
    """Deduct ``value`` in currency from the priced value; weight untouched."""

    value: Decimal
    kind: str = field(default="amount", init=False)


@dataclass(frozen=True, slots=True)
class NoDeduction:
    value: Decimal = ZERO
    kind: str = field(default="none", init=False)


StoneDeduction = PercentageDeduction | GramsDeduction | AmountDeduction | NoDeduction

_DEDUCTION_KINDS: dict[str, type] = {
    "percentage": PercentageDeduction,
    "grams": GramsDeduction,
    "amount": AmountDeduction,
}


def deduction_from(kind: str | None, value: Decimal | str | int | None) -> StoneDeduction:
    """
    Build a StoneDeduction from its persisted (kind, value) pair.

    ``None`` kind or a zero value yields NoDeduction.

    Raises:
        ValueError: For an unknown kind.
    """
    if kind is None or kind == "none":
        return NoDeduction()
    if kind not in _DEDUCTION_KINDS:
        raise ValueError(f"Unknown stone deduction type: {kind!r}")
    amount = to_decimal(value if value is not None else 0)
    if amount == ZERO:
        return NoDeduction()
    return _DEDUCTION_KINDS[kind](amount)


# ---------------------------------------------------------------------------
# Gold price snapshot
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GoldPriceSnapshot:
    """
    Price per gram for each purity code, as of one moment.

    Pledges store their own copy of this snapshot (not a foreign key) so that
    a later price correction never changes an existing loan.
    """

    prices: Mapping[str, Decimal]
    source: str = "manual"
    price_date: date | None = None

    def __post_init__(self) -> None:
        normalized = {str(code): to_decimal(price) for code, price in self.prices.items()}
        for code, price in normalized.items():
            if price < ZERO:
                raise ValueError(f"Negative gold price for purity {code}: {price}")
        object.__setattr__(self, "prices", normalized)

    def price_for(self, purity_code: str) -> Decimal:
        """Price per gram for ``purity_code`` (zero-priced codes count as unknown)."""
        price = self.prices.get(str(purity_code))
        if price is None or price == ZERO:
            raise UnknownPurityError(
                str(purity_code),
                tuple(sorted(c for c, p in self.prices.items() if p > ZERO)),
            )
        return price

    def to_dict(self) -> dict[str, str]:
        return {code: str(price) for code, price in sorted(self.prices.items())}

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        source: str = "manual",
        price_date: date | None = None,
    ) -> GoldPriceSnapshot:
        return cls(
            prices={str(k): to_decimal(v) for k, v in data.items()},
            source=source,
            price_date=price_date,
        )


# ---------------------------------------------------------------------------
# Interest rate schedule
# ---------------------------------------------------------------------------


class RateType(str, Enum):
    """Interest tier applied to a pledge for a given month."""

    STANDARD = "standard"
    EXTENDED = "extended"
    OVERDUE = "overdue"


@dataclass(frozen=True)
class RateSchedule:
    """
    Monthly interest percentages for the three tiers.

    Guarantees:
        - All rates are non-negative Decimals.
        - standard <= extended <= overdue.
    """

    standard: Decimal
    extended: Decimal
    overdue: Decimal

    def __post_init__(self) -> None:
        for name in ("standard", "extended", "overdue"):
            value = to_decimal(getattr(self, name))
            if value < ZERO:
                raise InvalidLoanTermsError(f"{name} rate cannot be negative ({value})")
            object.__setattr__(self, name, value)
        if not (self.standard <= self.extended <= self.overdue):
            raise InvalidLoanTermsError(
                "rates must be non-decreasing across tiers "
                f"(standard={self.standard}, extended={self.extended}, "
                f"overdue={self.overdue})"
            )

    def rate_for(self, rate_type: RateType) -> Decimal:
        return getattr(self, rate_type.value)


# ---------------------------------------------------------------------------
# Payment split
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PaymentSplit:
    """Cash and bank-transfer portions of a single payment."""

    cash: Decimal = ZERO
    transfer: Decimal = ZERO
    reference_no: str | None = None

    def __post_init__(self) -> None:
        cash = round_money(self.cash)
        transfer = round_money(self.transfer)
        if cash < ZERO or transfer < ZERO:
            raise ValueError("payment amounts cannot be negative")
        object.__setattr__(self, "cash", cash)
        object.__setattr__(self, "transfer", transfer)

    @property
    def total(self) -> Decimal:
        return self.cash + self.transfer

    @property
    def method(self) -> str:
        if self.cash > ZERO and self.transfer > ZERO:
            return "partial"
        if self.transfer > ZERO:
            return "transfer"
        return "cash"

    @classmethod
    def cash_only(cls, amount: Decimal | str | int) -> PaymentSplit:
        return cls(cash=to_decimal(amount))
