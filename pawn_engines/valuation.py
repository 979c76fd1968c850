"""
Module: pawn_engines.valuation
Responsibility:
    Appraise pledged gold items: apply stone deductions, price the net
    weight from a gold price snapshot, and derive the pledge-level loan and
    payout amounts.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import pawn_kernel/domain and pawn_kernel/exceptions.

Invariants enforced:
    - Purity: no clock access, no I/O; identical inputs give identical output.
    - Decimal-only arithmetic.  Weights are quantized to 3 dp and money to
      2 dp, both half-up.
    - ``percentage`` and ``grams`` deductions reduce weight before pricing;
      ``amount`` deductions reduce value after pricing and never touch weight.
    - net_weight + deducted_weight == gross_weight for every item.
    - net_value == gross_value - total_deduction at pledge level.
    - loan_amount is computed once on the summed net value.

Failure modes:
    - InvalidWeightError: gross weight <= 0, negative deduction value,
      deduction larger than the gross weight (or gross value for ``amount``).
    - UnknownPurityError: purity code missing from the snapshot.
    - InvalidLoanTermsError: empty item list, loan percentage outside (0, 100].

Usage:
    from pawn_engines.valuation import ItemInput, ValuationCalculator
    from pawn_kernel.domain.values import GoldPriceSnapshot, GramsDeduction

    calc = ValuationCalculator()
    result = calc.value_items(
        items=[ItemInput("ring", "916", Decimal("10.000"), GramsDeduction(Decimal("0.5")))],
        snapshot=GoldPriceSnapshot({"916": Decimal("300.00")}),
    )
    loan = calc.loan_amount(net_value=result.net_value, loan_percentage=Decimal("80"))
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal

from pawn_engines.tracer import traced_engine
from pawn_kernel.domain.values import (
    HUNDRED,
    ZERO,
    AmountDeduction,
    GoldPriceSnapshot,
    GramsDeduction,
    NoDeduction,
    PercentageDeduction,
    StoneDeduction,
    round_money,
    round_weight,
    to_decimal,
)
from pawn_kernel.exceptions import InvalidLoanTermsError, InvalidWeightError
from pawn_kernel.logging_config import get_logger

logger = get_logger("engines.valuation")


@dataclass(frozen=True)
class ItemInput:
    """One item presented at the counter."""

    category: str
    purity_code: str
    gross_weight: Decimal
    deduction: StoneDeduction = field(default_factory=NoDeduction)
    description: str | None = None


@dataclass(frozen=True)
class ItemValuation:
    """
    Appraisal of a single item.

    Guarantees:
        - net_weight + deducted_weight == gross_weight.
        - net_value == gross_value - deduction_amount.
        - deduction_amount is non-zero only for ``amount`` deductions.
    """

    category: str
    purity_code: str
    gross_weight: Decimal
    deduction: StoneDeduction
    deducted_weight: Decimal
    net_weight: Decimal
    price_per_gram: Decimal
    gross_value: Decimal
    deduction_amount: Decimal
    net_value: Decimal
    description: str | None = None


@dataclass(frozen=True)
class ValuationResult:
    """Per-item appraisals plus pledge-level aggregates."""

    items: tuple[ItemValuation, ...]
    total_gross_weight: Decimal
    total_weight: Decimal
    gross_value: Decimal
    total_deduction: Decimal
    net_value: Decimal


class ValuationCalculator:
    """
    Pure calculator for pledge appraisal.

    Contract:
        No I/O, no database access, fully deterministic.  Prices come in
        through the snapshot argument, never from storage.
    Non-goals:
        - Does not decide the loan percentage; callers pass it.
        - Does not persist anything.
    """

    def deducted_weight(self, gross_weight: Decimal, deduction: StoneDeduction) -> Decimal:
        """Grams removed from ``gross_weight`` before pricing."""
        match deduction:
            case PercentageDeduction(value=value):
                return round_weight(gross_weight * value / HUNDRED)
            case GramsDeduction(value=value):
                return round_weight(value)
            case AmountDeduction():
                return round_weight(ZERO)
            case NoDeduction():
                return round_weight(ZERO)
        raise TypeError(f"Unsupported stone deduction: {deduction!r}")

    def value_item(self, item: ItemInput, snapshot: GoldPriceSnapshot) -> ItemValuation:
        gross_weight = round_weight(to_decimal(item.gross_weight))
        if gross_weight <= ZERO:
            raise InvalidWeightError("gross weight must be positive", gross_weight)
        if to_decimal(item.deduction.value) < ZERO:
            raise InvalidWeightError("stone deduction cannot be negative", gross_weight)

        deducted = self.deducted_weight(gross_weight, item.deduction)
        net_weight = gross_weight - deducted
        if net_weight < ZERO:
            raise InvalidWeightError(
                f"deduction of {deducted}g exceeds gross weight", gross_weight
            )

        price_per_gram = snapshot.price_for(item.purity_code)
        gross_value = round_money(net_weight * price_per_gram)

        match item.deduction:
            case AmountDeduction(value=value):
                deduction_amount = round_money(value)
            case _:
                deduction_amount = round_money(ZERO)

        if deduction_amount > gross_value:
            raise InvalidWeightError(
                f"amount deduction {deduction_amount} exceeds item value {gross_value}",
                gross_weight,
            )

        return ItemValuation(
            category=item.category,
            purity_code=str(item.purity_code),
            gross_weight=gross_weight,
            deduction=item.deduction,
            deducted_weight=deducted,
            net_weight=net_weight,
            price_per_gram=price_per_gram,
            gross_value=gross_value,
            deduction_amount=deduction_amount,
            net_value=gross_value - deduction_amount,
            description=item.description,
        )

    @traced_engine("valuation", "1.0", fingerprint_fields=("items", "snapshot"))
    def value_items(
        self,
        items: Sequence[ItemInput],
        snapshot: GoldPriceSnapshot,
    ) -> ValuationResult:
        """
        Appraise every item and aggregate the pledge totals.

        Raises:
            InvalidLoanTermsError: If ``items`` is empty.
            InvalidWeightError, UnknownPurityError: From any single item.
        """
        if not items:
            raise InvalidLoanTermsError("a pledge needs at least one item")

        valuations = tuple(self.value_item(item, snapshot) for item in items)

        result = ValuationResult(
            items=valuations,
            total_gross_weight=sum((v.gross_weight for v in valuations), ZERO),
            total_weight=sum((v.net_weight for v in valuations), ZERO),
            gross_value=sum((v.gross_value for v in valuations), ZERO),
            total_deduction=sum((v.deduction_amount for v in valuations), ZERO),
            net_value=sum((v.net_value for v in valuations), ZERO),
        )
        logger.debug("items_valued", extra={
            "item_count": len(valuations),
            "net_value": str(result.net_value),
        })
        return result

    def loan_amount(self, net_value: Decimal, loan_percentage: Decimal) -> Decimal:
        """``net_value * loan_percentage / 100`` rounded half-up to 2 dp."""
        pct = to_decimal(loan_percentage)
        if pct <= ZERO or pct > HUNDRED:
            raise InvalidLoanTermsError(f"loan percentage {pct} outside (0, 100]")
        return round_money(to_decimal(net_value) * pct / HUNDRED)

    def payout_amount(self, loan_amount: Decimal, handling_fee: Decimal) -> Decimal:
        """Cash handed to the customer: ``max(0, loan - fee)``."""
        return max(round_money(ZERO), round_money(to_decimal(loan_amount) - to_decimal(handling_fee)))
