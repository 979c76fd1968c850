"""
Module: pawn_engines.interest
Responsibility:
    Select the interest tier for a pledge on a given date, accrue interest,
    and build the month-by-month ledger charged on renewal.  Also prices
    redemptions and handling fees, and answers the overdue / grace /
    forfeiture date questions.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import pawn_kernel/domain and pawn_kernel/exceptions.

Invariants enforced:
    - Purity: ``as_of`` is always a parameter; no clock access.
    - Tier priority: overdue (as_of > due_date) beats extended (more than
      ``extended_after_months`` chargeable months) beats standard.
    - Accrual: ``principal * rate / 100 * max(1, months)`` with partial
      months charged in full (ceiling), rounded half-up to 2 dp.
    - Accrued interest is non-decreasing in ``as_of`` (rate tiers are
      non-decreasing, see RateSchedule).
    - Renewal ledger rows re-evaluate the tier per month: months up to the
      extended boundary at the standard rate, later months at the extended
      rate.  Each row is rounded on its own; cumulative is a running sum.

Failure modes:
    - InvalidLoanTermsError: renewal months outside 1..max, negative principal.

Usage:
    from pawn_engines.interest import InterestPolicy, PledgeTerms

    policy = InterestPolicy()
    quote = policy.renewal_quote(terms, as_of=date(2024, 8, 15), renewal_months=1,
                                 fee_policy=fees, grace_days=7)
    quote.interest_amount   # Decimal("145.00") for the 1000.00 / 2% / 2.5% case
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum

from dateutil.relativedelta import relativedelta

from pawn_engines.tracer import traced_engine
from pawn_kernel.domain.policy import HandlingFeePolicy, HandlingFeeType
from pawn_kernel.domain.values import (
    HUNDRED,
    ZERO,
    RateSchedule,
    RateType,
    round_money,
    to_decimal,
)
from pawn_kernel.exceptions import InvalidLoanTermsError
from pawn_kernel.logging_config import get_logger

logger = get_logger("engines.interest")


class MonthRounding(str, Enum):
    """How a partially elapsed month is counted."""

    CEILING = "ceiling"  # any started month is chargeable
    FLOOR = "floor"  # completed months only


def add_months(start: date, months: int) -> date:
    """Calendar month arithmetic; day clamps to the end of shorter months."""
    return start + relativedelta(months=months)


@dataclass(frozen=True)
class PledgeTerms:
    """
    The slice of a pledge the interest engine needs.

    Contract:
        Frozen; built by the service layer from the stored pledge.
    Guarantees:
        - principal is a non-negative Decimal.
        - rates are the schedule snapshotted on the pledge at creation.
        - interest_paid_months counts pledge months already settled by
          renewals; month numbers stay absolute from the pledge date.
    """

    principal: Decimal
    pledge_date: date
    due_date: date
    grace_end_date: date
    rates: RateSchedule
    extended_after_months: int = 6
    interest_paid_months: int = 0

    def __post_init__(self) -> None:
        principal = to_decimal(self.principal)
        if principal < ZERO:
            raise InvalidLoanTermsError(f"principal cannot be negative ({principal})")
        if self.interest_paid_months < 0:
            raise InvalidLoanTermsError(
                f"paid interest months cannot be negative ({self.interest_paid_months})"
            )
        object.__setattr__(self, "principal", principal)


@dataclass(frozen=True)
class EffectiveRate:
    rate_type: RateType
    percentage: Decimal


@dataclass(frozen=True)
class InterestMonth:
    """One row of the month-by-month interest ledger."""

    month_number: int
    rate_type: RateType
    interest_rate: Decimal
    interest_amount: Decimal
    cumulative_amount: Decimal


@dataclass(frozen=True)
class RenewalQuote:
    months_charged: int
    breakdown: tuple[InterestMonth, ...]
    interest_rate: Decimal
    interest_amount: Decimal
    handling_fee: Decimal
    total_payable: Decimal
    previous_due_date: date
    new_due_date: date
    new_grace_end_date: date


@dataclass(frozen=True)
class RedemptionQuote:
    principal: Decimal
    interest_months: int
    rate_type: RateType
    interest_rate: Decimal
    interest_amount: Decimal
    handling_fee: Decimal
    other_charges: Decimal
    total_payable: Decimal


class InterestPolicy:
    """
    Pure calculator for pledge interest.

    Contract:
        No I/O, fully deterministic.  Dates and rates are parameters.
    Non-goals:
        - Does not persist the renewal ledger; PledgeService writes the rows.
        - Does not decide whether a renewal is allowed by status; that is
          the lifecycle's job.
    """

    @staticmethod
    def elapsed_months(
        start: date,
        as_of: date,
        rounding: MonthRounding = MonthRounding.CEILING,
    ) -> int:
        """
        Whole calendar months from ``start`` to ``as_of``.

        A partial trailing month counts as a full month under CEILING and
        is dropped under FLOOR.  ``as_of`` on or before ``start`` is 0.
        """
        if as_of <= start:
            return 0
        delta = relativedelta(as_of, start)
        months = delta.years * 12 + delta.months
        if rounding is MonthRounding.CEILING and add_months(start, months) < as_of:
            months += 1
        return months

    def is_overdue(self, terms: PledgeTerms, as_of: date) -> bool:
        return as_of > terms.due_date

    def is_in_grace(self, terms: PledgeTerms, as_of: date) -> bool:
        """Past due but still renewable/redeemable without forfeiture."""
        return terms.due_date < as_of <= terms.grace_end_date

    def is_forfeitable(self, terms: PledgeTerms, as_of: date) -> bool:
        return as_of > terms.grace_end_date

    def effective_rate(self, terms: PledgeTerms, as_of: date) -> EffectiveRate:
        """Tier and monthly percentage in force on ``as_of``."""
        if self.is_overdue(terms, as_of):
            rate_type = RateType.OVERDUE
        elif self.elapsed_months(terms.pledge_date, as_of) > terms.extended_after_months:
            rate_type = RateType.EXTENDED
        else:
            rate_type = RateType.STANDARD
        return EffectiveRate(rate_type, terms.rates.rate_for(rate_type))

    def chargeable_months(self, terms: PledgeTerms, as_of: date) -> int:
        return max(1, self.elapsed_months(terms.pledge_date, as_of, MonthRounding.CEILING))

    @traced_engine("interest", "1.0", fingerprint_fields=("terms", "as_of"))
    def accrued_interest(self, terms: PledgeTerms, as_of: date) -> Decimal:
        """``principal * rate / 100 * max(1, months)`` at the effective rate."""
        rate = self.effective_rate(terms, as_of)
        months = self.chargeable_months(terms, as_of)
        return round_money(terms.principal * rate.percentage / HUNDRED * months)

    def interest_breakdown(
        self,
        principal: Decimal,
        rates: RateSchedule,
        months: int,
        extended_after_months: int = 6,
        first_month: int = 1,
    ) -> tuple[InterestMonth, ...]:
        """
        One ledger row per month, tier re-evaluated at each month boundary.

        Rows cover pledge months ``first_month`` .. ``first_month + months - 1``;
        the cumulative column restarts at zero for the rows returned.
        """
        principal = to_decimal(principal)
        rows: list[InterestMonth] = []
        cumulative = round_money(ZERO)
        for month in range(first_month, first_month + months):
            rate_type = (
                RateType.STANDARD if month <= extended_after_months else RateType.EXTENDED
            )
            rate = rates.rate_for(rate_type)
            amount = round_money(principal * rate / HUNDRED)
            cumulative += amount
            rows.append(InterestMonth(month, rate_type, rate, amount, cumulative))
        return tuple(rows)

    def handling_fee(self, principal: Decimal, policy: HandlingFeePolicy) -> Decimal:
        principal = to_decimal(principal)
        if not policy.enabled or principal <= policy.min_loan:
            return round_money(ZERO)
        if policy.fee_type is HandlingFeeType.PERCENTAGE:
            return round_money(max(principal * policy.value / HUNDRED, policy.minimum))
        return round_money(policy.value)

    @traced_engine("interest", "1.0", fingerprint_fields=("terms", "as_of", "renewal_months"))
    def renewal_quote(
        self,
        terms: PledgeTerms,
        as_of: date,
        renewal_months: int,
        fee_policy: HandlingFeePolicy,
        grace_days: int = 7,
        max_renewal_months: int = 6,
    ) -> RenewalQuote:
        """
        Price a renewal: interest for the completed pledge months not yet
        paid by an earlier renewal (at least one new month), ledger rows,
        fee, and the extended dates.

        Raises:
            InvalidLoanTermsError: If renewal_months is outside 1..max.
        """
        if not 1 <= renewal_months <= max_renewal_months:
            raise InvalidLoanTermsError(
                f"renewal months {renewal_months} outside 1..{max_renewal_months}"
            )

        paid = terms.interest_paid_months
        completed = self.elapsed_months(terms.pledge_date, as_of, MonthRounding.FLOOR)
        months = max(1, completed - paid)
        breakdown = self.interest_breakdown(
            terms.principal,
            terms.rates,
            months,
            terms.extended_after_months,
            first_month=paid + 1,
        )
        interest_amount = breakdown[-1].cumulative_amount
        fee = self.handling_fee(terms.principal, fee_policy)
        new_due = add_months(terms.due_date, renewal_months)

        logger.debug("renewal_quoted", extra={
            "months_charged": months,
            "interest_amount": str(interest_amount),
        })

        return RenewalQuote(
            months_charged=months,
            breakdown=breakdown,
            interest_rate=breakdown[-1].interest_rate,
            interest_amount=interest_amount,
            handling_fee=fee,
            total_payable=interest_amount + fee,
            previous_due_date=terms.due_date,
            new_due_date=new_due,
            new_grace_end_date=new_due + timedelta(days=grace_days),
        )

    @traced_engine("interest", "1.0", fingerprint_fields=("terms", "as_of", "principal"))
    def redemption_quote(
        self,
        terms: PledgeTerms,
        as_of: date,
        fee_policy: HandlingFeePolicy,
        principal: Decimal | None = None,
        other_charges: Decimal = ZERO,
    ) -> RedemptionQuote:
        """
        Price a redemption of ``principal`` (defaults to the whole principal).

        Interest accrues at the effective rate over the chargeable months
        not already settled by renewals.
        """
        amount = terms.principal if principal is None else round_money(principal)
        if amount < ZERO or amount > terms.principal:
            raise InvalidLoanTermsError(
                f"redeemed principal {amount} outside 0..{terms.principal}"
            )
        rate = self.effective_rate(terms, as_of)
        months = max(0, self.chargeable_months(terms, as_of) - terms.interest_paid_months)
        interest = round_money(amount * rate.percentage / HUNDRED * months)
        fee = self.handling_fee(amount, fee_policy)
        other = round_money(other_charges)
        return RedemptionQuote(
            principal=amount,
            interest_months=months,
            rate_type=rate.rate_type,
            interest_rate=rate.percentage,
            interest_amount=interest,
            handling_fee=fee,
            other_charges=other,
            total_payable=amount + interest + fee + other,
        )
