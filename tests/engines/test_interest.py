"""
Tests for InterestPolicy.

Covers:
- Calendar month counting (ceiling for accrual, floor for renewal)
- Tier selection (standard / extended / overdue)
- Accrual, renewal ledger and redemption pricing
- Handling fee rules
- Grace and forfeiture boundaries
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from pawn_engines.interest import InterestPolicy, MonthRounding, PledgeTerms, add_months
from pawn_kernel.domain.policy import HandlingFeePolicy, HandlingFeeType
from pawn_kernel.domain.values import RateSchedule, RateType
from pawn_kernel.exceptions import InvalidLoanTermsError

RATES = RateSchedule(standard=Decimal("2.0"), extended=Decimal("2.5"), overdue=Decimal("3.0"))
FEES = HandlingFeePolicy(value=Decimal("0.50"), min_loan=Decimal("10.00"))


def make_terms(
    principal: str = "1000.00",
    pledge_date: date = date(2024, 1, 15),
    due_date: date = date(2024, 7, 15),
    grace_days: int = 7,
    paid_months: int = 0,
) -> PledgeTerms:
    return PledgeTerms(
        principal=Decimal(principal),
        pledge_date=pledge_date,
        due_date=due_date,
        grace_end_date=due_date + timedelta(days=grace_days),
        rates=RATES,
        extended_after_months=6,
        interest_paid_months=paid_months,
    )


class TestMonthCounting:

    @pytest.mark.parametrize(
        "as_of, expected",
        [
            (date(2024, 1, 15), 0),
            (date(2024, 1, 16), 1),
            (date(2024, 2, 15), 1),
            (date(2024, 2, 16), 2),
            (date(2024, 8, 15), 7),
        ],
    )
    def test_ceiling(self, as_of, expected):
        assert InterestPolicy.elapsed_months(date(2024, 1, 15), as_of) == expected

    @pytest.mark.parametrize(
        "as_of, expected",
        [
            (date(2024, 2, 14), 0),
            (date(2024, 2, 15), 1),
            (date(2024, 8, 14), 6),
            (date(2024, 8, 15), 7),
        ],
    )
    def test_floor(self, as_of, expected):
        assert InterestPolicy.elapsed_months(
            date(2024, 1, 15), as_of, MonthRounding.FLOOR
        ) == expected

    def test_before_start_is_zero(self):
        assert InterestPolicy.elapsed_months(date(2024, 3, 1), date(2024, 2, 1)) == 0

    def test_add_months_clamps_to_month_end(self):
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2023, 8, 31), 6) == date(2024, 2, 29)


class TestEffectiveRate:

    def setup_method(self):
        self.policy = InterestPolicy()

    def test_standard_within_term(self):
        rate = self.policy.effective_rate(make_terms(), date(2024, 3, 1))
        assert rate.rate_type is RateType.STANDARD
        assert rate.percentage == Decimal("2.0")

    def test_due_date_itself_is_not_overdue(self):
        rate = self.policy.effective_rate(make_terms(), date(2024, 7, 15))
        assert rate.rate_type is RateType.STANDARD

    def test_overdue_after_due_date(self):
        rate = self.policy.effective_rate(make_terms(), date(2024, 7, 16))
        assert rate.rate_type is RateType.OVERDUE
        assert rate.percentage == Decimal("3.0")

    def test_extended_after_six_months_when_not_due(self):
        terms = make_terms(due_date=date(2024, 12, 15))
        rate = self.policy.effective_rate(terms, date(2024, 8, 1))
        assert rate.rate_type is RateType.EXTENDED
        assert rate.percentage == Decimal("2.5")


class TestAccrual:

    def setup_method(self):
        self.policy = InterestPolicy()

    def test_minimum_one_month(self):
        assert self.policy.accrued_interest(make_terms(), date(2024, 1, 15)) == Decimal("20.00")

    def test_partial_month_charged_in_full(self):
        # 15 Jan -> 10 Mar is one month and 24 days: two months at 2%
        assert self.policy.accrued_interest(make_terms(), date(2024, 3, 10)) == Decimal("40.00")

    def test_overdue_rate_applies_to_all_months(self):
        # seven chargeable months at the overdue 3%
        assert self.policy.accrued_interest(make_terms(), date(2024, 7, 16)) == Decimal("210.00")

    def test_rounding_half_up(self):
        terms = make_terms(principal="333.33")
        # 333.33 * 2% = 6.6666
        assert self.policy.accrued_interest(terms, date(2024, 2, 1)) == Decimal("6.67")


class TestRenewalQuote:

    def setup_method(self):
        self.policy = InterestPolicy()

    def test_seven_months_standard_then_extended(self):
        """1000.00 renewed seven months in: six months at 2%, one at 2.5%."""
        quote = self.policy.renewal_quote(
            make_terms(), date(2024, 8, 15), renewal_months=1, fee_policy=FEES, grace_days=7
        )

        assert quote.months_charged == 7
        assert quote.interest_amount == Decimal("145.00")
        assert quote.handling_fee == Decimal("0.50")
        assert quote.total_payable == Decimal("145.50")
        assert quote.interest_rate == Decimal("2.5")
        assert quote.previous_due_date == date(2024, 7, 15)
        assert quote.new_due_date == date(2024, 8, 15)
        assert quote.new_grace_end_date == date(2024, 8, 22)

        assert [row.rate_type for row in quote.breakdown] == [RateType.STANDARD] * 6 + [RateType.EXTENDED]
        assert [row.interest_amount for row in quote.breakdown] == [Decimal("20.00")] * 6 + [Decimal("25.00")]
        assert quote.breakdown[-1].cumulative_amount == Decimal("145.00")

    def test_renewal_within_first_month_charges_one_month(self):
        quote = self.policy.renewal_quote(
            make_terms(), date(2024, 1, 20), renewal_months=3, fee_policy=FEES
        )

        assert quote.months_charged == 1
        assert quote.interest_amount == Decimal("20.00")
        assert quote.new_due_date == date(2024, 10, 15)

    @pytest.mark.parametrize("months", [0, 7, -1])
    def test_renewal_months_out_of_range(self, months):
        with pytest.raises(InvalidLoanTermsError):
            self.policy.renewal_quote(make_terms(), date(2024, 3, 1), months, FEES)

    def test_breakdown_rows_rounded_individually(self):
        rows = self.policy.interest_breakdown(Decimal("333.33"), RATES, 3)

        assert [r.interest_amount for r in rows] == [Decimal("6.67")] * 3
        assert rows[-1].cumulative_amount == Decimal("20.01")

    def test_paid_months_not_billed_again(self):
        quote = self.policy.renewal_quote(
            make_terms(paid_months=5), date(2024, 9, 16), renewal_months=1, fee_policy=FEES
        )

        assert quote.months_charged == 3
        assert [row.month_number for row in quote.breakdown] == [6, 7, 8]
        assert [row.rate_type for row in quote.breakdown] == [
            RateType.STANDARD, RateType.EXTENDED, RateType.EXTENDED,
        ]
        assert quote.interest_amount == Decimal("70.00")

    def test_nothing_new_completed_still_bills_next_month(self):
        quote = self.policy.renewal_quote(
            make_terms(paid_months=2), date(2024, 3, 20), renewal_months=1, fee_policy=FEES
        )

        assert [row.month_number for row in quote.breakdown] == [3]
        assert quote.interest_amount == Decimal("20.00")

    def test_breakdown_from_later_month(self):
        rows = self.policy.interest_breakdown(Decimal("1000.00"), RATES, 2, first_month=6)

        assert [r.month_number for r in rows] == [6, 7]
        assert [r.cumulative_amount for r in rows] == [Decimal("20.00"), Decimal("45.00")]

    def test_negative_paid_months_rejected(self):
        with pytest.raises(InvalidLoanTermsError):
            make_terms(paid_months=-1)


class TestRedemptionQuote:

    def setup_method(self):
        self.policy = InterestPolicy()

    def test_full_redemption(self):
        quote = self.policy.redemption_quote(make_terms(), date(2024, 3, 10), FEES)

        assert quote.principal == Decimal("1000.00")
        assert quote.interest_months == 2
        assert quote.rate_type is RateType.STANDARD
        assert quote.interest_amount == Decimal("40.00")
        assert quote.total_payable == Decimal("1040.50")

    def test_partial_principal_and_other_charges(self):
        quote = self.policy.redemption_quote(
            make_terms(),
            date(2024, 2, 10),
            FEES,
            principal=Decimal("600.00"),
            other_charges=Decimal("5"),
        )

        assert quote.interest_amount == Decimal("12.00")
        assert quote.other_charges == Decimal("5.00")
        assert quote.total_payable == Decimal("617.50")

    def test_principal_above_outstanding_rejected(self):
        with pytest.raises(InvalidLoanTermsError):
            self.policy.redemption_quote(
                make_terms(), date(2024, 2, 10), FEES, principal=Decimal("1000.01")
            )

    def test_months_settled_by_renewal_skipped(self):
        quote = self.policy.redemption_quote(make_terms(paid_months=2), date(2024, 4, 10), FEES)

        assert quote.interest_months == 1
        assert quote.interest_amount == Decimal("20.00")
        assert quote.total_payable == Decimal("1020.50")

    def test_fully_settled_months_bill_no_interest(self):
        quote = self.policy.redemption_quote(make_terms(paid_months=3), date(2024, 4, 10), FEES)

        assert quote.interest_months == 0
        assert quote.interest_amount == Decimal("0.00")
        assert quote.total_payable == Decimal("1000.50")


class TestHandlingFee:

    def setup_method(self):
        self.policy = InterestPolicy()

    def test_fixed(self):
        assert self.policy.handling_fee(Decimal("1000"), FEES) == Decimal("0.50")

    def test_not_charged_at_or_below_min_loan(self):
        assert self.policy.handling_fee(Decimal("10.00"), FEES) == Decimal("0.00")

    def test_disabled(self):
        fees = HandlingFeePolicy(value=Decimal("0.50"), enabled=False)
        assert self.policy.handling_fee(Decimal("1000"), fees) == Decimal("0.00")

    def test_percentage_with_minimum(self):
        fees = HandlingFeePolicy(
            fee_type=HandlingFeeType.PERCENTAGE, value=Decimal("1"), minimum=Decimal("5")
        )
        assert self.policy.handling_fee(Decimal("100"), fees) == Decimal("5.00")
        assert self.policy.handling_fee(Decimal("1234.56"), fees) == Decimal("12.35")


class TestGraceAndForfeiture:

    def setup_method(self):
        self.policy = InterestPolicy()
        self.terms = make_terms()

    def test_boundaries(self):
        assert not self.policy.is_overdue(self.terms, date(2024, 7, 15))
        assert self.policy.is_in_grace(self.terms, date(2024, 7, 16))
        assert self.policy.is_in_grace(self.terms, date(2024, 7, 22))
        assert not self.policy.is_forfeitable(self.terms, date(2024, 7, 22))
        assert self.policy.is_forfeitable(self.terms, date(2024, 7, 23))
        assert not self.policy.is_in_grace(self.terms, date(2024, 7, 23))


class TestInterestProperties:
    """Property-based checks over arbitrary dates and principals."""

    @settings(max_examples=200, deadline=None)
    @given(
        principal=st.decimals(min_value=Decimal("1"), max_value=Decimal("500000"), places=2),
        term_months=st.integers(min_value=1, max_value=18),
        first=st.integers(min_value=0, max_value=900),
        gap=st.integers(min_value=0, max_value=400),
    )
    def test_accrued_interest_never_decreases(self, principal, term_months, first, gap):
        pledge_date = date(2024, 1, 31)
        terms = make_terms(
            principal=str(principal),
            pledge_date=pledge_date,
            due_date=add_months(pledge_date, term_months),
        )
        policy = InterestPolicy()
        earlier = pledge_date + timedelta(days=first)
        later = earlier + timedelta(days=gap)

        assert policy.accrued_interest(terms, earlier) <= policy.accrued_interest(terms, later)

    @settings(max_examples=100, deadline=None)
    @given(
        principal=st.decimals(min_value=Decimal("0.01"), max_value=Decimal("100000"), places=2),
        months=st.integers(min_value=1, max_value=36),
    )
    def test_breakdown_is_a_running_sum(self, principal, months):
        rows = InterestPolicy().interest_breakdown(principal, RATES, months, 6)

        assert len(rows) == months
        running = Decimal("0")
        for row in rows:
            running += row.interest_amount
            assert row.cumulative_amount == running
            expected = RateType.STANDARD if row.month_number <= 6 else RateType.EXTENDED
            assert row.rate_type is expected
