"""
Tests for RateSelector and GoldPriceSelector.
"""

from datetime import date
from decimal import Decimal

import pytest

from pawn_kernel.domain.values import RateSchedule, RateType
from pawn_kernel.exceptions import GoldPriceNotFoundError, InvalidLoanTermsError
from pawn_kernel.models.gold_price import GoldPrice
from pawn_kernel.models.interest_rate import InterestRate
from pawn_kernel.selectors.gold_price_selector import GoldPriceSelector
from pawn_kernel.selectors.rate_selector import RateSelector

AS_OF = date(2024, 3, 1)


@pytest.fixture
def add_rate(session, test_actor_id):
    def _add(rate_type, pct, effective_from=date(2024, 1, 1), branch_id=None, **kwargs):
        row = InterestRate(
            branch_id=branch_id,
            name=f"{rate_type} {pct}",
            rate_type=rate_type,
            rate_percentage=Decimal(pct),
            effective_from=effective_from,
            created_by_id=test_actor_id,
            **kwargs,
        )
        session.add(row)
        session.flush()
        return row

    return _add


@pytest.fixture
def add_price(session, test_actor_id):
    def _add(price_date, prices, branch_id=None, source="manual"):
        row = GoldPrice(
            branch_id=branch_id,
            price_date=price_date,
            prices=prices,
            source=source,
            created_by_id=test_actor_id,
        )
        session.add(row)
        session.flush()
        return row

    return _add


class TestRateSelector:

    def test_defaults_when_table_empty(self, session, branch, rates):
        assert RateSelector(session).rate_schedule(branch.id, AS_OF, rates) == rates

    def test_table_overrides_per_type(self, session, branch, rates, add_rate):
        add_rate("standard", "1.5")

        schedule = RateSelector(session).rate_schedule(branch.id, AS_OF, rates)

        assert schedule.standard == Decimal("1.5")
        assert schedule.extended == rates.extended

    def test_branch_row_beats_global(self, session, branch, rates, add_rate):
        add_rate("standard", "1.5", effective_from=date(2024, 2, 1))
        add_rate("standard", "1.0", effective_from=date(2023, 1, 1), branch_id=branch.id)

        rows = RateSelector(session).effective_rows(branch.id, AS_OF)

        assert rows[RateType.STANDARD].rate_percentage == Decimal("1.0")

    def test_latest_effective_from_wins(self, session, branch, rates, add_rate):
        add_rate("overdue", "3.5", effective_from=date(2024, 1, 1))
        add_rate("overdue", "4.0", effective_from=date(2024, 2, 1))

        assert RateSelector(session).rate_schedule(branch.id, AS_OF, rates).overdue == Decimal("4.0")

    def test_window_and_active_flag_respected(self, session, branch, rates, add_rate):
        add_rate("standard", "1.1", effective_to=date(2024, 2, 1))
        add_rate("standard", "1.2", is_active=False)
        add_rate("standard", "1.3", effective_from=date(2024, 4, 1))

        assert RateSelector(session).effective_rows(branch.id, AS_OF) == {}

    def test_other_branch_rows_ignored(self, session, branch, other_branch, rates, add_rate):
        add_rate("standard", "0.9", branch_id=other_branch.id)

        assert RateSelector(session).rate_schedule(branch.id, AS_OF, rates).standard == rates.standard

    def test_decreasing_table_refused(self, session, branch, add_rate):
        add_rate("overdue", "1.0")
        defaults = RateSchedule(Decimal("2.0"), Decimal("2.5"), Decimal("3.0"))

        with pytest.raises(InvalidLoanTermsError):
            RateSelector(session).rate_schedule(branch.id, AS_OF, defaults)


class TestGoldPriceSelector:

    def test_latest_on_or_before(self, session, branch, add_price):
        add_price(date(2024, 2, 1), {"999": "120.00"})
        add_price(date(2024, 2, 20), {"999": "124.00"}, source="feed")
        add_price(date(2024, 3, 5), {"999": "130.00"})

        snapshot = GoldPriceSelector(session).latest_snapshot(branch.id, AS_OF)

        assert snapshot.price_for("999") == Decimal("124.00")
        assert snapshot.source == "feed"
        assert snapshot.price_date == date(2024, 2, 20)

    def test_branch_row_beats_global_on_same_date(self, session, branch, add_price):
        add_price(date(2024, 2, 20), {"999": "124.00"})
        add_price(date(2024, 2, 20), {"999": "126.00"}, branch_id=branch.id)

        snapshot = GoldPriceSelector(session).latest_snapshot(branch.id, AS_OF)

        assert snapshot.price_for("999") == Decimal("126.00")

    def test_newer_global_beats_older_branch_row(self, session, branch, add_price):
        add_price(date(2024, 2, 1), {"999": "126.00"}, branch_id=branch.id)
        add_price(date(2024, 2, 20), {"999": "124.00"})

        snapshot = GoldPriceSelector(session).latest_snapshot(branch.id, AS_OF)

        assert snapshot.price_for("999") == Decimal("124.00")

    def test_none_recorded(self, session, branch, other_branch, add_price):
        add_price(date(2024, 2, 1), {"999": "126.00"}, branch_id=other_branch.id)

        with pytest.raises(GoldPriceNotFoundError):
            GoldPriceSelector(session).latest_snapshot(branch.id, AS_OF)
