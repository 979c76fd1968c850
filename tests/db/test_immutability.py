"""
Tests for ORM-level immutability enforcement.

Append-only ledgers reject every update and delete; closed day-end
reports and terminal pledges reject content changes.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from pawn_kernel.domain.values import PaymentSplit
from pawn_kernel.exceptions import ImmutabilityViolationError
from pawn_kernel.models.day_end import DayEndReport
from pawn_kernel.models.pledge import Pledge
from pawn_kernel.models.renewal import RenewalInterestBreakdown
from pawn_kernel.models.storage import ItemLocationHistory

PLEDGE_DATE = date(2024, 1, 15)


@pytest.fixture
def history_row(session, make_pledge, gold_item, slots):
    make_pledge(items=[gold_item(slot_id=slots[0].id)])
    return session.execute(select(ItemLocationHistory)).scalars().first()


@pytest.fixture
def redeemed_pledge(session, pledge_service, make_pledge, test_actor_id):
    pledge = make_pledge()
    pledge_service.redeem(pledge.id, PaymentSplit(cash=Decimal("5000")), test_actor_id, date(2024, 2, 1))
    return session.get(Pledge, pledge.id)


class TestLocationHistory:

    def test_update_blocked(self, session, history_row):
        history_row.reason = "rewritten"

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()

        assert exc_info.value.entity_type == "ItemLocationHistory"

    def test_delete_blocked(self, session, history_row):
        session.delete(history_row)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestInterestBreakdown:

    @pytest.fixture
    def breakdown_row(self, session, pledge_service, make_pledge, test_actor_id):
        pledge = make_pledge()
        pledge_service.renew(pledge.id, 1, PaymentSplit(cash=Decimal("100")), test_actor_id, date(2024, 2, 1))
        return session.execute(select(RenewalInterestBreakdown)).scalars().first()

    def test_update_blocked(self, session, breakdown_row):
        breakdown_row.interest_amount = Decimal("0.01")

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_delete_blocked(self, session, breakdown_row):
        session.delete(breakdown_row)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestDayEndReport:

    def _report(self, session, branch) -> DayEndReport:
        return session.execute(
            select(DayEndReport).where(DayEndReport.branch_id == branch.id)
        ).scalar_one()

    def test_open_report_can_change(self, session, pledge_service, branch, test_actor_id):
        pledge_service.day_end.open(branch.id, PLEDGE_DATE, "5000", test_actor_id)
        report = self._report(session, branch)

        report.notes = "float topped up"
        session.flush()

    def test_closed_report_frozen(self, session, pledge_service, branch, test_actor_id):
        pledge_service.day_end.open(branch.id, PLEDGE_DATE, "5000", test_actor_id)
        pledge_service.day_end.close(branch.id, PLEDGE_DATE, "5000", test_actor_id)
        report = self._report(session, branch)

        report.closing_balance = Decimal("9999.00")

        with pytest.raises(ImmutabilityViolationError, match="closing_balance"):
            session.flush()

    def test_closed_report_cannot_be_deleted(self, session, pledge_service, branch, test_actor_id):
        pledge_service.day_end.open(branch.id, PLEDGE_DATE, "5000", test_actor_id)
        pledge_service.day_end.close(branch.id, PLEDGE_DATE, "5000", test_actor_id)

        session.delete(self._report(session, branch))

        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestPledge:

    def test_live_pledge_can_change(self, session, make_pledge):
        pledge = session.get(Pledge, make_pledge().id)

        pledge.owner_id = pledge.customer_id
        session.flush()

    def test_terminal_pledge_frozen(self, session, redeemed_pledge):
        redeemed_pledge.status = "active"

        with pytest.raises(ImmutabilityViolationError, match="redeemed"):
            session.flush()

    def test_terminal_pledge_audit_fields_may_change(self, session, redeemed_pledge):
        redeemed_pledge.updated_by_id = uuid4()
        session.flush()

    def test_pledge_delete_always_blocked(self, session, make_pledge):
        pledge = session.get(Pledge, make_pledge().id)

        session.delete(pledge)

        with pytest.raises(ImmutabilityViolationError, match="cancel instead"):
            session.flush()
