"""
DayEndService -- daily branch totals, open/close and the closed-day guard.

Responsibility:
    Opens a branch's business day with a drawer balance, aggregates the
    day's pledges, renewals and redemptions, and closes the day by freezing
    those totals alongside the counted closing balance.

Architecture position:
    Kernel > Services -- imperative shell.
    PledgeService calls ``assert_day_open`` before every mutation that
    would change a day's figures.

Invariants enforced:
    - One report per (branch, date): unique constraint
      ``uq_day_end_branch_date``; a second ``open`` fails with
      DayEndConflictError instead of overwriting.
    - ``aggregate`` is a pure read; it may be called any number of times.
    - A closed report is frozen (ORM immutability listener) and its date
      rejects further mutations through ``assert_day_open``.
    - Totals use business dates (pledge_date, renewal_date,
      redemption_date), not row creation timestamps.

Failure modes:
    - DayEndConflictError: report already exists for that branch/date.
    - DayEndNotFoundError: closing or reading a day that was never opened.
    - DayEndClosedError: closing twice, or mutating a closed date.

Audit relevance:
    ``close`` records expected cash, counted cash and the variance, with
    the closing actor and time, and publishes ``day_end_closed``.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pawn_kernel.domain.clock import Clock, SystemClock
from pawn_kernel.domain.dtos import DailyTotals, DayEndInfo
from pawn_kernel.domain.lifecycle import PledgeStatus
from pawn_kernel.domain.values import ZERO, round_money, to_decimal
from pawn_kernel.exceptions import DayEndClosedError, DayEndConflictError, DayEndNotFoundError
from pawn_kernel.logging_config import get_logger
from pawn_kernel.models.day_end import DayEndReport, DayEndStatus
from pawn_kernel.models.pledge import Pledge, PledgeItem
from pawn_kernel.models.redemption import Redemption
from pawn_kernel.models.renewal import Renewal
from pawn_kernel.services.base import BaseService
from pawn_kernel.services.event_bus import EventBus, LifecycleEvent

logger = get_logger("services.day_end")


def _money(value) -> Decimal:
    if value is None:
        return ZERO
    return round_money(Decimal(str(value)))


class DayEndService(BaseService):
    """
    Day-end aggregator.

    Contract:
        ``open`` -> any number of ``aggregate`` -> ``close``.  Nothing
        else writes to a report.

    Non-goals:
        - Does NOT reconcile stock (physical item counts).
        - Does NOT reopen closed days.
    """

    MODULE = "day_end"

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        event_bus: EventBus | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._events = event_bus or EventBus()

    def open(
        self,
        branch_id: UUID,
        report_date: date,
        opening_balance: Decimal | str | int,
        actor_id: UUID,
    ) -> DayEndInfo:
        """
        Start the business day.

        Raises:
            DayEndConflictError: If a report already exists for the date.
        """
        opening = round_money(to_decimal(opening_balance))
        if self._find(branch_id, report_date) is not None:
            raise DayEndConflictError(str(branch_id), report_date)

        report = DayEndReport(
            branch_id=branch_id,
            report_date=report_date,
            status=DayEndStatus.OPEN,
            opening_balance=opening,
            opened_at=self._clock.now_utc(),
            created_by_id=actor_id,
        )
        savepoint = self.session.begin_nested()
        try:
            self.session.add(report)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.warning(
                "day_end_open_conflict",
                extra={"branch_id": str(branch_id), "report_date": report_date},
            )
            raise DayEndConflictError(str(branch_id), report_date) from None

        logger.info(
            "day_end_opened",
            extra={
                "branch_id": str(branch_id),
                "report_date": report_date,
                "opening_balance": opening,
            },
        )
        return DayEndInfo.from_model(report)

    def aggregate(self, branch_id: UUID, report_date: date) -> DailyTotals:
        """Sum the day's business for the branch.  Read-only."""
        pledge_row = self.session.execute(
            select(
                func.count(Pledge.id),
                func.coalesce(func.sum(Pledge.loan_amount), 0),
                func.coalesce(func.sum(Pledge.payout_amount), 0),
            ).where(
                Pledge.branch_id == branch_id,
                Pledge.pledge_date == report_date,
                Pledge.status != PledgeStatus.CANCELLED.value,
            )
        ).one()

        items_in = self.session.execute(
            select(func.count(PledgeItem.id))
            .join(Pledge, PledgeItem.pledge_id == Pledge.id)
            .where(
                Pledge.branch_id == branch_id,
                Pledge.pledge_date == report_date,
                Pledge.status != PledgeStatus.CANCELLED.value,
            )
        ).scalar_one()

        renewal_row = self.session.execute(
            select(
                func.count(Renewal.id),
                func.coalesce(func.sum(Renewal.total_payable), 0),
                func.coalesce(func.sum(Renewal.cash_amount), 0),
                func.coalesce(func.sum(Renewal.transfer_amount), 0),
            ).where(
                Renewal.branch_id == branch_id,
                Renewal.renewal_date == report_date,
            )
        ).one()

        redemption_row = self.session.execute(
            select(
                func.count(Redemption.id),
                func.coalesce(func.sum(Redemption.total_payable), 0),
                func.coalesce(func.sum(Redemption.cash_amount), 0),
                func.coalesce(func.sum(Redemption.transfer_amount), 0),
            ).where(
                Redemption.branch_id == branch_id,
                Redemption.redemption_date == report_date,
            )
        ).one()

        items_out = self.session.execute(
            select(func.count(PledgeItem.id))
            .join(Redemption, PledgeItem.redemption_id == Redemption.id)
            .where(
                Redemption.branch_id == branch_id,
                Redemption.redemption_date == report_date,
            )
        ).scalar_one()

        totals = DailyTotals(
            branch_id=branch_id,
            report_date=report_date,
            pledges_count=pledge_row[0],
            pledges_loan_total=_money(pledge_row[1]),
            pledges_payout_total=_money(pledge_row[2]),
            renewals_count=renewal_row[0],
            renewals_total=_money(renewal_row[1]),
            renewals_cash=_money(renewal_row[2]),
            renewals_transfer=_money(renewal_row[3]),
            redemptions_count=redemption_row[0],
            redemptions_total=_money(redemption_row[1]),
            redemptions_cash=_money(redemption_row[2]),
            redemptions_transfer=_money(redemption_row[3]),
            items_in=items_in,
            items_out=items_out,
        )
        logger.debug(
            "day_end_aggregated",
            extra={
                "branch_id": str(branch_id),
                "report_date": report_date,
                "pledges": totals.pledges_count,
                "renewals": totals.renewals_count,
                "redemptions": totals.redemptions_count,
            },
        )
        return totals

    def close(
        self,
        branch_id: UUID,
        report_date: date,
        closing_balance: Decimal | str | int,
        actor_id: UUID,
        notes: str | None = None,
    ) -> DayEndInfo:
        """
        Freeze the day's totals.

        Raises:
            DayEndNotFoundError: If the day was never opened.
            DayEndClosedError: If the day is already closed.
        """
        closing = round_money(to_decimal(closing_balance))
        report = self.session.execute(
            select(DayEndReport)
            .where(
                DayEndReport.branch_id == branch_id,
                DayEndReport.report_date == report_date,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if report is None:
            raise DayEndNotFoundError(str(branch_id), report_date)
        if report.is_closed:
            raise DayEndClosedError(str(branch_id), report_date)

        totals = self.aggregate(branch_id, report_date)
        expected = round_money(totals.expected_cash(report.opening_balance))

        report.pledges_count = totals.pledges_count
        report.pledges_loan_total = totals.pledges_loan_total
        report.pledges_payout_total = totals.pledges_payout_total
        report.renewals_count = totals.renewals_count
        report.renewals_total = totals.renewals_total
        report.renewals_cash = totals.renewals_cash
        report.renewals_transfer = totals.renewals_transfer
        report.redemptions_count = totals.redemptions_count
        report.redemptions_total = totals.redemptions_total
        report.redemptions_cash = totals.redemptions_cash
        report.redemptions_transfer = totals.redemptions_transfer
        report.items_in = totals.items_in
        report.items_out = totals.items_out
        report.closing_balance = closing
        report.expected_cash = expected
        report.variance = closing - expected
        report.notes = notes
        report.status = DayEndStatus.CLOSED
        report.closed_at = self._clock.now_utc()
        report.closed_by_id = actor_id
        report.updated_by_id = actor_id
        self.session.flush()

        log = logger.warning if report.variance != ZERO else logger.info
        log(
            "day_end_closed",
            extra={
                "branch_id": str(branch_id),
                "report_date": report_date,
                "expected_cash": expected,
                "closing_balance": closing,
                "variance": report.variance,
            },
        )
        self._events.publish(
            self.session,
            LifecycleEvent(
                action="day_end_closed",
                module=self.MODULE,
                entity_type="DayEndReport",
                entity_id=str(report.id),
                old_values={"status": DayEndStatus.OPEN},
                new_values={
                    "status": DayEndStatus.CLOSED,
                    "closing_balance": str(closing),
                    "variance": str(report.variance),
                },
                actor_id=actor_id,
                branch_id=branch_id,
            ),
        )
        return DayEndInfo.from_model(report)

    def assert_day_open(self, branch_id: UUID, business_date: date) -> None:
        """
        Guard for mutating operations.

        A date with no report yet is open.

        Raises:
            DayEndClosedError: If the date has been closed.
        """
        report = self._find(branch_id, business_date)
        if report is not None and report.is_closed:
            logger.warning(
                "day_end_closed_mutation_rejected",
                extra={"branch_id": str(branch_id), "report_date": business_date},
            )
            raise DayEndClosedError(str(branch_id), business_date)

    def get_report(self, branch_id: UUID, report_date: date) -> DayEndInfo:
        report = self._find(branch_id, report_date)
        if report is None:
            raise DayEndNotFoundError(str(branch_id), report_date)
        return DayEndInfo.from_model(report)

    def _find(self, branch_id: UUID, report_date: date) -> DayEndReport | None:
        return self.session.execute(
            select(DayEndReport).where(
                DayEndReport.branch_id == branch_id,
                DayEndReport.report_date == report_date,
            )
        ).scalar_one_or_none()
