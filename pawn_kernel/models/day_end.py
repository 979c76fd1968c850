"""
Module: pawn_kernel.models.day_end
Responsibility: ORM persistence for the daily branch closing report.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - At most one report per (branch_id, report_date) (uq_day_end_branch_date).
    - A closed report is frozen (see db/immutability.py): totals, balances
      and notes never change after close.

Failure modes:
    - IntegrityError on a concurrent second open for the same branch/date,
      mapped to DayEndConflictError by DayEndService.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pawn_kernel.db.base import TrackedBase, UUIDString


class DayEndStatus:
    OPEN = "open"
    CLOSED = "closed"


class DayEndReport(TrackedBase):
    __tablename__ = "day_end_reports"

    __table_args__ = (
        UniqueConstraint("branch_id", "report_date", name="uq_day_end_branch_date"),
    )

    branch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("branches.id"),
        nullable=False,
    )

    report_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=DayEndStatus.OPEN)

    opening_balance: Mapped[Decimal] = mapped_column(nullable=False)
    closing_balance: Mapped[Decimal | None] = mapped_column(nullable=True)
    expected_cash: Mapped[Decimal | None] = mapped_column(nullable=True)
    variance: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Frozen totals (written at close)
    pledges_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pledges_loan_total: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    pledges_payout_total: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    renewals_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    renewals_total: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    renewals_cash: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    renewals_transfer: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    redemptions_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    redemptions_total: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    redemptions_cash: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    redemptions_transfer: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    items_in: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    items_out: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    opened_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return f"<DayEndReport {self.report_date}: {self.status}>"

    @property
    def is_closed(self) -> bool:
        return self.status == DayEndStatus.CLOSED
