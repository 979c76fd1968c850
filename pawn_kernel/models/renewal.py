"""
Module: pawn_kernel.models.renewal
Responsibility: ORM persistence for pledge renewals and their
    month-by-month interest ledger.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - renewal_no is unique (uq_renewal_no).
    - (pledge_id, renewal_count) is unique: renewals of one pledge are
      numbered 1, 2, 3 ...
    - RenewalInterestBreakdown rows are append-only (see
      db/immutability.py); interest_amount on the Renewal equals the last
      row's cumulative_amount.

Audit relevance:
    The breakdown rows are what the customer's renewal receipt prints; they
    must reproduce the charged interest exactly, month by month.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pawn_kernel.db.base import RATE, Base, TrackedBase, UUIDString


class Renewal(TrackedBase):
    """
    A renewal payment that extends a pledge's due date.

    Guarantees:
        - new_due_date = previous_due_date + renewal_months.
        - total_payable = interest_amount + handling_fee.
    """

    __tablename__ = "renewals"

    __table_args__ = (
        UniqueConstraint("renewal_no", name="uq_renewal_no"),
        UniqueConstraint("pledge_id", "renewal_count", name="uq_renewal_pledge_count"),
        Index("idx_renewal_branch_date", "branch_id", "renewal_date"),
    )

    pledge_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("pledges.id"),
        nullable=False,
    )

    branch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("branches.id"),
        nullable=False,
    )

    renewal_no: Mapped[str] = mapped_column(String(40), nullable=False)
    renewal_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Sequence within the pledge (1 for the first renewal)
    renewal_count: Mapped[int] = mapped_column(Integer, nullable=False)
    renewal_months: Mapped[int] = mapped_column(Integer, nullable=False)

    previous_due_date: Mapped[date] = mapped_column(Date, nullable=False)
    new_due_date: Mapped[date] = mapped_column(Date, nullable=False)
    new_grace_end_date: Mapped[date] = mapped_column(Date, nullable=False)

    interest_months: Mapped[int] = mapped_column(Integer, nullable=False)
    interest_rate: Mapped[Decimal] = mapped_column(RATE, nullable=False)
    interest_amount: Mapped[Decimal] = mapped_column(nullable=False)
    handling_fee: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_payable: Mapped[Decimal] = mapped_column(nullable=False)

    # Payment split
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)
    cash_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    transfer_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    reference_no: Mapped[str | None] = mapped_column(String(50), nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="completed")

    pledge: Mapped["Pledge"] = relationship(back_populates="renewals")

    breakdown: Mapped[list["RenewalInterestBreakdown"]] = relationship(
        back_populates="renewal",
        order_by="RenewalInterestBreakdown.month_number",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Renewal {self.renewal_no}: {self.total_payable}>"


class RenewalInterestBreakdown(Base):
    """
    One month of interest charged by a renewal.

    Append-only: rows are inserted with their renewal and never updated or
    deleted.
    """

    __tablename__ = "renewal_interest_breakdowns"

    __table_args__ = (
        UniqueConstraint("renewal_id", "month_number", name="uq_breakdown_renewal_month"),
    )

    renewal_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("renewals.id"),
        nullable=False,
    )

    month_number: Mapped[int] = mapped_column(Integer, nullable=False)
    rate_type: Mapped[str] = mapped_column(String(20), nullable=False)
    interest_rate: Mapped[Decimal] = mapped_column(RATE, nullable=False)
    interest_amount: Mapped[Decimal] = mapped_column(nullable=False)
    cumulative_amount: Mapped[Decimal] = mapped_column(nullable=False)

    renewal: Mapped["Renewal"] = relationship(back_populates="breakdown")

    def __repr__(self) -> str:
        return f"<RenewalInterestBreakdown month={self.month_number} {self.interest_amount}>"
