"""
Module: pawn_kernel.models.interest_rate
Responsibility: ORM persistence for configured interest rates.  A row is
    either branch-scoped or global (branch_id NULL) and carries an
    effective date window.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - rate_type is one of standard / extended / overdue.
    - effective_to, when set, is not before effective_from (service check).

Non-goals:
    - Rows are never read directly by services; the rate selector picks
      the effective row per type and snapshots it onto each new pledge.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from pawn_kernel.db.base import RATE, TrackedBase, UUIDString


class InterestRate(TrackedBase):
    __tablename__ = "interest_rates"

    __table_args__ = (
        Index("idx_interest_rate_lookup", "rate_type", "is_active", "effective_from"),
    )

    # NULL = applies to every branch without its own row
    branch_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("branches.id"),
        nullable=True,
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    rate_type: Mapped[str] = mapped_column(String(20), nullable=False)
    rate_percentage: Mapped[Decimal] = mapped_column(RATE, nullable=False)

    # Month range the rate is meant for (informational)
    from_month: Mapped[int | None] = mapped_column(Integer, nullable=True)
    to_month: Mapped[int | None] = mapped_column(Integer, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)

    def __repr__(self) -> str:
        scope = self.branch_id or "global"
        return f"<InterestRate {self.rate_type} {self.rate_percentage}% ({scope})>"

    def is_effective(self, on_date: date) -> bool:
        if not self.is_active or on_date < self.effective_from:
            return False
        return self.effective_to is None or on_date <= self.effective_to
