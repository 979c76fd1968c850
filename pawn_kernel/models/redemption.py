"""
Module: pawn_kernel.models.redemption
Responsibility: ORM persistence for redemptions (full or partial payoff of
    a pledge).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - redemption_no is unique (uq_redemption_no).
    - total_payable = principal_amount + interest_amount + handling_fee
      + other_charges.
    - Released items point back through PledgeItem.redemption_id.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pawn_kernel.db.base import RATE, TrackedBase, UUIDString


class Redemption(TrackedBase):
    """
    A redemption payment.

    Guarantees:
        - is_partial is True iff items remain open on the pledge afterwards.
        - redeemed_item_ids lists (as strings) every item this redemption
          released.
    """

    __tablename__ = "redemptions"

    __table_args__ = (
        UniqueConstraint("redemption_no", name="uq_redemption_no"),
        Index("idx_redemption_branch_date", "branch_id", "redemption_date"),
        Index("idx_redemption_pledge", "pledge_id"),
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

    redemption_no: Mapped[str] = mapped_column(String(40), nullable=False)
    redemption_date: Mapped[date] = mapped_column(Date, nullable=False)

    is_partial: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    redeemed_item_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    principal_amount: Mapped[Decimal] = mapped_column(nullable=False)
    interest_months: Mapped[int] = mapped_column(Integer, nullable=False)
    interest_rate: Mapped[Decimal] = mapped_column(RATE, nullable=False)
    interest_amount: Mapped[Decimal] = mapped_column(nullable=False)
    handling_fee: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    other_charges: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_payable: Mapped[Decimal] = mapped_column(nullable=False)

    # Payment split
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)
    cash_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    transfer_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    reference_no: Mapped[str | None] = mapped_column(String(50), nullable=True)

    items_released: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    released_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="completed")

    pledge: Mapped["Pledge"] = relationship(back_populates="redemptions")

    def __repr__(self) -> str:
        kind = "partial" if self.is_partial else "full"
        return f"<Redemption {self.redemption_no} ({kind}): {self.total_payable}>"
