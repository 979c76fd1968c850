"""
Module: pawn_kernel.models.auction
Responsibility: ORM persistence for items offered at auction after a
    pledge is forfeited.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One AuctionItem per PledgeItem (uq_auction_pledge_item).
    - A sold AuctionItem always has sold_price and sold_at.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pawn_kernel.db.base import TrackedBase, UUIDString


class AuctionStatus:
    PENDING = "pending"
    SOLD = "sold"
    UNSOLD = "unsold"


class AuctionItem(TrackedBase):
    __tablename__ = "auction_items"

    __table_args__ = (
        UniqueConstraint("pledge_item_id", name="uq_auction_pledge_item"),
    )

    pledge_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("pledges.id"),
        nullable=False,
    )

    pledge_item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("pledge_items.id"),
        nullable=False,
    )

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=AuctionStatus.PENDING)

    reserve_price: Mapped[Decimal | None] = mapped_column(nullable=True)
    sold_price: Mapped[Decimal | None] = mapped_column(nullable=True)
    buyer_name: Mapped[str | None] = mapped_column(String(150), nullable=True)
    sold_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<AuctionItem item={self.pledge_item_id}: {self.status}>"
