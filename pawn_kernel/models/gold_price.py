"""
Module: pawn_kernel.models.gold_price
Responsibility: ORM persistence for daily gold price snapshots supplied by
    the external price source (API, cache or manual entry).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Pledges copy the snapshot they were priced with; a GoldPrice row is
      never referenced by a pledge, so corrections never rewrite history.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import JSON, Date, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from pawn_kernel.db.base import TrackedBase, UUIDString
from pawn_kernel.domain.values import GoldPriceSnapshot


class GoldPrice(TrackedBase):
    __tablename__ = "gold_prices"

    __table_args__ = (
        Index("idx_gold_price_branch_date", "branch_id", "price_date"),
    )

    # NULL = price applies to every branch
    branch_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("branches.id"),
        nullable=True,
    )

    price_date: Mapped[date] = mapped_column(Date, nullable=False)

    # {purity_code: "price per gram"}
    prices: Mapped[dict] = mapped_column(JSON, nullable=False)

    # primary | secondary | manual
    source: Mapped[str] = mapped_column(String(30), nullable=False, default="manual")

    def __repr__(self) -> str:
        return f"<GoldPrice {self.price_date} ({self.source})>"

    def to_snapshot(self) -> GoldPriceSnapshot:
        return GoldPriceSnapshot.from_dict(
            self.prices, source=self.source, price_date=self.price_date
        )
