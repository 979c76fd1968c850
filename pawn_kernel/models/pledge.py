"""
Module: pawn_kernel.models.pledge
Responsibility: ORM persistence for pledges (loan contracts) and the items
    pawned under them.
Architecture position: Kernel > Models.  May import from db/base.py and
    pawn_kernel.domain value objects.

Invariants enforced:
    - pledge_no and receipt_no are unique (uq_pledge_no, uq_pledge_receipt_no).
    - item_no is unique (uq_pledge_item_no).
    - net_value = gross_value - total_deduction (written once by
      PledgeService from a ValuationResult).
    - Interest rates and gold prices are snapshotted on the pledge; later
      rate or price changes never alter an existing pledge.
    - Status changes only through PledgeService; terminal statuses are
      frozen by the immutability listeners.

Audit relevance:
    A pledge row is the contract of record.  Its frozen snapshots let an
    auditor recompute every figure printed on the customer's receipt.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pawn_kernel.db.base import RATE, WEIGHT, TrackedBase, UUIDString
from pawn_kernel.domain.lifecycle import ItemStatus, PledgeStatus
from pawn_kernel.domain.values import GoldPriceSnapshot, RateSchedule, deduction_from


class Pledge(TrackedBase):
    """
    A loan secured by pawned gold items.

    Contract:
        Created together with its items in one transaction; afterwards
        mutated only by lifecycle transitions.

    Guarantees:
        - outstanding_principal starts at loan_amount and only decreases
          (partial redemptions).
        - due_date/grace_end_date are replaced (not recomputed) on renewal.

    Non-goals:
        - Customer records live outside the core; customer_id and owner_id
          are opaque references.
    """

    __tablename__ = "pledges"

    __table_args__ = (
        UniqueConstraint("pledge_no", name="uq_pledge_no"),
        UniqueConstraint("receipt_no", name="uq_pledge_receipt_no"),
        Index("idx_pledge_branch_status", "branch_id", "status"),
        Index("idx_pledge_branch_date", "branch_id", "pledge_date"),
        Index("idx_pledge_due_date", "due_date"),
    )

    branch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("branches.id"),
        nullable=False,
    )

    customer_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        nullable=False,
    )

    # Item owner when different from the customer at the counter
    owner_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    pledge_no: Mapped[str] = mapped_column(String(40), nullable=False)
    receipt_no: Mapped[str] = mapped_column(String(40), nullable=False)

    # Valuation
    total_gross_weight: Mapped[Decimal] = mapped_column(WEIGHT, nullable=False)
    total_weight: Mapped[Decimal] = mapped_column(WEIGHT, nullable=False)
    gross_value: Mapped[Decimal] = mapped_column(nullable=False)
    total_deduction: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    net_value: Mapped[Decimal] = mapped_column(nullable=False)

    # Loan
    loan_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    loan_amount: Mapped[Decimal] = mapped_column(nullable=False)
    outstanding_principal: Mapped[Decimal] = mapped_column(nullable=False)
    handling_fee: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    payout_amount: Mapped[Decimal] = mapped_column(nullable=False)

    # Interest rate snapshot (monthly percentages)
    interest_rate: Mapped[Decimal] = mapped_column(RATE, nullable=False)
    interest_rate_extended: Mapped[Decimal] = mapped_column(RATE, nullable=False)
    interest_rate_overdue: Mapped[Decimal] = mapped_column(RATE, nullable=False)
    extended_after_months: Mapped[int] = mapped_column(Integer, nullable=False, default=6)

    # Dates
    pledge_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    grace_end_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Gold price snapshot: {purity_code: "price"}
    gold_prices: Mapped[dict] = mapped_column(JSON, nullable=False)
    gold_price_source: Mapped[str] = mapped_column(String(30), nullable=False, default="manual")
    gold_price_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        default=PledgeStatus.ACTIVE.value,
        nullable=False,
    )

    renewal_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # last pledge month whose interest a renewal has collected
    interest_paid_months: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    forfeited_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    forfeited_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    items: Mapped[list["PledgeItem"]] = relationship(
        back_populates="pledge",
        cascade="all, delete-orphan",
        order_by="PledgeItem.item_no",
        lazy="selectin",
    )

    renewals: Mapped[list["Renewal"]] = relationship(
        back_populates="pledge",
        order_by="Renewal.renewal_count",
    )

    redemptions: Mapped[list["Redemption"]] = relationship(
        back_populates="pledge",
        order_by="Redemption.redemption_no",
    )

    def __repr__(self) -> str:
        return f"<Pledge {self.pledge_no}: {self.status}>"

    @property
    def rate_schedule(self) -> RateSchedule:
        return RateSchedule(
            standard=self.interest_rate,
            extended=self.interest_rate_extended,
            overdue=self.interest_rate_overdue,
        )

    @property
    def price_snapshot(self) -> GoldPriceSnapshot:
        return GoldPriceSnapshot.from_dict(
            self.gold_prices,
            source=self.gold_price_source,
            price_date=self.gold_price_date,
        )

    @property
    def open_items(self) -> list["PledgeItem"]:
        """Items not yet redeemed, auctioned or cancelled."""
        return [i for i in self.items if i.status in (ItemStatus.STORED.value, ItemStatus.RELEASED.value)]


class PledgeItem(TrackedBase):
    """
    One pawned item.

    Guarantees:
        - net_weight + deducted_weight == gross_weight.
        - At most one slot at a time (slot_id); the slot holds the weak
          back-reference current_item_id.
        - redemption_id is set when a redemption releases the item.
    """

    __tablename__ = "pledge_items"

    __table_args__ = (
        UniqueConstraint("item_no", name="uq_pledge_item_no"),
        Index("idx_pledge_item_pledge", "pledge_id"),
        Index("idx_pledge_item_status", "status"),
    )

    pledge_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("pledges.id"),
        nullable=False,
    )

    # "{pledge_no}-{NN}"
    item_no: Mapped[str] = mapped_column(String(50), nullable=False)

    category: Mapped[str] = mapped_column(String(50), nullable=False)
    purity_code: Mapped[str] = mapped_column(String(10), nullable=False)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)

    gross_weight: Mapped[Decimal] = mapped_column(WEIGHT, nullable=False)
    deduction_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    deduction_value: Mapped[Decimal] = mapped_column(WEIGHT, nullable=False, default=Decimal("0"))
    deducted_weight: Mapped[Decimal] = mapped_column(WEIGHT, nullable=False, default=Decimal("0"))
    net_weight: Mapped[Decimal] = mapped_column(WEIGHT, nullable=False)

    price_per_gram: Mapped[Decimal] = mapped_column(nullable=False)
    gross_value: Mapped[Decimal] = mapped_column(nullable=False)
    deduction_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    net_value: Mapped[Decimal] = mapped_column(nullable=False)

    # Storage location
    vault_id: Mapped[UUID | None] = mapped_column(UUIDString(), ForeignKey("vaults.id"), nullable=True)
    box_id: Mapped[UUID | None] = mapped_column(UUIDString(), ForeignKey("boxes.id"), nullable=True)
    slot_id: Mapped[UUID | None] = mapped_column(UUIDString(), ForeignKey("slots.id"), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        default=ItemStatus.STORED.value,
        nullable=False,
    )

    redemption_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("redemptions.id"),
        nullable=True,
    )

    released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    released_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    pledge: Mapped["Pledge"] = relationship(back_populates="items")

    def __repr__(self) -> str:
        return f"<PledgeItem {self.item_no}: {self.status}>"

    @property
    def deduction(self):
        return deduction_from(self.deduction_type, self.deduction_value)
