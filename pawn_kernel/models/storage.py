"""
Module: pawn_kernel.models.storage
Responsibility: ORM persistence for the physical storage hierarchy
    (Vault 1--* Box 1--* Slot) and the append-only item location ledger.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Slot numbers are unique within a box, box numbers within a vault,
      vault codes within a branch.
    - A slot references at most one item (current_item_id) and an item sits
      in at most one slot (uq_slot_current_item; NULLs do not collide).
    - Box.occupied_slots equals the live count of its occupied slots; the
      StorageService checks it against the slots on every change.
    - ItemLocationHistory rows are append-only (see db/immutability.py).

Audit relevance:
    The location ledger answers "where was this item, and who moved it"
    for every pledged item at any point in time.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pawn_kernel.db.base import Base, TrackedBase, UUIDString


class LocationAction:
    STORED = "stored"
    MOVED = "moved"
    RELEASED = "released"


class Vault(TrackedBase):
    __tablename__ = "vaults"

    __table_args__ = (
        UniqueConstraint("branch_id", "code", name="uq_vault_branch_code"),
    )

    branch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("branches.id"),
        nullable=False,
    )

    code: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    boxes: Mapped[list["Box"]] = relationship(
        back_populates="vault",
        order_by="Box.box_number",
    )

    def __repr__(self) -> str:
        return f"<Vault {self.code}>"


class Box(TrackedBase):
    """
    A box of slots inside a vault.

    occupied_slots is a denormalized count maintained by StorageService;
    the slots themselves are the source of truth.
    """

    __tablename__ = "boxes"

    __table_args__ = (
        UniqueConstraint("vault_id", "box_number", name="uq_box_vault_number"),
    )

    vault_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("vaults.id"),
        nullable=False,
    )

    box_number: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    total_slots: Mapped[int] = mapped_column(Integer, nullable=False)
    occupied_slots: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    vault: Mapped["Vault"] = relationship(back_populates="boxes")

    slots: Mapped[list["Slot"]] = relationship(
        back_populates="box",
        order_by="Slot.slot_number",
    )

    def __repr__(self) -> str:
        return f"<Box {self.box_number}: {self.occupied_slots}/{self.total_slots}>"


class Slot(Base):
    """
    Smallest storage unit: holds at most one item.

    current_item_id is a weak reference to the PledgeItem (no ownership,
    no foreign key) so that slot rows never block item history.
    """

    __tablename__ = "slots"

    __table_args__ = (
        UniqueConstraint("box_id", "slot_number", name="uq_slot_box_number"),
        Index("uq_slot_current_item", "current_item_id", unique=True),
        Index("idx_slot_box_occupied", "box_id", "is_occupied"),
    )

    box_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("boxes.id"),
        nullable=False,
    )

    slot_number: Mapped[int] = mapped_column(Integer, nullable=False)
    is_occupied: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    current_item_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    occupied_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    box: Mapped["Box"] = relationship(back_populates="slots")

    def __repr__(self) -> str:
        state = f"item={self.current_item_id}" if self.is_occupied else "free"
        return f"<Slot {self.slot_number}: {state}>"


class ItemLocationHistory(Base):
    """Append-only record of a slot assignment, move or release."""

    __tablename__ = "item_location_history"

    __table_args__ = (
        Index("idx_location_history_item", "pledge_item_id", "performed_at"),
    )

    pledge_item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("pledge_items.id"),
        nullable=False,
    )

    # stored | moved | released
    action: Mapped[str] = mapped_column(String(20), nullable=False)

    from_slot_id: Mapped[UUID | None] = mapped_column(UUIDString(), ForeignKey("slots.id"), nullable=True)
    to_slot_id: Mapped[UUID | None] = mapped_column(UUIDString(), ForeignKey("slots.id"), nullable=True)

    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    performed_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    performed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Insertion order within one timestamp
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<ItemLocationHistory {self.action} item={self.pledge_item_id}>"
