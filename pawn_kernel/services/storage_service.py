"""
StorageService -- exclusive slot occupancy and the item location ledger.

Responsibility:
    Places pledged items into physical slots (vault -> box -> slot),
    moves them between slots and releases them, keeping three things in
    agreement: the slot's occupant, the item's location columns and the
    box's occupied count.  Every change appends an ItemLocationHistory row.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by PledgeService (create, redeem, cancel, auction) and directly
    by branch staff tooling for moves.

Invariants enforced:
    - Exclusivity: at most one item occupies a slot.  The slot row is
      locked (``SELECT ... FOR UPDATE``) and the write is a conditional
      ``UPDATE ... WHERE is_occupied = false``; a lost race surfaces as
      SlotOccupiedError, never as a double booking.
    - Box.occupied_slots moves by an in-database increment and is checked
      against the live slot count after every change.
    - A move is all-or-nothing: it runs inside a SAVEPOINT and a failed
      assignment leaves the item in its old slot.
    - The location ledger is append-only.

Failure modes:
    - SlotOccupiedError: target slot holds another item.
    - SlotNotFoundError / PledgeItemNotFoundError: unknown ids.
    - IllegalTransitionError: item is closed, or not where the caller says.
    - ConsistencyViolationError: slot and item disagree about each other,
      or (strict mode) a box count had drifted.

Audit relevance:
    ``location_history`` answers where an item was and who moved it.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from pawn_kernel.domain.clock import Clock, SystemClock
from pawn_kernel.domain.dtos import LocationEntry, SlotInfo
from pawn_kernel.domain.lifecycle import CLOSED_ITEM_STATUSES, ItemStatus, assert_item_transition
from pawn_kernel.domain.policy import StoragePolicy
from pawn_kernel.exceptions import (
    ConsistencyViolationError,
    IllegalTransitionError,
    PledgeItemNotFoundError,
    SlotNotFoundError,
    SlotOccupiedError,
)
from pawn_kernel.logging_config import get_logger
from pawn_kernel.models.pledge import PledgeItem
from pawn_kernel.models.storage import Box, ItemLocationHistory, LocationAction, Slot, Vault
from pawn_kernel.services.base import BaseService
from pawn_kernel.services.event_bus import EventBus, LifecycleEvent

logger = get_logger("services.storage")


class StorageService(BaseService):
    """
    Slot allocator.

    Contract:
        ``assign``, ``release`` and ``move`` each leave the slot, the item
        and the box count consistent, or raise and leave them untouched.

    Non-goals:
        - Does NOT change pledge status.  Item status changes other than
          released -> stored belong to PledgeService.
        - Does NOT commit.
    """

    MODULE = "storage"

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        storage_policy: StoragePolicy | None = None,
        event_bus: EventBus | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self.storage_policy = storage_policy or StoragePolicy()
        self._events = event_bus or EventBus()

    # =========================================================================
    # Layout
    # =========================================================================

    def create_vault(
        self,
        branch_id: UUID,
        code: str,
        name: str,
        actor_id: UUID,
        boxes: int | None = None,
        slots_per_box: int | None = None,
    ) -> UUID:
        """Create a vault with ``boxes`` boxes of ``slots_per_box`` empty slots."""
        boxes = boxes if boxes is not None else self.storage_policy.boxes_per_vault
        slots_per_box = slots_per_box if slots_per_box is not None else self.storage_policy.slots_per_box
        if boxes < 1 or slots_per_box < 1:
            raise ValueError("a vault needs at least one box of at least one slot")

        vault = Vault(branch_id=branch_id, code=code, name=name, created_by_id=actor_id)
        self.session.add(vault)
        self.session.flush()

        for box_number in range(1, boxes + 1):
            box = Box(
                vault_id=vault.id,
                box_number=box_number,
                total_slots=slots_per_box,
                occupied_slots=0,
                created_by_id=actor_id,
            )
            self.session.add(box)
            self.session.flush()
            self.session.add_all(
                Slot(box_id=box.id, slot_number=n, is_occupied=False)
                for n in range(1, slots_per_box + 1)
            )
        self.session.flush()

        logger.info(
            "vault_created",
            extra={
                "vault_id": str(vault.id),
                "branch_id": str(branch_id),
                "code": code,
                "boxes": boxes,
                "slots_per_box": slots_per_box,
            },
        )
        return vault.id

    # =========================================================================
    # Occupancy
    # =========================================================================

    def assign(
        self,
        item_id: UUID,
        slot_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> SlotInfo:
        """
        Put an item into an empty slot.

        Re-assigning an item to the slot it already occupies is a no-op.

        Raises:
            SlotOccupiedError: If another item holds the slot.
            IllegalTransitionError: If the item is closed or sits in a
                different slot (use ``move``).
        """
        item = self._get_item(item_id)
        slot = self._locked_slot(slot_id)

        if slot.is_occupied and slot.current_item_id == item.id:
            logger.debug(
                "slot_assign_noop",
                extra={"slot_id": str(slot_id), "item_id": str(item_id)},
            )
            return SlotInfo.from_model(slot)

        self._check_assignable(item)
        if item.slot_id is not None:
            raise IllegalTransitionError(
                str(item.id),
                item.status,
                "assign to slot",
                reason=f"item already occupies slot {item.slot_id}; use move",
            )

        self._occupy(slot, item, actor_id)
        self._append_history(
            item.id,
            LocationAction.STORED,
            actor_id,
            to_slot_id=slot.id,
            reason=reason,
        )
        self.recompute_box(slot.box_id)

        logger.info(
            "slot_assigned",
            extra={"slot_id": str(slot.id), "item_id": str(item.id)},
        )
        self._publish(
            "slot_assigned",
            item,
            actor_id,
            old_values={"slot_id": None},
            new_values={"slot_id": str(slot.id)},
        )
        return SlotInfo.from_model(slot)

    def release(
        self,
        item_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
    ) -> UUID | None:
        """
        Take an item out of its slot.

        Returns the freed slot id, or None if the item had no slot.
        """
        item = self._get_item(item_id)
        if item.slot_id is None:
            logger.debug("slot_release_noop", extra={"item_id": str(item_id)})
            return None

        slot = self._locked_slot(item.slot_id)
        self._vacate(slot, item)
        self._append_history(
            item.id,
            LocationAction.RELEASED,
            actor_id,
            from_slot_id=slot.id,
            reason=reason,
        )
        self.recompute_box(slot.box_id)

        logger.info(
            "slot_released",
            extra={"slot_id": str(slot.id), "item_id": str(item.id)},
        )
        self._publish(
            "slot_released",
            item,
            actor_id,
            old_values={"slot_id": str(slot.id)},
            new_values={"slot_id": None},
        )
        return slot.id

    def release_all(
        self,
        item_ids: list[UUID] | tuple[UUID, ...],
        actor_id: UUID,
        reason: str | None = None,
    ) -> int:
        """Release every listed item that has a slot; returns how many were freed."""
        released = 0
        for item_id in item_ids:
            if self.release(item_id, actor_id, reason=reason) is not None:
                released += 1
        return released

    def move(
        self,
        item_id: UUID,
        from_slot_id: UUID,
        to_slot_id: UUID,
        actor_id: UUID,
        reason: str,
    ) -> SlotInfo:
        """
        Move an item between slots atomically.

        Raises:
            SlotOccupiedError: If the target slot is taken; the item stays
                in ``from_slot_id``.
            IllegalTransitionError: If the item is not in ``from_slot_id``.
        """
        item = self._get_item(item_id)
        if item.slot_id != from_slot_id:
            raise IllegalTransitionError(
                str(item.id),
                item.status,
                "move",
                reason=f"item is not in slot {from_slot_id}",
            )
        if from_slot_id == to_slot_id:
            return SlotInfo.from_model(self._locked_slot(to_slot_id))
        self._check_assignable(item)

        savepoint = self.session.begin_nested()
        try:
            source = self._locked_slot(from_slot_id)
            target = self._locked_slot(to_slot_id)
            if target.is_occupied:
                raise SlotOccupiedError(str(target.id), _str_or_none(target.current_item_id))

            self._vacate(source, item)
            self._occupy(target, item, actor_id)
            self._append_history(
                item.id,
                LocationAction.MOVED,
                actor_id,
                from_slot_id=source.id,
                to_slot_id=target.id,
                reason=reason,
            )
            self.recompute_box(source.box_id)
            if target.box_id != source.box_id:
                self.recompute_box(target.box_id)
            savepoint.commit()
        except Exception:
            savepoint.rollback()
            logger.warning(
                "slot_move_rolled_back",
                extra={
                    "item_id": str(item_id),
                    "from_slot_id": str(from_slot_id),
                    "to_slot_id": str(to_slot_id),
                },
            )
            raise

        logger.info(
            "slot_moved",
            extra={
                "item_id": str(item_id),
                "from_slot_id": str(from_slot_id),
                "to_slot_id": str(to_slot_id),
            },
        )
        self._publish(
            "slot_moved",
            item,
            actor_id,
            old_values={"slot_id": str(from_slot_id)},
            new_values={"slot_id": str(to_slot_id), "reason": reason},
        )
        return SlotInfo.from_model(target)

    # =========================================================================
    # Queries and repair
    # =========================================================================

    def next_available_slot(self, branch_id: UUID) -> SlotInfo | None:
        """First free slot in the branch's active vaults and boxes."""
        slot = self.session.execute(
            select(Slot)
            .join(Box, Slot.box_id == Box.id)
            .join(Vault, Box.vault_id == Vault.id)
            .where(
                Vault.branch_id == branch_id,
                Vault.is_active.is_(True),
                Box.is_active.is_(True),
                Slot.is_occupied.is_(False),
            )
            .order_by(Vault.code, Box.box_number, Slot.slot_number)
            .limit(1)
        ).scalar_one_or_none()
        return SlotInfo.from_model(slot) if slot is not None else None

    def get_slot(self, slot_id: UUID) -> SlotInfo:
        slot = self.session.get(Slot, slot_id)
        if slot is None:
            raise SlotNotFoundError(str(slot_id))
        return SlotInfo.from_model(slot)

    def recompute_box(self, box_id: UUID, strict: bool = False) -> int:
        """
        Reset Box.occupied_slots to the live count of occupied slots.

        Drift is logged and corrected.  With ``strict=True`` the correction
        is flushed and ConsistencyViolationError raised afterwards.
        """
        box = self.session.execute(
            select(Box)
            .where(Box.id == box_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one()

        actual = self.session.execute(
            select(func.count())
            .select_from(Slot)
            .where(Slot.box_id == box_id, Slot.is_occupied.is_(True))
        ).scalar_one()

        if box.occupied_slots != actual:
            stored = box.occupied_slots
            logger.warning(
                "box_occupancy_drift",
                extra={"box_id": str(box_id), "stored": stored, "actual": actual},
            )
            box.occupied_slots = actual
            self.session.flush()
            if strict:
                raise ConsistencyViolationError(
                    "Box",
                    str(box_id),
                    f"occupied_slots was {stored}, {actual} slots are occupied",
                )
        return actual

    def location_history(self, item_id: UUID) -> tuple[LocationEntry, ...]:
        rows = self.session.execute(
            select(ItemLocationHistory)
            .where(ItemLocationHistory.pledge_item_id == item_id)
            .order_by(ItemLocationHistory.sequence)
        ).scalars().all()
        return tuple(LocationEntry.from_model(r) for r in rows)

    # =========================================================================
    # Internals
    # =========================================================================

    def _get_item(self, item_id: UUID) -> PledgeItem:
        item = self.session.get(PledgeItem, item_id)
        if item is None:
            raise PledgeItemNotFoundError(str(item_id))
        return item

    def _locked_slot(self, slot_id: UUID) -> Slot:
        slot = self.session.execute(
            select(Slot)
            .where(Slot.id == slot_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if slot is None:
            raise SlotNotFoundError(str(slot_id))
        return slot

    def _check_assignable(self, item: PledgeItem) -> None:
        if ItemStatus(item.status) in CLOSED_ITEM_STATUSES:
            raise IllegalTransitionError(
                str(item.id),
                item.status,
                "assign to slot",
                reason="item is closed",
            )

    def _occupy(self, slot: Slot, item: PledgeItem, actor_id: UUID) -> None:
        if slot.is_occupied:
            logger.warning(
                "slot_occupied",
                extra={
                    "slot_id": str(slot.id),
                    "occupant_item_id": _str_or_none(slot.current_item_id),
                    "requested_item_id": str(item.id),
                },
            )
            raise SlotOccupiedError(str(slot.id), _str_or_none(slot.current_item_id))

        result = self.session.execute(
            update(Slot)
            .where(Slot.id == slot.id, Slot.is_occupied.is_(False))
            .values(
                is_occupied=True,
                current_item_id=item.id,
                occupied_at=self._clock.now_utc(),
            )
        )
        if result.rowcount != 1:
            self.session.refresh(slot)
            raise SlotOccupiedError(str(slot.id), _str_or_none(slot.current_item_id))

        box = slot.box
        box.occupied_slots = Box.occupied_slots + 1
        item.slot_id = slot.id
        item.box_id = box.id
        item.vault_id = box.vault_id
        if ItemStatus(item.status) is ItemStatus.RELEASED:
            assert_item_transition(str(item.id), item.status, ItemStatus.STORED)
            item.status = ItemStatus.STORED.value
        item.updated_by_id = actor_id
        self.session.flush()

    def _vacate(self, slot: Slot, item: PledgeItem) -> None:
        if slot.current_item_id != item.id:
            raise ConsistencyViolationError(
                "Slot",
                str(slot.id),
                f"item {item.id} points at this slot but the slot holds "
                f"{slot.current_item_id}",
            )
        slot.is_occupied = False
        slot.current_item_id = None
        slot.occupied_at = None
        slot.box.occupied_slots = Box.occupied_slots - 1
        item.slot_id = None
        item.box_id = None
        item.vault_id = None
        self.session.flush()

    def _append_history(
        self,
        item_id: UUID,
        action: str,
        actor_id: UUID,
        from_slot_id: UUID | None = None,
        to_slot_id: UUID | None = None,
        reason: str | None = None,
    ) -> None:
        sequence = self.session.execute(
            select(func.count())
            .select_from(ItemLocationHistory)
            .where(ItemLocationHistory.pledge_item_id == item_id)
        ).scalar_one() + 1
        self.session.add(
            ItemLocationHistory(
                pledge_item_id=item_id,
                action=action,
                from_slot_id=from_slot_id,
                to_slot_id=to_slot_id,
                reason=reason,
                performed_by_id=actor_id,
                performed_at=self._clock.now_utc(),
                sequence=sequence,
            )
        )
        self.session.flush()

    def _publish(
        self,
        action: str,
        item: PledgeItem,
        actor_id: UUID,
        old_values: dict,
        new_values: dict,
    ) -> None:
        self._events.publish(
            self.session,
            LifecycleEvent(
                action=action,
                module=self.MODULE,
                entity_type="PledgeItem",
                entity_id=str(item.id),
                old_values=old_values,
                new_values=new_values,
                actor_id=actor_id,
            ),
        )


def _str_or_none(value) -> str | None:
    return str(value) if value is not None else None
