"""
Pledge lifecycle rules (``pawn_kernel.domain.lifecycle``).

Responsibility
--------------
Pure state-machine definitions for a Pledge and its PledgeItems: the
legal transitions, terminal states, and the cross-entity rule that ties
item statuses to the owning pledge's status.  PledgeService consults
these before it writes anything.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* ``redeemed``, ``auctioned`` and ``cancelled`` are terminal for a pledge.
* A pledge is closed iff every item is in ``{redeemed, auctioned,
  cancelled}``; a closed pledge never has an item ``stored``.
* ``renewed`` is recorded on the Renewal; the pledge itself returns to
  ``active``.  A stored ``renewed`` status (legacy data) behaves like
  ``active``.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from pawn_kernel.exceptions import ConsistencyViolationError, IllegalTransitionError


class PledgeStatus(str, Enum):
    ACTIVE = "active"
    RENEWED = "renewed"
    OVERDUE = "overdue"
    REDEEMED = "redeemed"
    FORFEITED = "forfeited"
    AUCTIONED = "auctioned"
    CANCELLED = "cancelled"


class ItemStatus(str, Enum):
    STORED = "stored"
    RELEASED = "released"
    REDEEMED = "redeemed"
    AUCTIONED = "auctioned"
    CANCELLED = "cancelled"


class PledgeAction(str, Enum):
    RENEW = "renew"
    REDEEM = "redeem"
    REDEEM_PARTIAL = "redeem_partial"
    MARK_OVERDUE = "mark_overdue"
    FORFEIT = "forfeit"
    AUCTION_SALE = "auction_sale"
    AUCTION_FINAL_SALE = "auction_final_sale"
    CANCEL = "cancel"


TERMINAL_PLEDGE_STATUSES: frozenset[PledgeStatus] = frozenset({
    PledgeStatus.REDEEMED,
    PledgeStatus.AUCTIONED,
    PledgeStatus.CANCELLED,
})

CLOSED_ITEM_STATUSES: frozenset[ItemStatus] = frozenset({
    ItemStatus.REDEEMED,
    ItemStatus.AUCTIONED,
    ItemStatus.CANCELLED,
})

# Statuses from which the pledge can still be renewed or redeemed.
LIVE_PLEDGE_STATUSES: frozenset[PledgeStatus] = frozenset({
    PledgeStatus.ACTIVE,
    PledgeStatus.RENEWED,
    PledgeStatus.OVERDUE,
})


@dataclass(frozen=True)
class Transition:
    """A legal pledge status change.

    Contract: frozen.  ``to_state`` equal to ``from_state`` is a legal
    self-transition (partial redemption, partial auction sale).
    """
    from_state: PledgeStatus
    to_state: PledgeStatus
    action: PledgeAction


def _live(action: PledgeAction, to_state: PledgeStatus | None = None) -> tuple[Transition, ...]:
    return tuple(
        Transition(state, to_state or state, action)
        for state in (PledgeStatus.ACTIVE, PledgeStatus.RENEWED, PledgeStatus.OVERDUE)
    )


PLEDGE_TRANSITIONS: tuple[Transition, ...] = (
    *_live(PledgeAction.RENEW, PledgeStatus.ACTIVE),
    *_live(PledgeAction.REDEEM, PledgeStatus.REDEEMED),
    *_live(PledgeAction.REDEEM_PARTIAL),
    Transition(PledgeStatus.ACTIVE, PledgeStatus.OVERDUE, PledgeAction.MARK_OVERDUE),
    Transition(PledgeStatus.RENEWED, PledgeStatus.OVERDUE, PledgeAction.MARK_OVERDUE),
    *_live(PledgeAction.FORFEIT, PledgeStatus.FORFEITED),
    Transition(PledgeStatus.FORFEITED, PledgeStatus.FORFEITED, PledgeAction.AUCTION_SALE),
    Transition(PledgeStatus.FORFEITED, PledgeStatus.AUCTIONED, PledgeAction.AUCTION_FINAL_SALE),
    *_live(PledgeAction.CANCEL, PledgeStatus.CANCELLED),
    Transition(PledgeStatus.FORFEITED, PledgeStatus.CANCELLED, PledgeAction.CANCEL),
)

_TRANSITION_INDEX: dict[tuple[PledgeStatus, PledgeAction], Transition] = {
    (t.from_state, t.action): t for t in PLEDGE_TRANSITIONS
}

ITEM_TRANSITIONS: dict[ItemStatus, frozenset[ItemStatus]] = {
    ItemStatus.STORED: frozenset({
        ItemStatus.RELEASED,
        ItemStatus.REDEEMED,
        ItemStatus.AUCTIONED,
        ItemStatus.CANCELLED,
    }),
    ItemStatus.RELEASED: frozenset({
        ItemStatus.STORED,
        ItemStatus.REDEEMED,
        ItemStatus.AUCTIONED,
        ItemStatus.CANCELLED,
    }),
    ItemStatus.REDEEMED: frozenset(),
    ItemStatus.AUCTIONED: frozenset(),
    ItemStatus.CANCELLED: frozenset(),
}


def is_terminal(status: PledgeStatus | str) -> bool:
    return PledgeStatus(status) in TERMINAL_PLEDGE_STATUSES


def resolve_transition(
    entity_id: str,
    status: PledgeStatus | str,
    action: PledgeAction,
) -> Transition:
    """Return the transition for ``action`` from ``status``.

    Raises:
        IllegalTransitionError: If no such transition exists.
    """
    current = PledgeStatus(status)
    transition = _TRANSITION_INDEX.get((current, action))
    if transition is None:
        reason = "status is terminal" if current in TERMINAL_PLEDGE_STATUSES else None
        raise IllegalTransitionError(entity_id, current.value, action.value, reason)
    return transition


def assert_item_transition(
    item_id: str,
    current: ItemStatus | str,
    target: ItemStatus | str,
) -> None:
    current_status = ItemStatus(current)
    target_status = ItemStatus(target)
    if target_status not in ITEM_TRANSITIONS[current_status]:
        raise IllegalTransitionError(
            item_id, current_status.value, f"move item to {target_status.value}"
        )


def all_items_closed(item_statuses: Iterable[ItemStatus | str]) -> bool:
    """True iff every item is redeemed, auctioned or cancelled."""
    statuses = [ItemStatus(s) for s in item_statuses]
    return bool(statuses) and all(s in CLOSED_ITEM_STATUSES for s in statuses)


def check_item_consistency(
    pledge_id: str,
    pledge_status: PledgeStatus | str,
    item_statuses: Iterable[ItemStatus | str],
) -> None:
    """Verify item statuses agree with the pledge status.

    Raises:
        ConsistencyViolationError: If they disagree.
    """
    status = PledgeStatus(pledge_status)
    statuses = [ItemStatus(s) for s in item_statuses]
    if not statuses:
        raise ConsistencyViolationError("Pledge", pledge_id, "pledge has no items")

    closed = all_items_closed(statuses)

    if status is PledgeStatus.CANCELLED:
        if any(s is not ItemStatus.CANCELLED for s in statuses):
            raise ConsistencyViolationError(
                "Pledge", pledge_id, "cancelled pledge has items not cancelled"
            )
    elif status in TERMINAL_PLEDGE_STATUSES:
        if not closed:
            raise ConsistencyViolationError(
                "Pledge", pledge_id, f"{status.value} pledge still holds open items"
            )
    elif closed:
        raise ConsistencyViolationError(
            "Pledge", pledge_id, f"{status.value} pledge has no open items"
        )
