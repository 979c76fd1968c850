"""
EventBus -- fire-and-forget notification of committed lifecycle changes.

Responsibility:
    Carries ``{action, module, entity_type, entity_id, old_values,
    new_values}`` records to audit and notification collaborators after
    each successful lifecycle transition, slot assignment and day-end close.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  Called by
    PledgeService, StorageService and DayEndService.

Invariants enforced:
    - Events are queued on the publishing session and delivered only after
      that session's transaction commits (SQLAlchemy ``after_commit``).
      A rolled-back transaction delivers nothing; a rolled-back savepoint
      drops only the events published inside it.
    - A failing listener can never undo or block a committed transition:
      its exception is logged at WARNING and the remaining listeners run.

Failure modes:
    - None surfaced.  Listener errors are recorded in the log only.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy import event
from sqlalchemy.orm import Session

from pawn_kernel.logging_config import get_logger

logger = get_logger("services.event_bus")

_PENDING_KEY = "pawn_pending_events"


@dataclass(frozen=True)
class LifecycleEvent:
    """One committed change, as seen by external collaborators."""

    action: str
    module: str
    entity_type: str
    entity_id: str
    old_values: dict[str, Any] = field(default_factory=dict)
    new_values: dict[str, Any] = field(default_factory=dict)
    actor_id: UUID | None = None
    branch_id: UUID | None = None


Listener = Callable[[LifecycleEvent], None]


class EventBus:
    """
    In-process publish/subscribe hub.

    Contract:
        ``publish`` never performs I/O; it only queues.  Delivery happens
        when the session commits, in publish order.
    """

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def listeners(self) -> tuple[Listener, ...]:
        return tuple(self._listeners)

    def publish(self, session: Session, lifecycle_event: LifecycleEvent) -> None:
        transaction = session.get_nested_transaction() or session.get_transaction()
        session.info.setdefault(_PENDING_KEY, []).append((self, transaction, lifecycle_event))
        logger.debug(
            "lifecycle_event_queued",
            extra={
                "action": lifecycle_event.action,
                "entity_type": lifecycle_event.entity_type,
                "entity_id": lifecycle_event.entity_id,
            },
        )

    def deliver(self, lifecycle_event: LifecycleEvent) -> None:
        for listener in tuple(self._listeners):
            try:
                listener(lifecycle_event)
            except Exception as exc:
                logger.warning(
                    "event_listener_failed",
                    extra={
                        "action": lifecycle_event.action,
                        "entity_type": lifecycle_event.entity_type,
                        "entity_id": lifecycle_event.entity_id,
                        "listener": getattr(listener, "__qualname__", repr(listener)),
                        "error": f"{type(exc).__name__}: {exc}",
                    },
                )


def pending_events(session: Session) -> list[LifecycleEvent]:
    """Events queued on ``session`` that have not been delivered yet."""
    return [evt for _, _, evt in session.info.get(_PENDING_KEY, [])]


def _opened_within(transaction, ancestor) -> bool:
    while transaction is not None:
        if transaction is ancestor:
            return True
        transaction = transaction.parent
    return False


@event.listens_for(Session, "after_commit")
def _deliver_pending(session: Session) -> None:
    pending = session.info.pop(_PENDING_KEY, [])
    for bus, _, lifecycle_event in pending:
        bus.deliver(lifecycle_event)


@event.listens_for(Session, "after_soft_rollback")
def _discard_pending(session: Session, previous_transaction) -> None:
    """Drop events published inside the rolled-back transaction or savepoint."""
    pending = session.info.get(_PENDING_KEY)
    if not pending:
        return
    kept = [
        entry for entry in pending
        if entry[1] is not None and not _opened_within(entry[1], previous_transaction)
    ]
    dropped = len(pending) - len(kept)
    session.info[_PENDING_KEY] = kept
    if dropped:
        logger.debug("lifecycle_events_discarded", extra={"count": dropped})
