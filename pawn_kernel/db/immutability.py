"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Pawn records are evidence.  A customer disputing a renewal charge, or an
auditor checking where an item was on a given day, must see exactly what
was written at the time.  Ledgers here are corrected by appending, never
by editing.

SQLAlchemy fires mapper events before UPDATE/DELETE SQL is emitted.  The
listeners below intercept those events and raise
ImmutabilityViolationError, aborting the flush before the database is
touched:

    session.flush()
         |
         v
    [before_update / before_delete] --> _check_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                    | When Immutable                  | Why
--------------------------|---------------------------------|-------------------------------
ItemLocationHistory       | ALWAYS (from creation)          | Custody trail
RenewalInterestBreakdown  | ALWAYS (from creation)          | Printed month-by-month ledger
DayEndReport              | After status = closed           | Closed day's figures are final
Pledge                    | After redeemed/auctioned/       | Terminal contract state
                          | cancelled                       |

updated_at / updated_by_id may always change: they are audit metadata,
not content.

===============================================================================
USAGE
===============================================================================

Registered by ``init_engine_from_url``; registration is idempotent:

    from pawn_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY):

    from pawn_kernel.db.immutability import unregister_immutability_listeners
    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from pawn_kernel.exceptions import ImmutabilityViolationError
from pawn_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})

_TERMINAL_PLEDGE_STATUSES = frozenset({"redeemed", "auctioned", "cancelled"})


def _blocked(entity_type: str, target, operation: str, reason: str) -> ImmutabilityViolationError:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "reason": reason,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _changed_fields(target) -> list[str]:
    return [
        attr.key
        for attr in inspect(target).attrs
        if attr.key not in _AUDIT_FIELDS and attr.history.has_changes()
    ]


def _previous_value(target, field: str):
    """Value the row held before this flush."""
    history = get_history(target, field)
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return getattr(target, field)


# =============================================================================
# Append-only ledgers
# =============================================================================


def _check_location_history_update(mapper, connection, target):
    raise _blocked(
        "ItemLocationHistory", target, "UPDATE", "Location history is append-only"
    )


def _check_location_history_delete(mapper, connection, target):
    raise _blocked(
        "ItemLocationHistory", target, "DELETE", "Location history is append-only"
    )


def _check_breakdown_update(mapper, connection, target):
    raise _blocked(
        "RenewalInterestBreakdown", target, "UPDATE", "Interest breakdown rows are append-only"
    )


def _check_breakdown_delete(mapper, connection, target):
    raise _blocked(
        "RenewalInterestBreakdown", target, "DELETE", "Interest breakdown rows are append-only"
    )


# =============================================================================
# Closed day-end
# =============================================================================


def _check_day_end_immutability(mapper, connection, target):
    """Block any change to a report that was already closed (open -> closed is allowed)."""
    if _previous_value(target, "status") != "closed":
        return
    changed = _changed_fields(target)
    if changed:
        raise _blocked(
            "DayEndReport",
            target,
            "UPDATE",
            f"Cannot modify field '{changed[0]}' on closed day-end report",
        )


def _check_day_end_delete(mapper, connection, target):
    if _previous_value(target, "status") == "closed":
        raise _blocked("DayEndReport", target, "DELETE", "Closed day-end reports cannot be deleted")


# =============================================================================
# Terminal pledges
# =============================================================================


def _check_pledge_immutability(mapper, connection, target):
    """Block changes to a pledge that was already redeemed, auctioned or cancelled."""
    previous = _previous_value(target, "status")
    if previous not in _TERMINAL_PLEDGE_STATUSES:
        return
    changed = _changed_fields(target)
    if changed:
        raise _blocked(
            "Pledge",
            target,
            "UPDATE",
            f"Pledge is {previous}; cannot modify field '{changed[0]}'",
        )


def _check_pledge_delete(mapper, connection, target):
    raise _blocked("Pledge", target, "DELETE", "Pledges are never deleted; cancel instead")


# =============================================================================
# Registration
# =============================================================================


def _listeners():
    from pawn_kernel.models.day_end import DayEndReport
    from pawn_kernel.models.pledge import Pledge
    from pawn_kernel.models.renewal import RenewalInterestBreakdown
    from pawn_kernel.models.storage import ItemLocationHistory

    return (
        (ItemLocationHistory, "before_update", _check_location_history_update),
        (ItemLocationHistory, "before_delete", _check_location_history_delete),
        (RenewalInterestBreakdown, "before_update", _check_breakdown_update),
        (RenewalInterestBreakdown, "before_delete", _check_breakdown_delete),
        (DayEndReport, "before_update", _check_day_end_immutability),
        (DayEndReport, "before_delete", _check_day_end_delete),
        (Pledge, "before_update", _check_pledge_immutability),
        (Pledge, "before_delete", _check_pledge_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that must write a forbidden change to
    verify detection.
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)
