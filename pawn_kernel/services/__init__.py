"""Services for the pawn kernel (write side)."""

from pawn_kernel.services.day_end_service import DayEndService
from pawn_kernel.services.event_bus import EventBus, LifecycleEvent, pending_events
from pawn_kernel.services.sequence_service import DocumentKind, SequenceService, format_number
from pawn_kernel.services.storage_service import StorageService

__all__ = [
    "DayEndService",
    "DocumentKind",
    "EventBus",
    "LifecycleEvent",
    "SequenceService",
    "StorageService",
    "format_number",
    "pending_events",
]
