"""
pawn_services -- Package init and public API.

Responsibility:
    Stateful orchestration that composes the pure engines (pawn_engines)
    with kernel sessions, services and selectors.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction (enforced by tests/architecture/test_layer_boundary.py):
        pawn_services/ -> pawn_engines/  (allowed)
        pawn_services/ -> pawn_kernel/   (allowed)
        pawn_engines/  -> pawn_services/ (FORBIDDEN)
        pawn_kernel/   -> pawn_services/ (FORBIDDEN)
        pawn_kernel/   -> pawn_engines/  (FORBIDDEN)
"""

from pawn_services.pledge_service import (
    CreatePledgeRequest,
    PledgeItemRequest,
    PledgeService,
)

__all__ = [
    "CreatePledgeRequest",
    "PledgeItemRequest",
    "PledgeService",
]
