"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every service in the kernel layer.  Services receive a SQLAlchemy
    ``Session`` and use ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit or rollback themselves.  The caller
    (``session_scope()`` or a test harness) owns commit/rollback, so a
    pledge, its items, its slot assignments and its sequence draws land
    together or not at all.

Failure modes:
    - A subclass that calls ``session.commit()`` breaks the atomicity of
      multi-step operations such as ``PledgeService.create_pledge``.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.  Savepoints (``begin_nested``) are the
          only transaction control a service may use.

    Non-goals:
        - Does NOT provide query-only helpers; those belong in
          ``pawn_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
