"""
SequenceService -- branch- and year-scoped document numbers via locked counter rows.

Responsibility:
    Produces human-readable, never-repeating document numbers such as
    ``PLG-KL01-2024-0007`` for pledges, receipts, renewals and redemptions.
    Each (branch, kind, year) has its own counter row in
    ``document_counters``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by PledgeService when creating pledges, renewals and
    redemptions.

Invariants enforced:
    - Uniqueness: the locked counter row is the sole source of truth for
      the next value.  Reading the highest existing number and adding one
      is FORBIDDEN; two writers doing that at once compute the same number.
    - Transactional: an allocation is only visible after the caller's
      transaction commits.  Rollback returns the value.
    - Generated numbers are additionally guarded by unique constraints on
      the document tables.

Failure modes:
    - IntegrityError on first use: another transaction created the counter
      row concurrently.  The savepoint is rolled back and the allocation is
      retried, at most ``max_retries`` times.
    - SequenceConflictError: retries exhausted.
    - BranchNotFoundError: unknown branch (raised by ``next``).

Audit relevance:
    Allocations are logged at DEBUG with the counter key and value.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pawn_kernel.domain.policy import NumberingPolicy
from pawn_kernel.exceptions import BranchNotFoundError, SequenceConflictError
from pawn_kernel.logging_config import get_logger
from pawn_kernel.models.branch import Branch
from pawn_kernel.models.sequence import DocumentCounter
from pawn_kernel.services.base import BaseService

logger = get_logger("services.sequence")


class DocumentKind(str, Enum):
    PLEDGE = "pledge"
    RECEIPT = "receipt"
    RENEWAL = "renewal"
    REDEMPTION = "redemption"


def format_number(prefix: str, branch_code: str, year: int, value: int, padding: int = 4) -> str:
    """``PLG-KL01-2024-0007``.  Values wider than ``padding`` are kept whole."""
    return f"{prefix}-{branch_code}-{year}-{value:0{padding}d}"


class SequenceService(BaseService):
    """
    Service for generating document numbers.

    Contract:
        ``next(branch_id, kind, year)`` returns the next formatted number
        for that counter.  The increment commits with the caller's
        transaction.

    Guarantees:
        - ``SELECT ... FOR UPDATE`` serializes concurrent allocations for
          the same (branch, kind, year).
        - Values start at 1 and have no gaps under normal operation.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT reuse numbers freed by rolled-back transactions after
          a later transaction has committed past them.
    """

    def __init__(
        self,
        session: Session,
        numbering: NumberingPolicy | None = None,
        max_retries: int = 3,
    ):
        super().__init__(session)
        self.numbering = numbering or NumberingPolicy()
        self.max_retries = max_retries

    def next(self, branch_id: UUID, kind: DocumentKind | str, year: int) -> str:
        """
        Allocate and format the next document number.

        Preconditions:
            - The caller is within an active database transaction.

        Raises:
            BranchNotFoundError: If ``branch_id`` does not exist.
            SequenceConflictError: If the counter could not be obtained.
        """
        kind = DocumentKind(kind)
        branch = self.session.get(Branch, branch_id)
        if branch is None:
            raise BranchNotFoundError(str(branch_id))

        value = self.next_value(branch_id, kind, year)
        return format_number(
            self.numbering.prefix_for(kind.value),
            branch.code,
            year,
            value,
            self.numbering.padding,
        )

    def next_value(self, branch_id: UUID, kind: DocumentKind | str, year: int) -> int:
        """Increment the counter and return the raw integer value (always > 0)."""
        kind = DocumentKind(kind)
        key = f"{branch_id}/{kind.value}/{year}"

        for attempt in range(1, self.max_retries + 1):
            counter = self._locked_counter(branch_id, kind, year)

            if counter is None:
                # First use: create the row inside a savepoint so losing the
                # insert race does not roll back the caller's other work.
                savepoint = self.session.begin_nested()
                try:
                    self.session.add(
                        DocumentCounter(
                            branch_id=branch_id,
                            kind=kind.value,
                            year=year,
                            current_value=1,
                        )
                    )
                    self.session.flush()
                    savepoint.commit()
                except IntegrityError:
                    savepoint.rollback()
                    logger.debug(
                        "sequence_counter_race_retry",
                        extra={"sequence_key": key, "attempt": attempt},
                    )
                    continue
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_key": key, "value": 1},
                )
                return 1

            counter.current_value += 1
            self.session.flush()
            logger.debug(
                "sequence_allocated",
                extra={"sequence_key": key, "value": counter.current_value},
            )
            return counter.current_value

        logger.error(
            "sequence_conflict",
            extra={"sequence_key": key, "attempts": self.max_retries},
        )
        raise SequenceConflictError(key, self.max_retries)

    def peek(self, branch_id: UUID, kind: DocumentKind | str, year: int) -> int | None:
        """Current value without incrementing, or None if never used."""
        kind = DocumentKind(kind)
        return self.session.execute(
            select(DocumentCounter.current_value).where(
                DocumentCounter.branch_id == branch_id,
                DocumentCounter.kind == kind.value,
                DocumentCounter.year == year,
            )
        ).scalar_one_or_none()

    def _locked_counter(self, branch_id: UUID, kind: DocumentKind, year: int) -> DocumentCounter | None:
        return self.session.execute(
            select(DocumentCounter)
            .where(
                DocumentCounter.branch_id == branch_id,
                DocumentCounter.kind == kind.value,
                DocumentCounter.year == year,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
