"""
Module: pawn_kernel.models.sequence
Responsibility: Counter rows backing document numbers.  One row per
    (branch, document kind, year).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (branch_id, kind, year) is unique (uq_document_counter); a concurrent
      first-use insert loses with IntegrityError and retries.
    - current_value only increases, and only under a row lock held by
      SequenceService.
"""

from uuid import UUID

from sqlalchemy import BigInteger, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pawn_kernel.db.base import Base, UUIDString


class DocumentCounter(Base):
    __tablename__ = "document_counters"

    __table_args__ = (
        UniqueConstraint("branch_id", "kind", "year", name="uq_document_counter"),
    )

    branch_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("branches.id"),
        nullable=False,
    )

    # pledge | receipt | renewal | redemption
    kind: Mapped[str] = mapped_column(String(20), nullable=False)

    year: Mapped[int] = mapped_column(Integer, nullable=False)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<DocumentCounter {self.kind}/{self.year}: {self.current_value}>"
