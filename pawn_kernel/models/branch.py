"""
Module: pawn_kernel.models.branch
Responsibility: ORM persistence for branches, the scope of every document
    number, vault, rate override and day-end report.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pawn_kernel.db.base import TrackedBase


class Branch(TrackedBase):
    """
    A pawnshop branch.

    Guarantees:
        - code is unique (uq_branch_code) and is embedded in every document
          number issued for the branch.
    """

    __tablename__ = "branches"

    __table_args__ = (
        UniqueConstraint("code", name="uq_branch_code"),
    )

    # Short code used in document numbers (e.g., "KL01")
    code: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Branch {self.code}>"
