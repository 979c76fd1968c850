"""
Module: pawn_kernel.selectors.rate_selector
Responsibility: Pick the interest rates in force for a branch on a date.
Architecture position: Kernel > Selectors.  Read-only.

Selection rule (per rate type):
    1. Only active rows whose effective window contains ``as_of``.
    2. A row for the branch beats a global row (branch_id NULL).
    3. Among equals, the latest effective_from wins.
    4. No row at all: the configured default for that type.

Failure modes:
    - InvalidLoanTermsError if the selected tiers are not non-decreasing
      (a misconfigured rate table is refused rather than used).
"""

from datetime import date
from uuid import UUID

from sqlalchemy import or_, select

from pawn_kernel.domain.values import RateSchedule, RateType
from pawn_kernel.logging_config import get_logger
from pawn_kernel.models.interest_rate import InterestRate
from pawn_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.rate")


class RateSelector(BaseSelector):
    """Resolves the effective RateSchedule for new pledges."""

    def effective_rows(self, branch_id: UUID, as_of: date) -> dict[RateType, InterestRate]:
        """The winning InterestRate row per type (types with no row are absent)."""
        rows = self.session.execute(
            select(InterestRate).where(
                InterestRate.is_active.is_(True),
                InterestRate.effective_from <= as_of,
                or_(InterestRate.effective_to.is_(None), InterestRate.effective_to >= as_of),
                or_(InterestRate.branch_id == branch_id, InterestRate.branch_id.is_(None)),
            )
        ).scalars().all()

        chosen: dict[RateType, InterestRate] = {}
        ranked = sorted(
            rows,
            key=lambda r: (r.branch_id is None, -r.effective_from.toordinal()),
        )
        for row in ranked:
            rate_type = RateType(row.rate_type)
            chosen.setdefault(rate_type, row)
        return chosen

    def rate_schedule(
        self,
        branch_id: UUID,
        as_of: date,
        defaults: RateSchedule,
    ) -> RateSchedule:
        """Rates to snapshot onto a pledge created at ``branch_id`` on ``as_of``."""
        rows = self.effective_rows(branch_id, as_of)
        values = {
            rate_type: rows[rate_type].rate_percentage if rate_type in rows else defaults.rate_for(rate_type)
            for rate_type in RateType
        }
        logger.debug(
            "rate_schedule_selected",
            extra={
                "branch_id": str(branch_id),
                "as_of": as_of,
                "from_table": sorted(t.value for t in rows),
            },
        )
        return RateSchedule(
            standard=values[RateType.STANDARD],
            extended=values[RateType.EXTENDED],
            overdue=values[RateType.OVERDUE],
        )
