"""
Module: pawn_kernel.selectors.gold_price_selector
Responsibility: Find the gold price snapshot to value new pledges with.
Architecture position: Kernel > Selectors.  Read-only.

The latest GoldPrice row dated on or before ``as_of`` wins; a branch row
beats a global row for the same date.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import or_, select

from pawn_kernel.domain.values import GoldPriceSnapshot
from pawn_kernel.exceptions import GoldPriceNotFoundError
from pawn_kernel.models.gold_price import GoldPrice
from pawn_kernel.selectors.base import BaseSelector


class GoldPriceSelector(BaseSelector):

    def latest_snapshot(self, branch_id: UUID, as_of: date) -> GoldPriceSnapshot:
        """
        Raises:
            GoldPriceNotFoundError: If no price has been recorded yet.
        """
        rows = self.session.execute(
            select(GoldPrice)
            .where(
                GoldPrice.price_date <= as_of,
                or_(GoldPrice.branch_id == branch_id, GoldPrice.branch_id.is_(None)),
            )
            .order_by(GoldPrice.price_date.desc())
            .limit(10)
        ).scalars().all()

        if not rows:
            raise GoldPriceNotFoundError(f"branch {branch_id} on or before {as_of}")

        latest_date = rows[0].price_date
        same_day = [r for r in rows if r.price_date == latest_date]
        best = next((r for r in same_day if r.branch_id is not None), same_day[0])
        return best.to_snapshot()
