"""Domain models for the pawn kernel."""

from pawn_kernel.models.auction import AuctionItem, AuctionStatus
from pawn_kernel.models.branch import Branch
from pawn_kernel.models.day_end import DayEndReport, DayEndStatus
from pawn_kernel.models.gold_price import GoldPrice
from pawn_kernel.models.interest_rate import InterestRate
from pawn_kernel.models.pledge import Pledge, PledgeItem
from pawn_kernel.models.redemption import Redemption
from pawn_kernel.models.renewal import Renewal, RenewalInterestBreakdown
from pawn_kernel.models.sequence import DocumentCounter
from pawn_kernel.models.storage import (
    Box,
    ItemLocationHistory,
    LocationAction,
    Slot,
    Vault,
)

__all__ = [
    "AuctionItem",
    "AuctionStatus",
    "Box",
    "Branch",
    "DayEndReport",
    "DayEndStatus",
    "DocumentCounter",
    "GoldPrice",
    "InterestRate",
    "ItemLocationHistory",
    "LocationAction",
    "Pledge",
    "PledgeItem",
    "Redemption",
    "Renewal",
    "RenewalInterestBreakdown",
    "Slot",
    "Vault",
]
