"""Read-only selectors over pawn kernel data."""

from pawn_kernel.selectors.gold_price_selector import GoldPriceSelector
from pawn_kernel.selectors.rate_selector import RateSelector

__all__ = ["GoldPriceSelector", "RateSelector"]
