"""
Pure domain layer.

Value objects, lifecycle rules and DTOs with NO dependencies on the ORM,
the database, the clock or any I/O (``clock`` supplies the abstraction
services receive).  All domain objects are immutable and deterministic.
"""

from pawn_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from pawn_kernel.domain.lifecycle import (
    ItemStatus,
    PledgeAction,
    PledgeStatus,
    check_item_consistency,
    resolve_transition,
)
from pawn_kernel.domain.policy import (
    HandlingFeePolicy,
    HandlingFeeType,
    NumberingPolicy,
    PawnPolicy,
    PledgePolicy,
    StoragePolicy,
)
from pawn_kernel.domain.values import (
    AmountDeduction,
    GoldPriceSnapshot,
    GramsDeduction,
    NoDeduction,
    PaymentSplit,
    PercentageDeduction,
    RateSchedule,
    RateType,
    StoneDeduction,
    deduction_from,
    round_money,
    round_weight,
)

__all__ = [
    "AmountDeduction",
    "Clock",
    "DeterministicClock",
    "GoldPriceSnapshot",
    "GramsDeduction",
    "HandlingFeePolicy",
    "HandlingFeeType",
    "ItemStatus",
    "NoDeduction",
    "NumberingPolicy",
    "PawnPolicy",
    "PaymentSplit",
    "PercentageDeduction",
    "PledgeAction",
    "PledgePolicy",
    "PledgeStatus",
    "RateSchedule",
    "RateType",
    "StoneDeduction",
    "StoragePolicy",
    "SystemClock",
    "check_item_consistency",
    "deduction_from",
    "resolve_transition",
    "round_money",
    "round_weight",
]
