"""
Config -> Kernel Bridges.

Functions that convert a ``PawnConfig`` into kernel inputs.  These live in
pawn_config (the producer) because the kernel never imports pawn_config.

Usage:
    from pawn_config import get_active_config
    from pawn_config.bridges import build_policy

    policy = build_policy(get_active_config())
    PledgeService(session, policy=policy)
"""

from __future__ import annotations

from pawn_config.schema import InterestDefaults, PawnConfig
from pawn_kernel.domain.policy import (
    HandlingFeePolicy,
    HandlingFeeType,
    NumberingPolicy,
    PawnPolicy,
    PledgePolicy,
    StoragePolicy,
)
from pawn_kernel.domain.values import RateSchedule


def build_rate_schedule(interest: InterestDefaults) -> RateSchedule:
    return RateSchedule(
        standard=interest.standard,
        extended=interest.extended,
        overdue=interest.overdue,
    )


def build_policy(config: PawnConfig) -> PawnPolicy:
    """Translate a loaded configuration into the kernel's ``PawnPolicy``."""
    fee = config.handling_fee
    return PawnPolicy(
        pledge=PledgePolicy(
            rates=build_rate_schedule(config.interest),
            term_months=config.pledge.term_months,
            grace_days=config.pledge.grace_period_days,
            max_renewal_months=config.pledge.max_renewal_months,
            extended_after_months=config.interest.extended_after_months,
            loan_percentages=config.pledge.default_loan_percentages,
            handling_fee=HandlingFeePolicy(
                fee_type=HandlingFeeType(fee.fee_type),
                value=fee.value,
                minimum=fee.minimum,
                enabled=fee.enabled,
                min_loan=fee.min_loan,
            ),
            currency=config.currency,
        ),
        numbering=NumberingPolicy(
            prefixes=dict(config.sequence.prefixes),
            padding=config.sequence.padding,
        ),
        storage=StoragePolicy(
            slots_per_box=config.storage.default_slots_per_box,
            boxes_per_vault=config.storage.default_boxes_per_vault,
        ),
    )
