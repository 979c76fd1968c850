"""
Module: pawn_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the import surface for pawn_services.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import pawn_kernel/domain, pawn_kernel/exceptions and
    sibling engine modules.  MUST NOT import pawn_kernel services,
    selectors or models.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``.
      Dates are passed in as explicit parameters.
    - Decimal-only arithmetic; floats are rejected.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Engine entry points are traced via ``@traced_engine`` (see
    ``pawn_engines.tracer``), emitting PAWN_ENGINE_TRACE log records.
"""

from pawn_engines.interest import (
    EffectiveRate,
    InterestMonth,
    InterestPolicy,
    MonthRounding,
    PledgeTerms,
    RedemptionQuote,
    RenewalQuote,
    add_months,
)
from pawn_engines.valuation import (
    ItemInput,
    ItemValuation,
    ValuationCalculator,
    ValuationResult,
)

__all__ = [
    # Interest
    "EffectiveRate",
    "InterestMonth",
    "InterestPolicy",
    "MonthRounding",
    "PledgeTerms",
    "RedemptionQuote",
    "RenewalQuote",
    "add_months",
    # Valuation
    "ItemInput",
    "ItemValuation",
    "ValuationCalculator",
    "ValuationResult",
]
