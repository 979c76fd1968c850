"""
Pawn Kernel - pledge core for pawnshop branch operations.

A transactional core with:
- Exact, reproducible pledge valuation and interest accrual
- A guarded pledge/item lifecycle state machine
- Exclusive-occupancy storage slot allocation with history
- Locked-counter document numbering per branch and year
- Day-end aggregation and close
"""

__version__ = "0.1.0"
