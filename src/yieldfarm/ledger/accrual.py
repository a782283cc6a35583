# src/yieldfarm/ledger/accrual.py
from __future__ import annotations

from yieldfarm.ledger.constants import YIELD_DENOMINATOR


def accrued_yield(balance: int, yield_rate: int, elapsed_ms: int) -> int:
    """Simple (non-compounding) annualized yield, truncated toward zero.

    floor(balance * yield_rate * elapsed_ms / (100 * 365 * 24 * 60 * 60 * 1000))

    All inputs must be non-negative ints; callers guard clock regression
    before computing elapsed_ms.
    """
    for name, v in (("balance", balance), ("yield_rate", yield_rate), ("elapsed_ms", elapsed_ms)):
        if isinstance(v, bool) or not isinstance(v, int):
            raise TypeError(f"{name} must be int, got {type(v).__name__}")
        if v < 0:
            raise ValueError(f"{name} must be >= 0, got {v}")

    return (balance * yield_rate * elapsed_ms) // YIELD_DENOMINATOR


__all__ = ["accrued_yield"]
