# src/yieldfarm/ledger/asset.py
from __future__ import annotations

"""Fungible asset primitive consumed by the farming core.

Balance is an opaque non-negative amount of the single farm asset, measured
in its smallest unit. The core only uses zero / join / value / take / mint;
moving value to an account is the transfer primitive's job (TransferFn).
"""

from dataclasses import dataclass
from typing import Callable


def _check_amount(amount: int, *, field: str) -> int:
    # bool is an int subclass; disallow it explicitly
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise TypeError(f"{field} must be int, got {type(amount).__name__}")
    if amount < 0:
        raise ValueError(f"{field} must be non-negative, got {amount}")
    return amount


@dataclass(frozen=True)
class Balance:
    """An immutable quantity of the farm asset."""

    amount: int = 0

    def __post_init__(self) -> None:
        _check_amount(self.amount, field="amount")

    @classmethod
    def zero(cls) -> "Balance":
        return cls(0)

    @classmethod
    def mint(cls, amount: int) -> "Balance":
        """Create new value. Trusted; emission limits are enforced by callers."""
        return cls(_check_amount(amount, field="mint amount"))

    def value(self) -> int:
        return self.amount

    def join(self, other: "Balance") -> "Balance":
        if not isinstance(other, Balance):
            raise TypeError(f"cannot join Balance with {type(other).__name__}")
        return Balance(self.amount + other.amount)

    def take(self, amount: int) -> tuple["Balance", "Balance"]:
        """Split off `amount`. Returns (taken, remainder)."""
        amt = _check_amount(amount, field="take amount")
        if amt > self.amount:
            raise ValueError(f"cannot take {amt} from balance of {self.amount}")
        return Balance(amt), Balance(self.amount - amt)


# Transfer primitive: deliver a Balance to a recipient identity.
TransferFn = Callable[[str, Balance], None]


__all__ = ["Balance", "TransferFn"]
