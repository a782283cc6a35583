from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class ApplyError(Exception):
    """Canonical error type for farm apply and dispatch failures."""

    code: str
    reason: str
    details: Any | None = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


class FarmApplyError(ApplyError):
    """Base for the farming precondition failures.

    Subclasses pin `code`; every one of them is raised before any record is
    written, so a caught FarmApplyError always means "nothing changed".
    """

    CODE = "farm_error"

    def __init__(self, reason: str, details: Any | None = None) -> None:
        super().__init__(self.CODE, reason, details)


class InsufficientFunds(FarmApplyError):
    CODE = "insufficient_funds"


class InvalidCoin(FarmApplyError):
    CODE = "invalid_coin"


class NotStaker(FarmApplyError):
    CODE = "not_staker"


class InvalidFarm(FarmApplyError):
    CODE = "invalid_farm"


class InvalidYieldClaim(FarmApplyError):
    CODE = "invalid_yield_claim"


__all__ = [
    "ApplyError",
    "FarmApplyError",
    "InsufficientFunds",
    "InvalidCoin",
    "NotStaker",
    "InvalidFarm",
    "InvalidYieldClaim",
]
