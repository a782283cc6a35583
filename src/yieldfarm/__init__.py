# src/yieldfarm/__init__.py
"""Yield-farming ledger.

A farm accepts deposits from stakers, accrues simple linear yield at a
farm-specific annual percent rate, and lets stakers claim yield or withdraw
principal. The accounting core lives in ``yieldfarm.runtime.apply.farming``;
``yieldfarm.runtime.executor`` wraps it with authentication, per-farm
locking and SQLite persistence.
"""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
