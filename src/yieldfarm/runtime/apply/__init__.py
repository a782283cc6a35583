# src/yieldfarm/runtime/apply/__init__.py
"""Domain-specific apply modules.

These modules implement deterministic ledger state transitions for subsets
of tx types. domain_dispatch.apply_tx routes envelopes to them.
"""

from __future__ import annotations

__all__ = [
    "farming",
]
