# src/yieldfarm/runtime/state_invariants.py
"""Farm record invariants.

Checked by the executor on the post-apply copy of a farm, right before it is
committed. A violation means a bug in an apply module, never a user error,
so it raises instead of producing a rejection receipt.
"""

from __future__ import annotations

from yieldfarm.ledger.types import Farm


class InvariantViolation(RuntimeError):
    pass


def _non_negative_int(v: object) -> bool:
    return isinstance(v, int) and not isinstance(v, bool) and v >= 0


def check_farm_invariants(farm: Farm) -> Farm:
    """Ensure `farm` and its staker entries are internally consistent.

    Returns the farm unchanged.

    Raises:
        InvariantViolation: on the first violated invariant
    """
    for name in ("pool_balance", "yield_rate", "yield_minted"):
        if not _non_negative_int(getattr(farm, name)):
            raise InvariantViolation(f"farm.{name} must be a non-negative int, got {getattr(farm, name)!r}")

    seen_ids = set()
    for owner, st in farm.stakers.items():
        # One entry per participant: the mapping key is the owner identity.
        if owner != st.owner:
            raise InvariantViolation(f"staker key {owner!r} does not match owner {st.owner!r}")
        if st.farm_id != farm.id:
            raise InvariantViolation(f"staker {st.id!r} belongs to farm {st.farm_id!r}, not {farm.id!r}")
        if st.id in seen_ids:
            raise InvariantViolation(f"duplicate staker id {st.id!r}")
        seen_ids.add(st.id)
        for name in ("balance", "stake_time", "yield_claimed"):
            if not _non_negative_int(getattr(st, name)):
                raise InvariantViolation(f"staker.{name} must be a non-negative int, got {getattr(st, name)!r}")

    return farm


__all__ = ["InvariantViolation", "check_farm_invariants"]
