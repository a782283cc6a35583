"""yieldfarm.ledger.types

Farm / Staker record model.

Records are plain mutable dataclasses so the farming core can update them in
place; the executor works on deep copies and persists them as JSON. Decoding
is strict: a malformed persisted record raises ValueError instead of being
silently coerced.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

Json = Dict[str, Any]


def _coerce_uint(v: Any, *, field: str) -> int:
    try:
        # bool is an int subclass; disallow it explicitly
        if isinstance(v, bool):
            raise ValueError("bool is not a valid int")
        i = int(v)
    except Exception as e:
        raise ValueError(f"record schema error: field '{field}' must be int-coercible (got {type(v).__name__})") from e
    if i < 0:
        raise ValueError(f"record schema error: field '{field}' must be >= 0 (got {i})")
    return i


def _coerce_str(v: Any, *, field: str, required: bool = True) -> str:
    s = str(v).strip() if isinstance(v, (str, int)) and not isinstance(v, bool) else ""
    if required and not s:
        raise ValueError(f"record schema error: field '{field}' must be a non-empty string")
    return s


@dataclass
class Staker:
    """One participant's ledger entry within a farm."""

    id: str
    owner: str
    farm_id: str
    balance: int = 0
    stake_time: int = 0
    yield_claimed: int = 0

    def to_json(self) -> Json:
        return {
            "id": self.id,
            "owner": self.owner,
            "farm_id": self.farm_id,
            "balance": int(self.balance),
            "stake_time": int(self.stake_time),
            "yield_claimed": int(self.yield_claimed),
        }

    @classmethod
    def from_json(cls, j: Any) -> "Staker":
        if not isinstance(j, dict):
            raise ValueError(f"record schema error: staker must be dict (got {type(j).__name__})")
        return cls(
            id=_coerce_str(j.get("id"), field="staker.id"),
            owner=_coerce_str(j.get("owner"), field="staker.owner"),
            farm_id=_coerce_str(j.get("farm_id"), field="staker.farm_id"),
            balance=_coerce_uint(j.get("balance", 0), field="staker.balance"),
            stake_time=_coerce_uint(j.get("stake_time", 0), field="staker.stake_time"),
            yield_claimed=_coerce_uint(j.get("yield_claimed", 0), field="staker.yield_claimed"),
        )


@dataclass
class Farm:
    """Aggregation root: pool balance, rate, authority and staker entries keyed by owner."""

    id: str
    name: str
    authority: str
    yield_rate: int
    pool_balance: int = 0
    yield_minted: int = 0
    created_ms: int = 0
    stakers: Dict[str, Staker] = field(default_factory=dict)

    def staker_for(self, owner: str) -> Staker | None:
        return self.stakers.get(owner)

    def to_json(self) -> Json:
        return {
            "id": self.id,
            "name": self.name,
            "authority": self.authority,
            "yield_rate": int(self.yield_rate),
            "pool_balance": int(self.pool_balance),
            "yield_minted": int(self.yield_minted),
            "created_ms": int(self.created_ms),
            # sorted for canonical persisted JSON
            "stakers": {k: self.stakers[k].to_json() for k in sorted(self.stakers)},
        }

    @classmethod
    def from_json(cls, j: Any) -> "Farm":
        if not isinstance(j, dict):
            raise ValueError(f"record schema error: farm must be dict (got {type(j).__name__})")

        raw_stakers = j.get("stakers") or {}
        if not isinstance(raw_stakers, dict):
            raise ValueError("record schema error: farm.stakers must be dict")

        stakers: Dict[str, Staker] = {}
        for owner, rec in raw_stakers.items():
            stakers[str(owner)] = Staker.from_json(rec)

        return cls(
            id=_coerce_str(j.get("id"), field="farm.id"),
            name=_coerce_str(j.get("name", ""), field="farm.name", required=False),
            authority=_coerce_str(j.get("authority"), field="farm.authority"),
            yield_rate=_coerce_uint(j.get("yield_rate", 0), field="farm.yield_rate"),
            pool_balance=_coerce_uint(j.get("pool_balance", 0), field="farm.pool_balance"),
            yield_minted=_coerce_uint(j.get("yield_minted", 0), field="farm.yield_minted"),
            created_ms=_coerce_uint(j.get("created_ms", 0), field="farm.created_ms"),
            stakers=stakers,
        )


__all__ = ["Farm", "Staker", "Json"]
