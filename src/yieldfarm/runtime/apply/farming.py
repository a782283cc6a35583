# src/yieldfarm/runtime/apply/farming.py
from __future__ import annotations

"""Farming accounting core.

Four state transitions (create, stake, claim, withdraw) and two read
accessors over Farm / Staker records. Every operation evaluates all of its
preconditions before writing any field, so a raised FarmApplyError leaves
both records exactly as they were.

Known accounting asymmetries, kept on purpose (see DESIGN.md):
  - staking does not increase farm.pool_balance
  - claimed yield is credited to both staker.balance and farm.pool_balance
  - withdrawing does not decrease farm.pool_balance
  - the accrual anchor (stake_time) is set on first stake only, unless
    YieldPolicy.advance_anchor_on_claim is enabled
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from yieldfarm.ledger.accrual import accrued_yield
from yieldfarm.ledger.asset import Balance, TransferFn
from yieldfarm.ledger.constants import (
    FARM_TX_TYPES,
    TX_FARM_CLAIM,
    TX_FARM_CREATE,
    TX_FARM_STAKE,
    TX_FARM_WITHDRAW,
)
from yieldfarm.ledger.types import Farm, Staker
from yieldfarm.runtime.errors import (
    InsufficientFunds,
    InvalidCoin,
    InvalidFarm,
    InvalidYieldClaim,
    NotStaker,
)
from yieldfarm.runtime.tx_admission_types import TxEnvelope
from yieldfarm.runtime.tx_id import derive_farm_id, derive_staker_id

Json = Dict[str, Any]


@dataclass(frozen=True)
class YieldPolicy:
    """Operator policy knobs. Defaults reproduce the unconstrained behavior.

    emission_cap:    max lifetime yield one farm may mint (0 = unbounded)
    max_yield_rate:  max yield_rate accepted at farm creation (0 = unbounded)
    advance_anchor_on_claim: move stake_time to `now` after each claim
    """

    emission_cap: int = 0
    max_yield_rate: int = 0
    advance_anchor_on_claim: bool = False


DEFAULT_POLICY = YieldPolicy()


def _as_str(v: Any) -> str:
    return str(v).strip() if isinstance(v, (str, int)) and not isinstance(v, bool) else ""


def _as_uint(v: Any) -> Optional[int]:
    if isinstance(v, bool) or not isinstance(v, int) or v < 0:
        return None
    return v


def _require_member(farm: Farm, staker: Staker) -> Staker:
    """Return the farm's own entry for `staker`; the farm's record is authoritative."""
    entry = farm.stakers.get(staker.owner)
    if entry is None or entry.id != staker.id or staker.farm_id != farm.id:
        raise InvalidFarm("staker_not_in_farm", {"farm_id": farm.id, "staker_id": staker.id})
    return entry


# ----------------------------
# State transitions
# ----------------------------


def create_farm(
    name: str,
    yield_rate: int,
    caller: str,
    now: int,
    *,
    farm_id: str,
    policy: YieldPolicy = DEFAULT_POLICY,
) -> Farm:
    authority = _as_str(caller)
    if not authority:
        raise InvalidFarm("missing_authority")
    if not _as_str(farm_id):
        raise InvalidFarm("missing_farm_id")

    rate = _as_uint(yield_rate)
    if rate is None:
        raise InvalidFarm("bad_yield_rate", {"yield_rate": yield_rate})
    if policy.max_yield_rate and rate > policy.max_yield_rate:
        raise InvalidFarm("yield_rate_above_max", {"yield_rate": rate, "max_yield_rate": policy.max_yield_rate})

    return Farm(
        id=_as_str(farm_id),
        name=str(name or ""),
        authority=authority,
        yield_rate=rate,
        pool_balance=0,
        yield_minted=0,
        created_ms=int(now),
        stakers={},
    )


def stake_funds(farm: Farm, deposit: Balance, caller: str, now: int) -> Staker:
    """Deposit into `farm` under the caller's staker entry.

    Only the farm authority may stake. A repeat deposit adds to the existing
    balance and keeps the original stake_time.
    """
    if caller != farm.authority:
        raise NotStaker("caller_not_farm_authority", {"caller": caller, "authority": farm.authority})
    if not isinstance(deposit, Balance):
        raise InvalidCoin("deposit_not_balance", {"type": type(deposit).__name__})
    if deposit.value() <= 0:
        raise InvalidCoin("zero_deposit")

    entry = farm.stakers.get(caller)
    if entry is not None:
        entry.balance = Balance(entry.balance).join(deposit).value()
        return entry

    staker = Staker(
        id=derive_staker_id(farm_id=farm.id, owner=caller),
        owner=caller,
        farm_id=farm.id,
        balance=deposit.value(),
        stake_time=int(now),
        yield_claimed=0,
    )
    farm.stakers[caller] = staker
    return staker


def claim_yield(
    farm: Farm,
    staker: Staker,
    caller: str,
    now: int,
    *,
    policy: YieldPolicy = DEFAULT_POLICY,
) -> int:
    """Mint accrued yield for `staker` and credit it. Returns the amount minted (may be 0)."""
    if caller != staker.owner:
        raise NotStaker("caller_not_staker_owner", {"caller": caller, "owner": staker.owner})
    entry = _require_member(farm, staker)

    now_i = int(now)
    if now_i < entry.stake_time:
        raise InvalidYieldClaim("clock_regression", {"now": now_i, "stake_time": entry.stake_time})

    amount = accrued_yield(entry.balance, farm.yield_rate, now_i - entry.stake_time)

    if policy.emission_cap and farm.yield_minted + amount > policy.emission_cap:
        raise InvalidYieldClaim(
            "emission_cap_exceeded",
            {"yield": amount, "minted": farm.yield_minted, "cap": policy.emission_cap},
        )

    minted = Balance.mint(amount)
    entry.balance = Balance(entry.balance).join(minted).value()
    entry.yield_claimed += minted.value()
    # Mirrored into the farm pool as well (double-credited, see module docstring).
    farm.pool_balance = Balance(farm.pool_balance).join(minted).value()
    farm.yield_minted += minted.value()

    if policy.advance_anchor_on_claim:
        entry.stake_time = now_i

    return minted.value()


def withdraw_funds(
    farm: Farm,
    staker: Staker,
    amount: int,
    caller: str,
    *,
    transfer: Optional[TransferFn] = None,
) -> Balance:
    """Remove `amount` of principal and hand it to the owner via `transfer`.

    Returns the withdrawn Balance.
    """
    if caller != staker.owner:
        raise NotStaker("caller_not_staker_owner", {"caller": caller, "owner": staker.owner})
    entry = _require_member(farm, staker)

    amt = _as_uint(amount)
    if amt is None:
        raise InvalidCoin("bad_amount", {"amount": amount})
    if amt > entry.balance:
        raise InsufficientFunds("withdraw_exceeds_balance", {"balance": entry.balance, "amount": amt})

    taken, remainder = Balance(entry.balance).take(amt)
    entry.balance = remainder.value()

    if transfer is not None:
        transfer(entry.owner, taken)
    return taken


# ----------------------------
# Read accessors
# ----------------------------


def get_farm_balance(farm: Farm) -> int:
    return int(farm.pool_balance)


def get_staker_balance(staker: Staker) -> int:
    return int(staker.balance)


# ----------------------------
# Envelope dispatch
# ----------------------------


def _payload_amount(payload: Json) -> int:
    amt = _as_uint(payload.get("amount"))
    if amt is None:
        raise InvalidCoin("bad_amount", {"amount": payload.get("amount")})
    return amt


def _caller_entry(farm: Farm, caller: str) -> Staker:
    entry = farm.stakers.get(caller)
    if entry is None:
        raise NotStaker("no_staker_entry", {"farm_id": farm.id, "caller": caller})
    return entry


def farm_id_for(env: TxEnvelope, *, ledger_id: str) -> str:
    """Farm record an envelope addresses (derived for FARM_CREATE)."""
    if env.tx_type == TX_FARM_CREATE:
        return derive_farm_id(ledger_id=ledger_id, authority=env.signer, nonce=env.nonce)
    return env.farm_id


def apply_farming(
    farm: Optional[Farm],
    env: TxEnvelope,
    *,
    ledger_id: str,
    now_ms: int,
    policy: YieldPolicy = DEFAULT_POLICY,
    transfer: Optional[TransferFn] = None,
) -> Optional[Tuple[Farm, Json]]:
    """
    Returns:
      - (farm, receipt): the (new or mutated) farm record and a receipt dict
      - None: tx_type not in the farming domain
    """
    t = _as_str(env.tx_type).upper()
    if t not in FARM_TX_TYPES:
        return None

    caller = env.signer
    payload = env.payload if isinstance(env.payload, dict) else {}

    if t == TX_FARM_CREATE:
        if farm is not None:
            raise InvalidFarm("farm_exists", {"farm_id": farm.id})
        new_farm = create_farm(
            _as_str(payload.get("name")),
            payload.get("yield_rate"),  # type: ignore[arg-type]
            caller,
            now_ms,
            farm_id=farm_id_for(env, ledger_id=ledger_id),
            policy=policy,
        )
        return new_farm, {"applied": t, "farm_id": new_farm.id, "yield_rate": new_farm.yield_rate}

    if farm is None:
        raise InvalidFarm("farm_not_found", {"farm_id": _as_str(payload.get("farm_id"))})

    if t == TX_FARM_STAKE:
        staker = stake_funds(farm, Balance(_payload_amount(payload)), caller, now_ms)
        return farm, {"applied": t, "farm_id": farm.id, "staker_id": staker.id, "balance": staker.balance}

    if t == TX_FARM_CLAIM:
        staker = _caller_entry(farm, caller)
        minted = claim_yield(farm, staker, caller, now_ms, policy=policy)
        return farm, {
            "applied": t,
            "farm_id": farm.id,
            "staker_id": staker.id,
            "yield": minted,
            "balance": staker.balance,
            "yield_claimed": staker.yield_claimed,
        }

    # TX_FARM_WITHDRAW
    staker = _caller_entry(farm, caller)
    taken = withdraw_funds(farm, staker, _payload_amount(payload), caller, transfer=transfer)
    return farm, {
        "applied": t,
        "farm_id": farm.id,
        "staker_id": staker.id,
        "withdrawn": taken.value(),
        "balance": staker.balance,
    }


__all__ = [
    "DEFAULT_POLICY",
    "YieldPolicy",
    "apply_farming",
    "claim_yield",
    "create_farm",
    "farm_id_for",
    "get_farm_balance",
    "get_staker_balance",
    "stake_funds",
    "withdraw_funds",
]
