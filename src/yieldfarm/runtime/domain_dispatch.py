# src/yieldfarm/runtime/domain_dispatch.py

from __future__ import annotations

from typing import Any, Callable, Dict, Optional, Tuple

from yieldfarm.ledger.asset import TransferFn
from yieldfarm.ledger.types import Farm
from yieldfarm.runtime.apply.farming import DEFAULT_POLICY, YieldPolicy, apply_farming
from yieldfarm.runtime.errors import ApplyError
from yieldfarm.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]
ApplyFn = Callable[..., Optional[Tuple[Farm, Json]]]

# Domain appliers (each returns None when the tx_type is not theirs)
_APPLIERS: Tuple[ApplyFn, ...] = (apply_farming,)


def apply_tx(
    farm: Optional[Farm],
    env: Any,
    *,
    ledger_id: str,
    now_ms: int,
    policy: YieldPolicy = DEFAULT_POLICY,
    transfer: Optional[TransferFn] = None,
) -> Tuple[Farm, Json]:
    """Route an envelope to the domain that claims its tx_type.

    Fails closed: a tx_type no domain claims raises ApplyError("tx_unimplemented").
    Accepts a TxEnvelope or a raw dict envelope (tests/tools pass dicts).
    """
    e = TxEnvelope.from_json(env)
    if not e.tx_type:
        raise ApplyError("invalid_tx", "missing_tx_type", {})

    for fn in _APPLIERS:
        out = fn(farm, e, ledger_id=ledger_id, now_ms=now_ms, policy=policy, transfer=transfer)
        if out is not None:
            return out

    raise ApplyError("tx_unimplemented", "no_domain_claims_tx_type", {"tx_type": e.tx_type})


__all__ = ["ApplyError", "apply_tx"]
