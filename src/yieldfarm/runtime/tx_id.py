# src/yieldfarm/runtime/tx_id.py
from __future__ import annotations

import hashlib
import json
from typing import Any, Dict

from yieldfarm.crypto.sig import canonical_tx_message
from yieldfarm.runtime.tx_admission_types import TxEnvelope

Json = Dict[str, Any]


def _digest(obj: Any) -> str:
    return hashlib.sha256(json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")).hexdigest()


def compute_tx_id(*, ledger_id: str, tx_type: str, signer: str, nonce: int, payload: Json) -> str:
    """sha256 of the signed message bytes.

    The signature itself is not hashed, so re-encoding a sig never changes
    the id, and ledger_id keeps ids from colliding across ledgers.
    """
    msg = canonical_tx_message(ledger_id=ledger_id, tx_type=tx_type, signer=signer, nonce=nonce, payload=payload)
    return hashlib.sha256(msg).hexdigest()


def compute_tx_id_from_envelope(ledger_id: str, env: TxEnvelope) -> str:
    return compute_tx_id(ledger_id=ledger_id, tx_type=env.tx_type, signer=env.signer, nonce=env.nonce, payload=env.payload)


def derive_farm_id(*, ledger_id: str, authority: str, nonce: int) -> str:
    # Unique per (ledger, creator, nonce); a signer never reuses a nonce.
    return _digest({"kind": "farm", "ledger_id": str(ledger_id), "authority": str(authority), "nonce": int(nonce)})


def derive_staker_id(*, farm_id: str, owner: str) -> str:
    return _digest({"kind": "staker", "farm_id": str(farm_id), "owner": str(owner)})


__all__ = ["compute_tx_id", "compute_tx_id_from_envelope", "derive_farm_id", "derive_staker_id"]
