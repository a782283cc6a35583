from __future__ import annotations

import json
import os
from typing import Any, Dict, Optional

from yieldfarm.ledger.constants import (
    FARM_TX_TYPES,
    MAX_NONCE,
    TX_FARM_CLAIM,
    TX_FARM_CREATE,
    TX_FARM_STAKE,
    TX_FARM_WITHDRAW,
)
from yieldfarm.runtime.sigverify import verify_tx_signature
from yieldfarm.runtime.tx_admission_types import TxEnvelope, TxVerdict

Json = Dict[str, Any]

# Payload keys each tx type must carry. Value checks belong to the apply layer,
# which reports them as farm errors (InvalidCoin, InvalidFarm, ...).
_REQUIRED_KEYS: Dict[str, tuple] = {
    TX_FARM_CREATE: ("yield_rate",),
    TX_FARM_STAKE: ("farm_id", "amount"),
    TX_FARM_CLAIM: ("farm_id",),
    TX_FARM_WITHDRAW: ("farm_id", "amount"),
}


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None:
        return int(default)
    try:
        return int(str(v).strip())
    except ValueError:
        return int(default)


def _require(payload: Dict[str, Any], key: str) -> Optional[TxVerdict]:
    v = payload.get(key)
    if v is None or (isinstance(v, str) and not v.strip()):
        return TxVerdict.reject("invalid_payload", f"missing_{key}", {"missing": key})
    return None


def _payload_size_bytes(payload: Json) -> int:
    try:
        return len(json.dumps(payload, separators=(",", ":"), ensure_ascii=False, sort_keys=True).encode("utf-8"))
    except (TypeError, ValueError):
        return -1


def admit_tx(
    *,
    tx: Any,
    ledger_id: str,
    last_nonce: int,
    require_signatures: bool = True,
) -> TxVerdict:
    """Envelope-level admission: shape, replay guard, authentication.

    Runs before any farm record is loaded or locked for writing; a rejected
    envelope never reaches the apply layer.
    """
    if isinstance(tx, TxEnvelope):
        env = tx
    else:
        if not isinstance(tx, dict):
            return TxVerdict.reject("bad_env", "not_object", {"type": type(tx).__name__})
        if tx.get("payload") is not None and not isinstance(tx.get("payload"), dict):
            return TxVerdict.reject("invalid_payload", "payload_must_be_object", {"type": type(tx.get("payload")).__name__})
        try:
            env = TxEnvelope.from_json(tx)
        except (TypeError, ValueError) as e:
            return TxVerdict.reject("bad_env", "malformed_envelope", {"error": str(e)})

    if env.tx_type not in FARM_TX_TYPES:
        return TxVerdict.reject("tx_unimplemented", "unknown_tx_type", {"tx_type": env.tx_type})

    if not env.signer:
        return TxVerdict.reject("bad_env", "missing_signer", {})

    if isinstance(env.nonce, bool) or not isinstance(env.nonce, int):
        return TxVerdict.reject("bad_env", "malformed_envelope", {"error": "nonce must be an integer"})

    if int(env.nonce) > MAX_NONCE:
        return TxVerdict.reject("bad_nonce", "nonce_out_of_range", {"nonce": env.nonce, "max_nonce": MAX_NONCE})

    if int(env.nonce) <= int(last_nonce):
        return TxVerdict.reject("bad_nonce", "nonce_not_increasing", {"nonce": env.nonce, "last_nonce": last_nonce})

    max_payload_bytes = _env_int("YIELDFARM_MAX_TX_PAYLOAD_BYTES", 16 * 1024)
    size = _payload_size_bytes(env.payload)
    if size < 0 or size > max_payload_bytes:
        return TxVerdict.reject("invalid_payload", "payload_exceeds_size_limit", {"bytes": size, "max_bytes": max_payload_bytes})

    for key in _REQUIRED_KEYS.get(env.tx_type, ()):
        rej = _require(env.payload, key)
        if rej is not None:
            return rej

    if not verify_tx_signature(env, ledger_id=ledger_id, require_signatures=require_signatures):
        return TxVerdict.reject("bad_sig", "signature_invalid", {"signer": env.signer})

    return TxVerdict.admit()


__all__ = ["admit_tx"]
