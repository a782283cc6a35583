# src/yieldfarm/runtime/sigverify.py

from __future__ import annotations

from yieldfarm.crypto.sig import canonical_tx_message, verify_ed25519_signature
from yieldfarm.runtime.tx_admission_types import TxEnvelope


def verify_tx_signature(env: TxEnvelope, *, ledger_id: str, require_signatures: bool = True) -> bool:
    """Authenticate the caller of an envelope.

    Identities are hex ed25519 public keys, so the signer field
    itself is the verification key; there is no account/key registry.

    Policy:
      - require_signatures=False (dev/test only): any non-empty signer passes.
      - otherwise the sig must verify against the signer key; missing sig fails closed.

    NOTE: This function is pure (no I/O).
    """
    signer = (env.signer or "").strip()
    if not signer:
        return False

    if not require_signatures:
        return True

    sig = (env.sig or "").strip()
    if not sig:
        return False

    msg = canonical_tx_message(
        ledger_id=ledger_id,
        tx_type=env.tx_type,
        signer=signer,
        nonce=env.nonce,
        payload=env.payload,
    )
    return verify_ed25519_signature(message=msg, sig=sig, pubkey=signer)


__all__ = ["verify_tx_signature"]
