# src/yieldfarm/crypto/sig.py
from __future__ import annotations

"""Ed25519 envelope signatures.

Keys and signatures travel as lowercase hex. A caller identity IS its
32-byte public key, so verification needs no key registry.
"""

import json
from typing import Any, Dict

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from yieldfarm.runtime.tx_admission_types import parse_nonce

Json = Dict[str, Any]

PUBKEY_BYTES = 32
SEED_BYTES = 32
SIG_BYTES = 64


def _hex_exact(s: str, *, size: int, what: str) -> bytes:
    try:
        raw = bytes.fromhex(str(s or "").strip())
    except ValueError as e:
        raise ValueError(f"{what} is not hex") from e
    if len(raw) != size:
        raise ValueError(f"{what} must be {size} bytes, got {len(raw)}")
    return raw


def canonical_tx_message(
    *,
    ledger_id: str,
    tx_type: str,
    signer: str,
    nonce: int,
    payload: Json,
) -> bytes:
    """Bytes covered by an envelope signature.

    ledger_id is part of the message so a signature made for one ledger does
    not verify on another.
    """
    body: Json = {
        "ledger_id": str(ledger_id),
        "nonce": int(nonce),
        "payload": payload if isinstance(payload, dict) else {},
        "signer": str(signer),
        "tx_type": str(tx_type).upper(),
    }
    return json.dumps(body, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def public_key_hex(seed_hex: str) -> str:
    sk = Ed25519PrivateKey.from_private_bytes(_hex_exact(seed_hex, size=SEED_BYTES, what="seed"))
    return sk.public_key().public_bytes_raw().hex()


def verify_ed25519_signature(*, message: bytes, sig: str, pubkey: str) -> bool:
    try:
        key = Ed25519PublicKey.from_public_bytes(_hex_exact(pubkey, size=PUBKEY_BYTES, what="pubkey"))
        key.verify(_hex_exact(sig, size=SIG_BYTES, what="sig"), message)
    except (InvalidSignature, ValueError):
        return False
    return True


def sign_ed25519(*, message: bytes, seed_hex: str) -> str:
    sk = Ed25519PrivateKey.from_private_bytes(_hex_exact(seed_hex, size=SEED_BYTES, what="seed"))
    return sk.sign(message).hex()


def sign_tx_envelope_dict(*, tx: Json, ledger_id: str, seed_hex: str) -> Json:
    """Return a normalised copy of `tx` with "sig" set.

    tx: {"tx_type", "signer", "nonce", "payload"}; other keys are carried over.
    """
    out = dict(tx)
    out["tx_type"] = str(tx.get("tx_type") or "").strip().upper()
    out["signer"] = str(tx.get("signer") or "").strip()
    out["nonce"] = parse_nonce(tx.get("nonce"))
    out["payload"] = tx.get("payload") if isinstance(tx.get("payload"), dict) else {}

    msg = canonical_tx_message(
        ledger_id=ledger_id,
        tx_type=out["tx_type"],
        signer=out["signer"],
        nonce=out["nonce"],
        payload=out["payload"],
    )
    out["sig"] = sign_ed25519(message=msg, seed_hex=seed_hex)
    return out


__all__ = [
    "canonical_tx_message",
    "public_key_hex",
    "sign_ed25519",
    "sign_tx_envelope_dict",
    "verify_ed25519_signature",
]
