# src/yieldfarm/runtime/tx_admission_types.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional

Json = Dict[str, Any]


def parse_nonce(v: Any) -> int:
    """Strict nonce decoding: an int or a string of decimal digits; absent means 0.

    Floats and bools raise TypeError rather than being truncated.
    """
    if v is None:
        return 0
    if isinstance(v, bool) or not isinstance(v, (int, str)):
        raise TypeError(f"nonce must be an integer, got {type(v).__name__}")
    if isinstance(v, str):
        s = v.strip()
        if not s.isdigit():
            raise ValueError(f"nonce must be a decimal integer, got {v!r}")
        return int(s)
    return v


@dataclass(frozen=True)
class TxReject:
    """Why admission refused an envelope (code is the stable machine-readable part)."""

    code: str
    reason: str
    details: Optional[Json] = None


@dataclass(frozen=True)
class TxVerdict:
    ok: bool
    code: str = "ok"
    reason: str = "admitted"
    details: Optional[Json] = None

    @classmethod
    def admit(cls) -> "TxVerdict":
        return cls(ok=True)

    @classmethod
    def reject(cls, code: str, reason: str, details: Optional[Json] = None) -> "TxVerdict":
        return cls(ok=False, code=code, reason=reason, details=details)

    def rejection(self) -> Optional[TxReject]:
        return None if self.ok else TxReject(self.code, self.reason, self.details)

    def __iter__(self) -> Iterator[Any]:
        # ok, rej = admit_tx(...)
        return iter((self.ok, self.rejection()))


@dataclass(frozen=True)
class TxEnvelope:
    """A signed farm call.

    signer is the caller identity (hex ed25519 public key), tx_type + payload
    name the farm operation, and nonce is the per-signer replay guard.
    """

    tx_type: str
    signer: str
    nonce: int
    payload: Json = field(default_factory=dict)
    sig: str = ""

    @property
    def farm_id(self) -> str:
        return str(self.payload.get("farm_id") or "").strip()

    @classmethod
    def from_json(cls, j: Any) -> "TxEnvelope":
        """Decode a wire dict. Raises ValueError/TypeError on a malformed envelope."""
        if isinstance(j, TxEnvelope):
            return j
        if not isinstance(j, dict):
            raise TypeError(f"envelope must be a dict, got {type(j).__name__}")
        payload = j.get("payload") or {}
        if not isinstance(payload, dict):
            raise TypeError("envelope payload must be a dict")
        return cls(
            tx_type=str(j.get("tx_type") or "").strip().upper(),
            signer=str(j.get("signer") or "").strip(),
            nonce=parse_nonce(j.get("nonce")),
            payload=dict(payload),
            sig=str(j.get("sig") or "").strip(),
        )

    def to_json(self) -> Json:
        out: Json = {"tx_type": self.tx_type, "signer": self.signer, "nonce": int(self.nonce), "payload": dict(self.payload)}
        if self.sig:
            out["sig"] = self.sig
        return out


__all__ = ["TxEnvelope", "TxReject", "TxVerdict", "parse_nonce"]
