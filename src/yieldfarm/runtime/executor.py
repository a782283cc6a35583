from __future__ import annotations

import copy
import logging
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from yieldfarm.ledger.asset import Balance
from yieldfarm.ledger.types import Farm
from yieldfarm.runtime.apply.farming import (
    DEFAULT_POLICY,
    YieldPolicy,
    farm_id_for,
    get_farm_balance,
    get_staker_balance,
)
from yieldfarm.runtime.domain_dispatch import ApplyError, apply_tx
from yieldfarm.runtime.farm_config import apply_farm_config_to_env, load_farm_config
from yieldfarm.runtime.locks import KeyedLocks
from yieldfarm.runtime.single_writer import SingleWriterLock
from yieldfarm.runtime.sqlite_db import SqliteDB, SqliteFarmStore
from yieldfarm.runtime.state_invariants import check_farm_invariants
from yieldfarm.runtime.tx_admission import admit_tx
from yieldfarm.runtime.tx_admission_types import TxEnvelope
from yieldfarm.runtime.tx_id import compute_tx_id_from_envelope
from yieldfarm.structured_logging import configure_structured_logging, log_event

Json = Dict[str, Any]

log = logging.getLogger("yieldfarm.executor")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _field(tx: Any, key: str) -> str:
    if isinstance(tx, TxEnvelope):
        return str(getattr(tx, key, "") or "").strip()
    if isinstance(tx, dict):
        return str(tx.get(key) or "").strip()
    return ""


class ExecutorError(RuntimeError):
    pass


class FarmExecutor:
    """Runs farm envelopes against SQLite-backed farm records.

    One call = one atomic unit:
      admission (shape, nonce, signature)
      -> lock signer + farm
      -> apply to a deep copy of the farm record
      -> invariant check
      -> commit farm + nonce + transfers in one SQLite write transaction.
    Any failure before the commit leaves the database untouched.
    """

    def __init__(
        self,
        *,
        db_path: str,
        ledger_id: str,
        policy: YieldPolicy = DEFAULT_POLICY,
        require_signatures: bool = True,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self.ledger_id = str(ledger_id)
        self.db_path = str(db_path)
        self.policy = policy
        self.require_signatures = bool(require_signatures)
        self._clock = clock or _now_ms

        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        # Per-farm locks only serialise threads in this process.
        self._writer_lock = SingleWriterLock(self.db_path + ".lock")
        self._writer_lock.acquire()

        try:
            self._db = SqliteDB(path=self.db_path)
            self._store = SqliteFarmStore(db=self._db)
        except Exception:
            self._writer_lock.release()
            raise

        self._locks = KeyedLocks()

    # ----------------------------
    # Lifecycle
    # ----------------------------

    def close(self) -> None:
        self._writer_lock.release()

    def __enter__(self) -> "FarmExecutor":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    @classmethod
    def from_env(cls) -> "FarmExecutor":
        cfg = load_farm_config()
        apply_farm_config_to_env(cfg)
        configure_structured_logging(cfg.log_level)
        return cls(
            db_path=cfg.db_path,
            ledger_id=cfg.ledger_id,
            policy=cfg.yield_policy(),
            require_signatures=cfg.require_signatures,
        )

    # ----------------------------
    # Writes
    # ----------------------------

    def submit_tx(self, tx: Any) -> Json:
        """Apply one envelope. Returns a receipt dict with ok=True/False."""
        signer = _field(tx, "signer")

        verdict = admit_tx(
            tx=tx,
            ledger_id=self.ledger_id,
            last_nonce=self._store.read_nonce(signer) if signer else 0,
            require_signatures=self.require_signatures,
        )
        if not verdict.ok:
            return self._reject(verdict.code, verdict.reason, verdict.details, tx_type=_field(tx, "tx_type").upper())

        env = TxEnvelope.from_json(tx)
        farm_id = farm_id_for(env, ledger_id=self.ledger_id)
        tx_id = compute_tx_id_from_envelope(self.ledger_id, env)

        with self._locks.hold(f"signer:{env.signer}", f"farm:{farm_id}"):
            # Re-check under the signer lock: a concurrent call may have consumed this nonce.
            last_nonce = self._store.read_nonce(env.signer)
            if int(env.nonce) <= last_nonce:
                return self._reject(
                    "bad_nonce",
                    "nonce_not_increasing",
                    {"nonce": env.nonce, "last_nonce": last_nonce},
                    tx_type=env.tx_type,
                )

            current = self._store.read_farm(farm_id) if farm_id else None
            work: Optional[Farm] = copy.deepcopy(current)
            transfers: List[Json] = []

            def _transfer(recipient: str, amount: Balance) -> None:
                transfers.append({"recipient": recipient, "amount": amount.value()})

            try:
                new_farm, receipt = apply_tx(
                    work,
                    env,
                    ledger_id=self.ledger_id,
                    now_ms=int(self._clock()),
                    policy=self.policy,
                    transfer=_transfer,
                )
            except ApplyError as e:
                return self._reject(e.code, e.reason, e.details, tx_type=env.tx_type, tx_id=tx_id, farm_id=farm_id)

            check_farm_invariants(new_farm)
            self._store.commit(
                farm=new_farm,
                signer=env.signer,
                nonce=int(env.nonce),
                tx_id=tx_id,
                transfers=transfers,
            )

        log_event(
            log,
            "farm_tx_applied",
            tx_id=tx_id,
            tx_type=env.tx_type,
            signer=env.signer,
            farm_id=new_farm.id,
            receipt=receipt,
        )
        out: Json = {"ok": True, "tx_id": tx_id}
        out.update(receipt)
        return out

    def _reject(
        self,
        code: str,
        reason: str,
        details: Any,
        *,
        tx_type: str = "",
        tx_id: str = "",
        farm_id: str = "",
    ) -> Json:
        log_event(
            log,
            "farm_tx_rejected",
            level=logging.WARNING,
            tx_type=tx_type,
            tx_id=tx_id,
            farm_id=farm_id,
            code=code,
            reason=reason,
            details=details,
        )
        return {"ok": False, "error": code, "reason": reason, "details": details}

    # ----------------------------
    # Reads
    # ----------------------------

    def get_farm(self, farm_id: str) -> Optional[Farm]:
        return self._store.read_farm(farm_id)

    def list_farm_ids(self) -> List[str]:
        return self._store.list_farm_ids()

    def get_farm_balance(self, farm_id: str) -> int:
        farm = self._store.read_farm(farm_id)
        if farm is None:
            raise ExecutorError(f"unknown farm: {farm_id!r}")
        return get_farm_balance(farm)

    def get_staker_balance(self, farm_id: str, owner: str) -> int:
        farm = self._store.read_farm(farm_id)
        if farm is None:
            raise ExecutorError(f"unknown farm: {farm_id!r}")
        staker = farm.staker_for(owner)
        if staker is None:
            raise ExecutorError(f"no staker entry for {owner!r} in farm {farm_id!r}")
        return get_staker_balance(staker)

    def get_nonce(self, signer: str) -> int:
        return self._store.read_nonce(signer)

    def list_transfers(self, recipient: Optional[str] = None) -> List[Json]:
        return self._store.list_transfers(recipient)


__all__ = ["ExecutorError", "FarmExecutor"]
