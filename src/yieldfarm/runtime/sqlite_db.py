# src/yieldfarm/runtime/sqlite_db.py
from __future__ import annotations

import json
import os
import random
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional

from yieldfarm.ledger.types import Farm

Json = Dict[str, Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _canon_json(obj: Any) -> str:
    """Canonical JSON encoding.

    Do not silently coerce unknown types (e.g. default=str): a non-JSON value
    leaking into a persisted record is a bug and must fail fast.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _env_int(name: str, default: int) -> int:
    try:
        raw = str(os.environ.get(name, "")).strip()
        return int(raw) if raw else int(default)
    except ValueError:
        return int(default)


_SYNCHRONOUS_LEVELS = {"OFF", "NORMAL", "FULL", "EXTRA"}

_SCHEMA = (
    "CREATE TABLE IF NOT EXISTS meta (key TEXT PRIMARY KEY, value TEXT NOT NULL);",
    """
    CREATE TABLE IF NOT EXISTS farms (
      farm_id TEXT PRIMARY KEY,
      authority TEXT NOT NULL,
      farm_json TEXT NOT NULL,
      updated_ts_ms INTEGER NOT NULL
    );
    """,
    "CREATE TABLE IF NOT EXISTS nonces (signer TEXT PRIMARY KEY, nonce INTEGER NOT NULL);",
    """
    CREATE TABLE IF NOT EXISTS transfers (
      seq INTEGER PRIMARY KEY AUTOINCREMENT,
      tx_id TEXT NOT NULL,
      farm_id TEXT NOT NULL,
      recipient TEXT NOT NULL,
      amount TEXT NOT NULL,
      created_ts_ms INTEGER NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_transfers_recipient ON transfers(recipient);",
)


class SqliteDB:
    """One WAL-mode SQLite file holding farm records, nonces and the transfer outbox.

    Connections are never shared: every read and every write_tx() opens its
    own, so the object is safe to use from many threads. SQLite admits one
    writer at a time and BEGIN IMMEDIATE may report "database is locked"
    under contention; write_tx() retries that with bounded backoff.
    """

    SCHEMA_VERSION = 2

    def __init__(self, *, path: str) -> None:
        self.path = str(path)

    @staticmethod
    def _synchronous_level() -> str:
        """PRAGMA synchronous for this process.

        FULL in prod, NORMAL otherwise; YIELDFARM_SQLITE_SYNCHRONOUS may pick
        any of OFF/NORMAL/FULL/EXTRA (unknown values fall back to the mode default).
        """
        mode = (os.environ.get("YIELDFARM_MODE") or "prod").strip().lower()
        fallback = "FULL" if mode == "prod" else "NORMAL"
        wanted = (os.environ.get("YIELDFARM_SQLITE_SYNCHRONOUS") or fallback).strip().upper()
        return wanted if wanted in _SYNCHRONOUS_LEVELS else fallback

    def _connect(self) -> sqlite3.Connection:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        timeout_ms = _env_int("YIELDFARM_SQLITE_CONNECT_TIMEOUT_MS", 30_000)

        # isolation_level=None: write_tx() issues BEGIN/COMMIT itself.
        con = sqlite3.connect(self.path, timeout=timeout_ms / 1000.0, isolation_level=None, check_same_thread=False)
        con.row_factory = sqlite3.Row

        journal = con.execute("PRAGMA journal_mode=WAL;").fetchone()
        if journal is None or str(journal[0]).lower() != "wal":
            con.close()
            raise RuntimeError(f"sqlite refused WAL journal mode for {self.path}")

        busy_ms = max(0, _env_int("YIELDFARM_SQLITE_BUSY_TIMEOUT_MS", timeout_ms))
        for pragma in (
            f"synchronous={self._synchronous_level()}",
            "foreign_keys=ON",
            "temp_store=MEMORY",
            f"busy_timeout={busy_ms}",
        ):
            con.execute(f"PRAGMA {pragma};")
        return con

    def init_schema(self) -> None:
        """Create tables if missing; refuse to open a DB written by another schema version."""
        with self.write_tx() as con:
            for ddl in _SCHEMA:
                con.execute(ddl)

            row = con.execute("SELECT value FROM meta WHERE key='schema_version';").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
                return
            have = str(row["value"])
            if have != str(self.SCHEMA_VERSION):
                raise RuntimeError(f"sqlite schema_version mismatch: have={have} want={self.SCHEMA_VERSION}")

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        con = self._connect()
        try:
            yield con
        finally:
            con.close()

    def _execute_with_retry(self, con: sqlite3.Connection, sql: str, *, deadline_ms: int) -> None:
        """Run `sql`, retrying while another connection holds the writer lock.

        Backoff doubles from YIELDFARM_SQLITE_WRITE_BACKOFF_BASE_MS up to
        YIELDFARM_SQLITE_WRITE_BACKOFF_MAX_MS with +/-50% jitter; past the
        deadline the OperationalError propagates.
        """
        base_s = max(1, _env_int("YIELDFARM_SQLITE_WRITE_BACKOFF_BASE_MS", 5)) / 1000.0
        cap_s = max(base_s, _env_int("YIELDFARM_SQLITE_WRITE_BACKOFF_MAX_MS", 250) / 1000.0)
        attempt = 0
        while True:
            try:
                con.execute(sql)
                return
            except sqlite3.OperationalError as e:
                msg = str(e).lower()
                busy = "database is locked" in msg or "database is busy" in msg
                if not busy or _now_ms() >= deadline_ms:
                    raise
            delay = min(cap_s, base_s * (2 ** min(attempt, 8)))
            time.sleep(delay * random.uniform(0.5, 1.5))
            attempt += 1

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """BEGIN IMMEDIATE ... COMMIT on a fresh connection.

        Any exception inside the block rolls the whole transaction back.
        """
        deadline_ms = _now_ms() + max(250, _env_int("YIELDFARM_SQLITE_WRITE_DEADLINE_MS", 30_000))

        with self.connection() as con:
            self._execute_with_retry(con, "BEGIN IMMEDIATE;", deadline_ms=deadline_ms)
            try:
                yield con
                self._execute_with_retry(con, "COMMIT;", deadline_ms=deadline_ms)
            except BaseException:
                con.execute("ROLLBACK;")
                raise


class SqliteFarmStore:
    """Durable object store for farm records.

    Each farm is one row (stakers embedded, keyed by owner) so a farm and all
    its staker entries are committed together. commit() writes the farm, the
    signer's nonce and any outbound transfers in one transaction.
    """

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        self._db.init_schema()

    def read_farm(self, farm_id: str) -> Optional[Farm]:
        with self._db.connection() as con:
            row = con.execute("SELECT farm_json FROM farms WHERE farm_id=?;", (str(farm_id),)).fetchone()
        if row is None:
            return None
        return Farm.from_json(json.loads(str(row["farm_json"])))

    def list_farm_ids(self) -> List[str]:
        with self._db.connection() as con:
            rows = con.execute("SELECT farm_id FROM farms ORDER BY farm_id;").fetchall()
        return [str(r["farm_id"]) for r in rows]

    def read_nonce(self, signer: str) -> int:
        with self._db.connection() as con:
            row = con.execute("SELECT nonce FROM nonces WHERE signer=?;", (str(signer),)).fetchone()
        return int(row["nonce"]) if row is not None else 0

    def list_transfers(self, recipient: Optional[str] = None) -> List[Json]:
        sql = "SELECT seq, tx_id, farm_id, recipient, amount, created_ts_ms FROM transfers"
        args: tuple = ()
        if recipient is not None:
            sql += " WHERE recipient=?"
            args = (str(recipient),)
        with self._db.connection() as con:
            rows = con.execute(sql + " ORDER BY seq;", args).fetchall()
        out: List[Json] = []
        for r in rows:
            row = dict(r)
            # Decimal text: amounts are unbounded and would overflow SQLite INTEGER.
            row["amount"] = int(row["amount"])
            out.append(row)
        return out

    def commit(
        self,
        *,
        farm: Farm,
        signer: str,
        nonce: int,
        tx_id: str,
        transfers: Iterable[Json] = (),
    ) -> None:
        now = _now_ms()
        payload = _canon_json(farm.to_json())
        with self._db.write_tx() as con:
            con.execute(
                """
                INSERT INTO farms(farm_id, authority, farm_json, updated_ts_ms)
                VALUES(?, ?, ?, ?)
                ON CONFLICT(farm_id) DO UPDATE SET
                  farm_json=excluded.farm_json,
                  updated_ts_ms=excluded.updated_ts_ms;
                """,
                (farm.id, farm.authority, payload, now),
            )
            con.execute(
                """
                INSERT INTO nonces(signer, nonce) VALUES(?, ?)
                ON CONFLICT(signer) DO UPDATE SET nonce=excluded.nonce;
                """,
                (str(signer), int(nonce)),
            )
            for t in transfers:
                con.execute(
                    "INSERT INTO transfers(tx_id, farm_id, recipient, amount, created_ts_ms) VALUES(?, ?, ?, ?, ?);",
                    (str(tx_id), farm.id, str(t["recipient"]), str(int(t["amount"])), now),
                )
