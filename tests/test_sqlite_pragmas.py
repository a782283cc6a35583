from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from yieldfarm.ledger.types import Farm
from yieldfarm.runtime.sqlite_db import SqliteDB, SqliteFarmStore


def _pragma(con: sqlite3.Connection, name: str) -> int | str:
    row = con.execute(f"PRAGMA {name};").fetchone()
    if row is None:
        raise AssertionError(f"missing pragma: {name}")
    # sqlite3.Row behaves like a tuple for PRAGMA single-value results
    return row[0]


def test_sqlite_operational_pragmas_are_applied(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("YIELDFARM_MODE", "prod")
    monkeypatch.delenv("YIELDFARM_SQLITE_SYNCHRONOUS", raising=False)
    monkeypatch.setenv("YIELDFARM_SQLITE_BUSY_TIMEOUT_MS", "1234")

    db = SqliteDB(path=str(tmp_path / "farm.db"))
    db.init_schema()

    with db.connection() as con:
        assert str(_pragma(con, "journal_mode")).lower() == "wal"

        # FULL is the prod default.
        assert int(_pragma(con, "synchronous")) == 2

        assert int(_pragma(con, "foreign_keys")) == 1

        # MEMORY corresponds to 2
        assert int(_pragma(con, "temp_store")) == 2

        assert int(_pragma(con, "busy_timeout")) == 1234


def test_dev_mode_relaxes_synchronous(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("YIELDFARM_MODE", "dev")
    monkeypatch.delenv("YIELDFARM_SQLITE_SYNCHRONOUS", raising=False)

    db = SqliteDB(path=str(tmp_path / "farm.db"))
    with db.connection() as con:
        # NORMAL corresponds to 1
        assert int(_pragma(con, "synchronous")) == 1


def test_bogus_synchronous_override_falls_back_to_mode_default(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("YIELDFARM_MODE", "prod")
    monkeypatch.setenv("YIELDFARM_SQLITE_SYNCHRONOUS", "sometimes")

    db = SqliteDB(path=str(tmp_path / "farm.db"))
    with db.connection() as con:
        assert int(_pragma(con, "synchronous")) == 2


def test_schema_version_mismatch_refuses_to_start(tmp_path: Path) -> None:
    db = SqliteDB(path=str(tmp_path / "farm.db"))
    db.init_schema()
    with db.write_tx() as con:
        con.execute("UPDATE meta SET value='99' WHERE key='schema_version';")

    with pytest.raises(RuntimeError, match="schema_version mismatch"):
        db.init_schema()


def test_write_tx_rolls_back_on_error(tmp_path: Path) -> None:
    db = SqliteDB(path=str(tmp_path / "farm.db"))
    db.init_schema()

    with pytest.raises(ValueError):
        with db.write_tx() as con:
            con.execute("INSERT INTO nonces(signer, nonce) VALUES('alice', 7);")
            raise ValueError("boom")

    with db.connection() as con:
        assert con.execute("SELECT COUNT(*) FROM nonces;").fetchone()[0] == 0


def test_transfer_amounts_are_stored_as_exact_decimals(tmp_path: Path) -> None:
    store = SqliteFarmStore(db=SqliteDB(path=str(tmp_path / "farm.db")))
    farm = Farm(id="f1", name="wheat", authority="alice", yield_rate=10)
    amount = 2**64 + 1

    store.commit(farm=farm, signer="alice", nonce=1, tx_id="t1", transfers=[{"recipient": "alice", "amount": amount}])

    rows = store.list_transfers("alice")
    assert rows[0]["amount"] == amount
