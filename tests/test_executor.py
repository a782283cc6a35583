from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Iterator

import pytest

from yieldfarm.runtime.apply.farming import YieldPolicy
from yieldfarm.runtime.executor import ExecutorError, FarmExecutor
from yieldfarm.runtime.single_writer import SingleWriterLockHeld
from yieldfarm.testing.sigtools import deterministic_ed25519_keypair, signed_tx

LEDGER = "yieldfarm-test"
ONE_YEAR_MS = 31_536_000_000


class FakeClock:
    def __init__(self, now: int = 0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ex(tmp_path: Path, clock: FakeClock) -> Iterator[FarmExecutor]:
    e = FarmExecutor(db_path=str(tmp_path / "farm.db"), ledger_id=LEDGER, clock=clock)
    try:
        yield e
    finally:
        e.close()


def _tx(label: str, tx_type: str, nonce: int, payload: dict) -> dict:
    return signed_tx(label=label, ledger_id=LEDGER, tx_type=tx_type, nonce=nonce, payload=payload)


def _create(ex: FarmExecutor, label: str = "alice", *, rate: int = 10, nonce: int = 1) -> str:
    r = ex.submit_tx(_tx(label, "FARM_CREATE", nonce, {"name": "wheat", "yield_rate": rate}))
    assert r["ok"] is True, r
    return r["farm_id"]


def test_full_scenario_persists_through_executor(ex: FarmExecutor, clock: FakeClock) -> None:
    alice, _ = deterministic_ed25519_keypair(label="alice")
    farm_id = _create(ex)

    r = ex.submit_tx(_tx("alice", "FARM_STAKE", 2, {"farm_id": farm_id, "amount": 1_000_000}))
    assert r["ok"] is True, r

    clock.now = ONE_YEAR_MS
    r = ex.submit_tx(_tx("alice", "FARM_CLAIM", 3, {"farm_id": farm_id}))
    assert r["ok"] is True, r
    assert r["yield"] == 100_000

    assert ex.get_staker_balance(farm_id, alice) == 1_100_000
    assert ex.get_farm_balance(farm_id) == 100_000

    r = ex.submit_tx(_tx("alice", "FARM_WITHDRAW", 4, {"farm_id": farm_id, "amount": 600_000}))
    assert r["ok"] is True, r
    assert ex.get_staker_balance(farm_id, alice) == 500_000

    transfers = ex.list_transfers(alice)
    assert [(t["recipient"], t["amount"]) for t in transfers] == [(alice, 600_000)]
    assert transfers[0]["tx_id"] == r["tx_id"]

    farm = ex.get_farm(farm_id)
    assert farm is not None
    assert farm.stakers[alice].yield_claimed == 100_000
    assert ex.get_nonce(alice) == 4


def test_rejection_persists_nothing(ex: FarmExecutor) -> None:
    alice, _ = deterministic_ed25519_keypair(label="alice")
    farm_id = _create(ex)
    ex.submit_tx(_tx("alice", "FARM_STAKE", 2, {"farm_id": farm_id, "amount": 500}))
    before = ex.get_farm(farm_id)

    r = ex.submit_tx(_tx("alice", "FARM_WITHDRAW", 3, {"farm_id": farm_id, "amount": 501}))

    assert r["ok"] is False
    assert r["error"] == "insufficient_funds"
    assert ex.get_farm(farm_id) == before
    assert ex.list_transfers() == []
    # Failed calls do not consume the nonce.
    assert ex.get_nonce(alice) == 2


def test_non_authority_cannot_stake(ex: FarmExecutor) -> None:
    farm_id = _create(ex, "alice")
    before = ex.get_farm(farm_id)

    r = ex.submit_tx(_tx("bob", "FARM_STAKE", 1, {"farm_id": farm_id, "amount": 100}))

    assert r["ok"] is False
    assert r["error"] == "not_staker"
    assert ex.get_farm(farm_id) == before


def test_forged_caller_is_rejected_before_apply(ex: FarmExecutor) -> None:
    alice, _ = deterministic_ed25519_keypair(label="alice")
    farm_id = _create(ex, "alice")
    ex.submit_tx(_tx("alice", "FARM_STAKE", 2, {"farm_id": farm_id, "amount": 100}))

    forged = _tx("mallory", "FARM_WITHDRAW", 3, {"farm_id": farm_id, "amount": 100})
    forged["signer"] = alice

    r = ex.submit_tx(forged)
    assert r["ok"] is False
    assert r["error"] == "bad_sig"
    assert ex.get_staker_balance(farm_id, alice) == 100


def test_replayed_envelope_is_rejected(ex: FarmExecutor) -> None:
    farm_id = _create(ex)
    stake = _tx("alice", "FARM_STAKE", 2, {"farm_id": farm_id, "amount": 100})

    assert ex.submit_tx(stake)["ok"] is True
    r = ex.submit_tx(stake)

    assert r["ok"] is False
    assert r["error"] == "bad_nonce"


def test_unknown_farm(ex: FarmExecutor) -> None:
    r = ex.submit_tx(_tx("alice", "FARM_CLAIM", 1, {"farm_id": "missing"}))
    assert r["ok"] is False
    assert r["error"] == "invalid_farm"

    with pytest.raises(ExecutorError):
        ex.get_farm_balance("missing")


def test_state_survives_restart(tmp_path: Path, clock: FakeClock) -> None:
    db_path = str(tmp_path / "farm.db")
    alice, _ = deterministic_ed25519_keypair(label="alice")

    with FarmExecutor(db_path=db_path, ledger_id=LEDGER, clock=clock) as ex1:
        farm_id = _create(ex1)
        ex1.submit_tx(_tx("alice", "FARM_STAKE", 2, {"farm_id": farm_id, "amount": 1_000}))

    with FarmExecutor(db_path=db_path, ledger_id=LEDGER, clock=clock) as ex2:
        assert ex2.list_farm_ids() == [farm_id]
        assert ex2.get_staker_balance(farm_id, alice) == 1_000
        assert ex2.get_nonce(alice) == 2


def test_second_writer_process_lock_is_refused(tmp_path: Path) -> None:
    db_path = str(tmp_path / "farm.db")
    with FarmExecutor(db_path=db_path, ledger_id=LEDGER):
        with pytest.raises(SingleWriterLockHeld):
            FarmExecutor(db_path=db_path, ledger_id=LEDGER)


def test_policy_is_applied(tmp_path: Path, clock: FakeClock) -> None:
    policy = YieldPolicy(emission_cap=50_000)
    with FarmExecutor(db_path=str(tmp_path / "farm.db"), ledger_id=LEDGER, policy=policy, clock=clock) as ex:
        farm_id = _create(ex)
        ex.submit_tx(_tx("alice", "FARM_STAKE", 2, {"farm_id": farm_id, "amount": 1_000_000}))
        clock.now = ONE_YEAR_MS

        r = ex.submit_tx(_tx("alice", "FARM_CLAIM", 3, {"farm_id": farm_id}))

        assert r["ok"] is False
        assert r["error"] == "invalid_yield_claim"
        assert ex.get_farm_balance(farm_id) == 0


def test_same_envelope_raced_from_threads_applies_once(ex: FarmExecutor) -> None:
    alice, _ = deterministic_ed25519_keypair(label="alice")
    farm_id = _create(ex)
    stake = _tx("alice", "FARM_STAKE", 2, {"farm_id": farm_id, "amount": 100})

    results = []
    barrier = threading.Barrier(8)

    def worker() -> None:
        barrier.wait()
        results.append(ex.submit_tx(stake))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(30)

    assert sum(1 for r in results if r["ok"]) == 1
    assert ex.get_staker_balance(farm_id, alice) == 100


def test_independent_farms_run_in_parallel_without_lost_updates(tmp_path: Path) -> None:
    db_path = str(tmp_path / "farm.db")
    labels = [f"farmer{i}" for i in range(4)]
    per = 25

    with FarmExecutor(db_path=db_path, ledger_id=LEDGER, clock=FakeClock(0)) as ex:
        farm_ids = {label: _create(ex, label) for label in labels}

        def worker(label: str) -> None:
            for n in range(per):
                r = ex.submit_tx(_tx(label, "FARM_STAKE", n + 2, {"farm_id": farm_ids[label], "amount": 10}))
                assert r["ok"] is True, r

        threads = [threading.Thread(target=worker, args=(label,)) for label in labels]
        for t in threads:
            t.start()
        for t in threads:
            t.join(60)

        for label in labels:
            pk, _ = deterministic_ed25519_keypair(label=label)
            assert ex.get_staker_balance(farm_ids[label], pk) == per * 10


def test_applied_and_rejected_calls_are_logged(ex: FarmExecutor, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="yieldfarm.executor")

    farm_id = _create(ex)
    ex.submit_tx(_tx("bob", "FARM_STAKE", 1, {"farm_id": farm_id, "amount": 1}))

    messages = [rec.getMessage() for rec in caplog.records if rec.name == "yieldfarm.executor"]
    assert any('"event":"farm_tx_applied"' in m for m in messages)
    assert any('"event":"farm_tx_rejected"' in m and '"code":"not_staker"' in m for m in messages)


def test_amounts_beyond_64_bits_round_trip(ex: FarmExecutor, clock: FakeClock) -> None:
    alice, _ = deterministic_ed25519_keypair(label="alice")
    big = 10**20
    farm_id = _create(ex)

    r = ex.submit_tx(_tx("alice", "FARM_STAKE", 2, {"farm_id": farm_id, "amount": big}))
    assert r["ok"] is True, r

    clock.now = ONE_YEAR_MS
    r = ex.submit_tx(_tx("alice", "FARM_CLAIM", 3, {"farm_id": farm_id}))
    assert r["ok"] is True, r
    assert r["yield"] == big // 10
    assert ex.get_farm_balance(farm_id) == big // 10

    r = ex.submit_tx(_tx("alice", "FARM_WITHDRAW", 4, {"farm_id": farm_id, "amount": big}))
    assert r["ok"] is True, r
    assert r["withdrawn"] == big

    assert ex.get_staker_balance(farm_id, alice) == big // 10
    transfers = ex.list_transfers(alice)
    assert [t["amount"] for t in transfers] == [big]
    assert isinstance(transfers[0]["amount"], int)


def test_largest_nonce_is_persisted_and_one_past_it_is_rejected(ex: FarmExecutor) -> None:
    alice, _ = deterministic_ed25519_keypair(label="alice")
    top = 2**63 - 1

    r = ex.submit_tx(_tx("alice", "FARM_CREATE", top + 1, {"name": "wheat", "yield_rate": 10}))
    assert r["ok"] is False
    assert r["error"] == "bad_nonce"
    assert r["reason"] == "nonce_out_of_range"
    assert ex.get_nonce(alice) == 0

    r = ex.submit_tx(_tx("alice", "FARM_CREATE", top, {"name": "wheat", "yield_rate": 10}))
    assert r["ok"] is True, r
    assert ex.get_nonce(alice) == top
