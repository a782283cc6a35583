from __future__ import annotations

import json

import pytest

from yieldfarm.ledger.asset import Balance
from yieldfarm.ledger.types import Farm, Staker
from yieldfarm.runtime.apply.farming import create_farm, stake_funds


def test_farm_json_survives_persistence_shape() -> None:
    farm = create_farm("rice", 12, "alice", 99, farm_id="f1")
    stake_funds(farm, Balance(5_000), "alice", 100)

    raw = json.loads(json.dumps(farm.to_json(), sort_keys=True))
    back = Farm.from_json(raw)

    assert back == farm
    assert isinstance(back.stakers["alice"], Staker)


def test_from_json_rejects_negative_balance() -> None:
    raw = create_farm("rice", 12, "alice", 0, farm_id="f1").to_json()
    raw["pool_balance"] = -1
    with pytest.raises(ValueError):
        Farm.from_json(raw)


def test_from_json_rejects_bool_amounts() -> None:
    with pytest.raises(ValueError):
        Staker.from_json({"id": "s", "owner": "a", "farm_id": "f", "balance": True})


def test_from_json_requires_ids() -> None:
    with pytest.raises(ValueError):
        Farm.from_json({"name": "x", "authority": "a", "yield_rate": 1})
