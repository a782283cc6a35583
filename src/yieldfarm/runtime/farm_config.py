# src/yieldfarm/runtime/farm_config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from yieldfarm.env import load_dotenv_if_present
from yieldfarm.runtime.apply.farming import YieldPolicy

Json = Dict[str, Any]


def _as_int(v: Any, default: int) -> int:
    if v is None or isinstance(v, bool):
        return int(default)
    try:
        return int(v)
    except (TypeError, ValueError):
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


def _as_bool(v: Any, default: bool) -> bool:
    if v is None:
        return bool(default)
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


@dataclass(frozen=True)
class FarmConfig:
    ledger_id: str
    mode: str  # "dev" | "test" | "prod"

    db_path: str
    log_level: str

    # Authentication: envelopes must carry an ed25519 signature by the signer key.
    require_signatures: bool

    # Yield policy knobs (0 = unbounded)
    emission_cap: int
    max_yield_rate: int
    advance_anchor_on_claim: bool

    def yield_policy(self) -> YieldPolicy:
        return YieldPolicy(
            emission_cap=int(self.emission_cap),
            max_yield_rate=int(self.max_yield_rate),
            advance_anchor_on_claim=bool(self.advance_anchor_on_claim),
        )


_ALLOWED_MODES = {"dev", "test", "prod"}


def validate_farm_config(cfg: FarmConfig) -> None:
    """Fail-fast validation for operator config."""

    if not isinstance(cfg.ledger_id, str) or not cfg.ledger_id.strip():
        raise ValueError("ledger_id must be a non-empty string")

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {sorted(_ALLOWED_MODES)}; got: {cfg.mode!r}")

    if mode == "prod" and not cfg.require_signatures:
        # Unsigned envelopes make `caller` forgeable.
        raise ValueError("require_signatures must be true in prod mode")

    if not isinstance(cfg.db_path, str) or not cfg.db_path.strip():
        raise ValueError("db_path must be a non-empty string")

    if int(cfg.emission_cap) < 0:
        raise ValueError(f"emission_cap must be >= 0 (0 = unbounded); got: {cfg.emission_cap}")

    if int(cfg.max_yield_rate) < 0:
        raise ValueError(f"max_yield_rate must be >= 0 (0 = unbounded); got: {cfg.max_yield_rate}")


def default_farm_config() -> FarmConfig:
    return FarmConfig(
        ledger_id="yieldfarm-dev",
        # Production-safe defaults: without an explicit config file we must
        # not silently drop into an unsigned development posture.
        mode="prod",
        db_path="./data/yieldfarm.db",
        log_level="INFO",
        require_signatures=True,
        emission_cap=0,
        max_yield_rate=0,
        advance_anchor_on_claim=False,
    )


def read_farm_config_file(path: str) -> FarmConfig:
    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("farm config must be a JSON object")

    d = default_farm_config()

    cfg = FarmConfig(
        ledger_id=_as_str(raw.get("ledger_id"), d.ledger_id),
        mode=_as_str(raw.get("mode"), d.mode).strip().lower(),
        db_path=_as_str(raw.get("db_path"), d.db_path),
        log_level=_as_str(raw.get("log_level"), d.log_level),
        require_signatures=_as_bool(raw.get("require_signatures"), d.require_signatures),
        emission_cap=_as_int(raw.get("emission_cap"), d.emission_cap),
        max_yield_rate=_as_int(raw.get("max_yield_rate"), d.max_yield_rate),
        advance_anchor_on_claim=_as_bool(raw.get("advance_anchor_on_claim"), d.advance_anchor_on_claim),
    )

    validate_farm_config(cfg)
    return cfg


def load_farm_config(*, config_path: Optional[str] = None) -> FarmConfig:
    load_dotenv_if_present()

    p = config_path or os.environ.get("YIELDFARM_CONFIG_PATH")
    if p:
        return read_farm_config_file(p)

    cfg = default_farm_config()
    validate_farm_config(cfg)
    return cfg


def apply_farm_config_to_env(cfg: FarmConfig) -> None:
    validate_farm_config(cfg)
    os.environ["YIELDFARM_LEDGER_ID"] = cfg.ledger_id
    # sqlite durability defaults key off the mode
    os.environ["YIELDFARM_MODE"] = cfg.mode
    os.environ["YIELDFARM_DB_PATH"] = cfg.db_path
    os.environ["YIELDFARM_LOG_LEVEL"] = cfg.log_level


__all__ = [
    "FarmConfig",
    "apply_farm_config_to_env",
    "default_farm_config",
    "load_farm_config",
    "read_farm_config_file",
    "validate_farm_config",
]
