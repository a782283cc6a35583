# src/yieldfarm/ledger/constants.py
from __future__ import annotations

"""Accrual constants.

Yield is simple interest: an annual percent rate applied linearly over
elapsed milliseconds. A year is fixed at 365 days (no leap handling).
"""

MS_PER_SECOND: int = 1_000
SECONDS_PER_DAY: int = 24 * 60 * 60
DAYS_PER_YEAR: int = 365

# 31_536_000_000
MS_PER_YEAR: int = DAYS_PER_YEAR * SECONDS_PER_DAY * MS_PER_SECOND

# yield_rate is expressed in whole percent (10 == 10%/year)
RATE_PERCENT_DENOMINATOR: int = 100

# floor(balance * rate * elapsed_ms / YIELD_DENOMINATOR)
YIELD_DENOMINATOR: int = RATE_PERCENT_DENOMINATOR * MS_PER_YEAR

# Envelope tx types handled by the farming domain
TX_FARM_CREATE: str = "FARM_CREATE"
TX_FARM_STAKE: str = "FARM_STAKE"
TX_FARM_CLAIM: str = "FARM_CLAIM"
TX_FARM_WITHDRAW: str = "FARM_WITHDRAW"

FARM_TX_TYPES = (TX_FARM_CREATE, TX_FARM_STAKE, TX_FARM_CLAIM, TX_FARM_WITHDRAW)

# Nonces are persisted in a SQLite INTEGER column (signed 64-bit)
MAX_NONCE: int = 2**63 - 1
