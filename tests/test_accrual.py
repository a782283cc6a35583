from __future__ import annotations

import pytest

from yieldfarm.ledger.accrual import accrued_yield
from yieldfarm.ledger.constants import MS_PER_YEAR, YIELD_DENOMINATOR


def test_denominator_is_percent_times_ms_per_year() -> None:
    assert MS_PER_YEAR == 31_536_000_000
    assert YIELD_DENOMINATOR == 100 * 365 * 24 * 60 * 60 * 1000


def test_one_year_at_ten_percent() -> None:
    assert accrued_yield(1_000_000, 10, MS_PER_YEAR) == 100_000


def test_linear_in_time_not_compounding() -> None:
    one = accrued_yield(1_000_000, 10, MS_PER_YEAR)
    assert accrued_yield(1_000_000, 10, 2 * MS_PER_YEAR) == 2 * one
    assert accrued_yield(1_000_000, 10, MS_PER_YEAR // 2) == one // 2


def test_truncates_toward_zero() -> None:
    # 1 unit at 100% for just under a year still floors to zero.
    assert accrued_yield(1, 100, MS_PER_YEAR - 1) == 0
    assert accrued_yield(1, 100, MS_PER_YEAR) == 1


@pytest.mark.parametrize("args", [(0, 10, MS_PER_YEAR), (1_000, 0, MS_PER_YEAR), (1_000, 10, 0)])
def test_zero_factor_yields_zero(args: tuple) -> None:
    assert accrued_yield(*args) == 0


def test_rejects_negative_elapsed() -> None:
    with pytest.raises(ValueError):
        accrued_yield(1_000, 10, -1)


def test_rejects_non_int_inputs() -> None:
    with pytest.raises(TypeError):
        accrued_yield(1_000.0, 10, 1)  # type: ignore[arg-type]
    with pytest.raises(TypeError):
        accrued_yield(True, 10, 1)  # type: ignore[arg-type]
