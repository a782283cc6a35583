from __future__ import annotations

import os
from pathlib import Path

import pytest

from yieldfarm.env import load_dotenv_if_present, reset_dotenv_state


@pytest.fixture(autouse=True)
def _fresh_dotenv_state():
    reset_dotenv_state()
    yield
    reset_dotenv_state()


def test_dotenv_loads_once_without_overriding(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    env_file = tmp_path / "farm.env"
    env_file.write_text("YIELDFARM_TEST_A=from-file\nYIELDFARM_TEST_B=from-file\n", encoding="utf-8")

    monkeypatch.delenv("YIELDFARM_TEST_A", raising=False)
    monkeypatch.setenv("YIELDFARM_TEST_B", "from-shell")

    assert load_dotenv_if_present(str(env_file)) is True
    assert os.environ["YIELDFARM_TEST_A"] == "from-file"
    assert os.environ["YIELDFARM_TEST_B"] == "from-shell"

    # Second call is a no-op.
    assert load_dotenv_if_present(str(env_file)) is False

    monkeypatch.delenv("YIELDFARM_TEST_A", raising=False)


def test_missing_dotenv_is_not_an_error(tmp_path: Path) -> None:
    assert load_dotenv_if_present(str(tmp_path / "nope.env")) is False
