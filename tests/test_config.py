"""Configuration loading from the environment."""

from __future__ import annotations

import pytest

from moneyflow.config import BaseConfig


def test_defaults(isolated_data_dir):
    config = BaseConfig()

    assert config.DATA_DIR == isolated_data_dir.resolve()
    assert config.DATA_DIR.exists()
    assert config.DATABASE_URL.endswith("moneyflow.db")
    assert config.FLOW_WINDOW_DAYS == 30
    assert config.RECURRING_CATCH_UP is False
    assert config.SYNC_MAX_ATTEMPTS == 3
    assert config.sqlalchemy_engine_options() == {"connect_args": {"check_same_thread": False}}


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("MONEYFLOW_FLOW_WINDOW_DAYS", "45")
    monkeypatch.setenv("MONEYFLOW_RECURRING_CATCH_UP", "yes")
    monkeypatch.setenv("MONEYFLOW_DATABASE_URL", "postgresql://db/moneyflow")

    config = BaseConfig()

    assert config.FLOW_WINDOW_DAYS == 45
    assert config.RECURRING_CATCH_UP is True
    assert config.sqlalchemy_engine_options() == {}


@pytest.mark.parametrize(
    "name, value",
    [
        ("MONEYFLOW_FLOW_WINDOW_DAYS", "0"),
        ("MONEYFLOW_FLOW_WINDOW_DAYS", "thirty"),
        ("MONEYFLOW_SYNC_MAX_ATTEMPTS", "0"),
    ],
)
def test_invalid_values_rejected(monkeypatch, name, value):
    monkeypatch.setenv(name, value)

    with pytest.raises(ValueError):
        BaseConfig()
