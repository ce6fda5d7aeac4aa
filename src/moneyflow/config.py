"""Application configuration objects and helpers."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool = False) -> bool:
    """Interpret environment variable values as booleans."""

    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


class BaseConfig:
    """Base configuration shared across environments."""

    APP_NAME = "MoneyFlow"
    DB_FILENAME = "moneyflow.db"
    SQLITE_PRAGMAS = {"journal_mode": "wal", "foreign_keys": "on"}

    def __init__(self) -> None:
        self.DATA_DIR = self._resolve_data_dir()
        self.DEV_MODE = _env_bool("MONEYFLOW_DEV_MODE", default=True)
        self.DATABASE_URL = os.getenv("MONEYFLOW_DATABASE_URL", self._build_sqlite_url())
        self.CURRENCY = os.getenv("MONEYFLOW_CURRENCY", "USD")
        self.FLOW_WINDOW_DAYS = _env_int("MONEYFLOW_FLOW_WINDOW_DAYS", 30)
        self.RECURRING_CATCH_UP = _env_bool("MONEYFLOW_RECURRING_CATCH_UP", default=False)
        self.SYNC_MAX_ATTEMPTS = _env_int("MONEYFLOW_SYNC_MAX_ATTEMPTS", 3)
        self.SCHEDULER_INTERVAL_MINUTES = _env_int("MONEYFLOW_SCHEDULER_INTERVAL_MINUTES", 15)
        if self.FLOW_WINDOW_DAYS <= 0:
            raise ValueError("MONEYFLOW_FLOW_WINDOW_DAYS must be positive.")
        if self.SYNC_MAX_ATTEMPTS < 1:
            raise ValueError("MONEYFLOW_SYNC_MAX_ATTEMPTS must be at least 1.")

    def _resolve_data_dir(self) -> Path:
        """Return the directory where the SQLite mirror and logs live."""

        data_root = os.getenv("MONEYFLOW_DATA_DIR", "instance")
        base_path = Path(data_root).expanduser()
        try:
            path = base_path.resolve()
            path.mkdir(parents=True, exist_ok=True)
            return path
        except PermissionError:
            # Protected install locations fall back to the user's home directory.
            fallback_path = Path.home() / f".{self.APP_NAME.lower()}"
            fallback_path.mkdir(parents=True, exist_ok=True)
            return fallback_path.resolve()

    def _build_sqlite_url(self) -> str:
        """Construct the default SQLite URL inside DATA_DIR."""

        db_path = self.DATA_DIR / self.DB_FILENAME
        return f"sqlite:///{db_path}"

    def sqlalchemy_engine_options(self) -> dict[str, Any]:
        """Expose engine kwargs for SQLModel to consume."""

        engine_options: dict[str, Any] = {}
        if self.DATABASE_URL.startswith("sqlite"):
            engine_options["connect_args"] = {"check_same_thread": False}
        return engine_options


class DevConfig(BaseConfig):
    """Development configuration using local SQLite."""

    DEBUG = True
    TESTING = False


class TestConfig(BaseConfig):
    """Configuration used by the test-suite; never writes outside DATA_DIR."""

    DEBUG = False
    TESTING = True
