"""Engine configuration objects and helpers."""

from __future__ import annotations

import os
import tempfile
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
    """Read an integer environment variable, falling back on bad input."""

    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


class BaseConfig:
    """Base configuration shared across environments."""

    APP_NAME = "SmartSave"
    DB_FILENAME = "smartsave.db"
    SQLITE_PRAGMAS = {"journal_mode": "wal", "foreign_keys": "on"}

    def __init__(self) -> None:
        self.DATA_DIR = self._resolve_data_dir()
        self.DEV_MODE = _env_bool("SMARTSAVE_DEV_MODE", default=True)
        self.LOG_LEVEL = os.getenv("SMARTSAVE_LOG_LEVEL", "INFO").upper()
        self.LOG_TO_FILE = _env_bool("SMARTSAVE_LOG_TO_FILE", default=True)
        self.DATABASE_URL = os.getenv("SMARTSAVE_DATABASE_URL", self._build_sqlite_url())
        # Contributions closer together than this keep a goal's streak alive.
        self.STREAK_WINDOW_DAYS = _env_int("SMARTSAVE_STREAK_WINDOW_DAYS", 30)
        self.TICK_HOUR = _env_int("SMARTSAVE_TICK_HOUR", 2)
        self.TICK_MINUTE = _env_int("SMARTSAVE_TICK_MINUTE", 0)
        if not 0 <= self.TICK_HOUR <= 23 or not 0 <= self.TICK_MINUTE <= 59:
            raise ValueError("SMARTSAVE_TICK_HOUR/SMARTSAVE_TICK_MINUTE out of range.")
        if self.STREAK_WINDOW_DAYS <= 0:
            raise ValueError("SMARTSAVE_STREAK_WINDOW_DAYS must be positive.")

    def _resolve_data_dir(self) -> Path:
        """Return the directory where the SQLite file and logs live."""

        data_root = os.getenv("SMARTSAVE_DATA_DIR", "instance")
        path = Path(data_root).expanduser().resolve()
        path.mkdir(parents=True, exist_ok=True)
        return path

    def _build_sqlite_url(self) -> str:
        """Construct the default SQLite URL inside the data directory."""

        db_path = self.DATA_DIR / self.DB_FILENAME
        return f"sqlite:///{db_path}"

    def sqlalchemy_engine_options(self) -> dict[str, Any]:
        """Expose engine kwargs for SQLModel to consume."""

        engine_options: dict[str, Any] = {}
        if self.DATABASE_URL.startswith("sqlite"):
            # Scheduler jobs and host threads share one engine.
            engine_options["connect_args"] = {"check_same_thread": False, "timeout": 30}
        return engine_options


class DevConfig(BaseConfig):
    """Development configuration using local SQLite."""

    DEBUG = True
    TESTING = False


class TestConfig(BaseConfig):
    """Throwaway SQLite database in a temporary directory, console logging only."""

    DEBUG = False
    TESTING = True

    def __init__(self, data_dir: Path | None = None) -> None:
        self._data_dir_override = data_dir
        super().__init__()
        self.LOG_TO_FILE = False
        self.DATABASE_URL = self._build_sqlite_url()

    def _resolve_data_dir(self) -> Path:
        if self._data_dir_override is not None:
            path = Path(self._data_dir_override)
            path.mkdir(parents=True, exist_ok=True)
            return path
        return Path(tempfile.mkdtemp(prefix="smartsave-"))
