from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field

_ENV_PREFIX = "VENDORBOARD_"


def _env(name: str, default: str = "") -> str:
    return os.getenv(f"{_ENV_PREFIX}{name}", default).strip()


def _default_data_dir() -> Path:
    override = _env("DATA_DIR")
    if override:
        return Path(override).expanduser().resolve()
    return Path(__file__).parent / "data"


class Settings(BaseModel):
    data_dir: Path = Field(default_factory=_default_data_dir)
    database_url_override: str = Field(default_factory=lambda: _env("DATABASE_URL"))

    host: str = Field(default_factory=lambda: _env("HOST", "127.0.0.1"))
    port: int = Field(default_factory=lambda: int(_env("PORT", "8001")))
    log_level: str = Field(default_factory=lambda: _env("LOG_LEVEL", "INFO").upper())

    # Markers used by `purge-feedback` to find rows left behind by test runs
    test_feedback_markers: list[str] = Field(default_factory=lambda: ["Test", "E2E"])

    @property
    def database_path(self) -> Path:
        return self.data_dir / "vendorboard.db"

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return f"sqlite:///{self.database_path}"

    def ensure_directories(self) -> None:
        if self.database_url.startswith("sqlite:///"):
            self.data_dir.mkdir(parents=True, exist_ok=True)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings = Settings()
    settings.ensure_directories()
    return settings
