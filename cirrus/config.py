"""Cirrus configuration — loads from environment and local config files."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


def _find_repo_root() -> Path:
    """Walk up from this file to find the repo root (where pyproject.toml lives)."""
    p = Path(__file__).resolve().parent
    while p != p.parent:
        if (p / "pyproject.toml").exists():
            return p
        p = p.parent
    return Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings — populated from env vars or .env file."""

    # App
    app_version: str = "0.1.0"
    debug: bool = False

    # Google Cloud context
    project_id: str = ""
    region: str = ""
    zone: str = ""
    # Service account JSON key; empty means application default credentials
    credentials_path: Optional[str] = None

    # Database (state checkpoints)
    database_url: str = ""

    # Operation polling
    poll_interval: float = 5.0
    operation_timeout: float = 60.0
    image_operation_timeout: float = 180.0

    # Outer resubmit budget for "resource not ready" conditions
    not_ready_attempts: int = Field(5, ge=1)
    not_ready_delay: float = 10.0

    # Paths
    repo_root: Path = _find_repo_root()
    state_dir: Optional[Path] = None
    log_dir: Optional[Path] = None

    model_config = {"env_prefix": "CIRRUS_", "env_file": ".env"}

    @property
    def local_dir(self) -> Path:
        return self.repo_root / "local"

    @property
    def data_dir(self) -> Path:
        d = self.state_dir or self.local_dir / "data"
        d.mkdir(parents=True, exist_ok=True)
        return d

    @property
    def effective_log_dir(self) -> Path:
        return self.log_dir or self.local_dir / "logs"

    @property
    def effective_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"sqlite:///{self.data_dir / 'cirrus.db'}"


settings = Settings()
