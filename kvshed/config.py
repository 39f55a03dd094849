"""
Configuration for kvshed.

Uses pydantic-settings for environment variable loading. Every setting can
be overridden with a SHED_-prefixed variable, e.g. SHED_DATA_DIR.

Invariants:
    - All settings have sensible defaults for local development
    - The registry and every field share the store built from one settings object

How to change safely:
    - Add new settings with defaults that keep existing deployments working
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings


class StoreBackend(str, Enum):
    """Supported key-value store backends."""

    SQLITE = "sqlite"
    MEMORY = "memory"


class ShedSettings(BaseSettings):
    """kvshed configuration loaded from environment."""

    # Store
    backend: StoreBackend = Field(default=StoreBackend.SQLITE, description="Store backend")
    data_dir: str = Field(default="./data", description="Directory for the store file")
    db_file: str = Field(default="shed.db", description="Store file name inside data_dir")
    wal_mode: bool = Field(default=True, description="Enable SQLite WAL journal mode")
    busy_timeout_ms: int = Field(default=5000, description="SQLite busy timeout")

    # Logging
    log_level: str = Field(default="INFO", description="DEBUG, INFO, WARNING or ERROR")
    log_format: str = Field(default="text", description="Log format (json, text)")

    model_config = {"env_prefix": "SHED_"}

    @property
    def db_path(self) -> str:
        """Full path of the SQLite store file."""
        return str(Path(self.data_dir) / self.db_file)
