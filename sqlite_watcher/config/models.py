"""Configuration model for sqlite-watcher."""

from __future__ import annotations

import json
import re
from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class WatcherConfig(BaseSettings):
    """Settings for one ``SQLiteWatcher`` instance.

    ``watch_interval_ms`` and ``max_changes_per_batch`` are the two knobs
    trading delivery latency against throughput. ``retention_seconds`` and
    ``buffer_size`` are baked into the change log's cleanup trigger when the
    watcher sets the database up.
    """

    db_path: str = Field(description="Path to the SQLite database file.")
    watch_interval_ms: int = Field(default=1000, ge=1)
    max_changes_per_batch: int = Field(default=1000, ge=1)
    retention_seconds: int = Field(default=3600, ge=1)
    buffer_size: int = Field(default=10000, ge=1)
    tables: Annotated[list[str], NoDecode] = Field(default_factory=list)
    callback_timeout_seconds: float | None = Field(default=None, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="SQLITE_WATCHER_",
        extra="ignore",
    )

    @field_validator("db_path", mode="before")
    @classmethod
    def _normalize_db_path(cls, value: Any) -> str:
        normalized = str(value).strip() if value is not None else ""
        if not normalized:
            raise ValueError("must be non-empty")
        return normalized

    @field_validator("tables", mode="before")
    @classmethod
    def _split_tables(cls, value: Any) -> Any:
        if isinstance(value, str):
            if value.strip().startswith("["):
                return json.loads(value)
            return [part for part in (p.strip() for p in value.split(",")) if part]
        return value

    @field_validator("tables")
    @classmethod
    def _validate_tables(cls, value: list[str]) -> list[str]:
        for table in value:
            if not IDENTIFIER_PATTERN.match(table):
                raise ValueError(f"invalid table name: {table!r}")
        return list(dict.fromkeys(value))

    @property
    def watch_interval_seconds(self) -> float:
        return self.watch_interval_ms / 1000.0
