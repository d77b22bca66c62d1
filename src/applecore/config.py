"""Configuration loading for applecore."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .logging_utils import TraceLevel
from .models import (DEFAULT_API_BACKOFF_FACTOR, DEFAULT_API_BACKOFF_MAX,
                     DEFAULT_API_MAX_RETRIES, DEFAULT_API_TIMEOUT,
                     DEFAULT_CONNECT_TIMEOUT, DEFAULT_STORE_NAME, ApiConfig)


def _int(value: Optional[str], default: int) -> int:
    try:
        return int(value) if value is not None else default
    except ValueError:
        return default


def _float(value: Optional[str], default: float) -> float:
    try:
        return float(value) if value is not None else default
    except ValueError:
        return default


def _bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    database_url: Optional[str]
    data_dir: Path
    store_name: str
    connect_timeout: float
    echo_sql: bool
    strict_mapping: bool
    trace_level: TraceLevel
    log_level: str
    api: ApiConfig

    @property
    def store_url(self) -> str:
        """The configured database URL, or a SQLite file named after the store."""
        if self.database_url:
            return self.database_url
        return f"sqlite:///{self.data_dir / f'{self.store_name}.sqlite'}"

    @classmethod
    def from_env(cls) -> "Settings":
        data_dir = os.getenv("APPLECORE_DATA_DIR")

        api_url = os.getenv("APPLECORE_API_URL") or None
        if api_url:
            api_url = api_url.rstrip("/")

        return cls(
            database_url=os.getenv("APPLECORE_DATABASE_URL") or None,
            data_dir=Path(data_dir).expanduser() if data_dir else Path.cwd(),
            store_name=os.getenv("APPLECORE_STORE_NAME", DEFAULT_STORE_NAME),
            connect_timeout=max(
                0.0,
                _float(os.getenv("APPLECORE_CONNECT_TIMEOUT"), DEFAULT_CONNECT_TIMEOUT),
            ),
            echo_sql=_bool(os.getenv("APPLECORE_ECHO_SQL"), False),
            strict_mapping=_bool(os.getenv("APPLECORE_STRICT_MAPPING"), True),
            trace_level=TraceLevel.parse(
                os.getenv("APPLECORE_TRACE_LEVEL"), TraceLevel.ENTITIES_ONLY
            ),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            api=ApiConfig(
                url=api_url,
                timeout=_float(os.getenv("APPLECORE_API_TIMEOUT"), DEFAULT_API_TIMEOUT),
                api_key=os.getenv("APPLECORE_API_KEY") or None,
                max_retries=max(
                    0, _int(os.getenv("APPLECORE_API_MAX_RETRIES"), DEFAULT_API_MAX_RETRIES)
                ),
                backoff_factor=_float(
                    os.getenv("APPLECORE_API_BACKOFF_FACTOR"), DEFAULT_API_BACKOFF_FACTOR
                ),
                backoff_max=_float(
                    os.getenv("APPLECORE_API_BACKOFF_MAX"), DEFAULT_API_BACKOFF_MAX
                ),
            ),
        )
