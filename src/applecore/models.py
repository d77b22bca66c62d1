from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

DEFAULT_STORE_NAME = "applecore"
DEFAULT_CONNECT_TIMEOUT = 30.0
DEFAULT_API_TIMEOUT = 30.0
DEFAULT_API_MAX_RETRIES = 3
DEFAULT_API_BACKOFF_FACTOR = 1.0
DEFAULT_API_BACKOFF_MAX = 30.0


@dataclass(frozen=True)
class ApiConfig:
    url: Optional[str] = None
    timeout: float = DEFAULT_API_TIMEOUT
    api_key: Optional[str] = None
    max_retries: int = DEFAULT_API_MAX_RETRIES
    backoff_factor: float = DEFAULT_API_BACKOFF_FACTOR
    backoff_max: float = DEFAULT_API_BACKOFF_MAX
