"""Logging setup helpers using Rich, plus trace output for the upsert engine."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Optional

from rich.console import Console
from rich.logging import RichHandler

TRACE_LOGGER = logging.getLogger("applecore.trace")


class TraceLevel(str, Enum):
    NONE = "none"
    ENTITIES_ONLY = "entities"
    ALL = "all"

    @classmethod
    def parse(cls, value: Optional[str], default: "TraceLevel") -> "TraceLevel":
        if not value:
            return default
        lowered = value.strip().lower()
        for level in cls:
            if lowered in {level.value, level.name.lower()}:
                return level
        return default


_trace_level = TraceLevel.ENTITIES_ONLY


def setup_logging(level: str = "INFO", console: Optional[Console] = None) -> None:
    """Configure logging to use Rich's console rendering."""
    handler = RichHandler(
        console=console or Console(stderr=True),
        rich_tracebacks=False,
        show_level=True,
        show_time=True,
        show_path=False,
        markup=False,
    )
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    if not name:
        return logging.getLogger("applecore")
    if name == "applecore" or name.startswith("applecore."):
        return logging.getLogger(name)
    return logging.getLogger(f"applecore.{name}")


def set_trace_level(level: TraceLevel) -> None:
    global _trace_level
    _trace_level = TraceLevel(level)


def get_trace_level() -> TraceLevel:
    return _trace_level


def trace_entity(entity_name: str) -> None:
    if _trace_level is TraceLevel.NONE:
        return
    TRACE_LOGGER.info("---> Entity %s", entity_name)


def trace_id(identifier: Any) -> None:
    if _trace_level is not TraceLevel.ALL:
        return
    TRACE_LOGGER.info("     ID: %s", identifier)


def trace_existing() -> None:
    if _trace_level is not TraceLevel.ALL:
        return
    TRACE_LOGGER.info("     Existing - no update")


def trace_insert() -> None:
    if _trace_level is not TraceLevel.ALL:
        return
    TRACE_LOGGER.info("     Inserting")


def trace_update() -> None:
    if _trace_level is not TraceLevel.ALL:
        return
    TRACE_LOGGER.info("     Update")


def trace(message: Optional[str]) -> None:
    if message is not None:
        TRACE_LOGGER.info("     %s", message)
