from __future__ import annotations

import importlib
import logging
import time
from enum import Enum
from functools import cached_property
from pathlib import Path
from typing import Any, Optional, Type, TypeVar

from sqlalchemy import MetaData, create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Query
from sqlalchemy.pool import StaticPool

from .config import Settings
from .context import ConcurrencyType, ObjectContext
from .manager import DataManager
from .mappings.registry import MappingRegistry
from .models import DEFAULT_CONNECT_TIMEOUT

LOGGER = logging.getLogger("applecore.stack")

T = TypeVar("T")


class StoreError(RuntimeError):
    """Raised when the persistent store cannot be created."""


class NamedContext(str, Enum):
    MAIN = "main"
    BACKGROUND = "background"
    ISOLATED = "isolated"


def _is_memory_sqlite(url: str) -> bool:
    parsed = make_url(url)
    return parsed.get_backend_name() == "sqlite" and parsed.database in (None, "", ":memory:")


def create_store(
    url: str,
    metadata: MetaData,
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    echo: bool = False,
) -> Engine:
    """Create the engine for ``url`` and any missing tables of ``metadata``."""
    options: dict[str, Any] = {"future": True, "echo": echo}
    if _is_memory_sqlite(url):
        options["poolclass"] = StaticPool
        options["connect_args"] = {"check_same_thread": False}
    else:
        parsed = make_url(url)
        if parsed.get_backend_name() == "sqlite" and parsed.database:
            Path(parsed.database).expanduser().parent.mkdir(parents=True, exist_ok=True)

    try:
        engine = create_engine(url, **options)
    except (SQLAlchemyError, ImportError) as exc:
        raise StoreError(f"Cannot create store at {url}: {exc}") from exc

    deadline = time.time() + connect_timeout
    attempts = 0
    while True:
        attempts += 1
        try:
            LOGGER.debug("Connecting to store (attempt %s)", attempts)
            with engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            break
        except OperationalError as exc:
            if time.time() >= deadline:
                engine.dispose()
                raise StoreError("Store connection timed out") from exc
            LOGGER.warning("Store not ready yet (%s), retrying...", exc)
            time.sleep(min(2 * attempts, 10))

    try:
        metadata.create_all(engine)
    except SQLAlchemyError as exc:
        engine.dispose()
        raise StoreError(f"Cannot create schema: {exc}") from exc
    return engine


def default_store_url(name: str, directory: Optional[Path] = None) -> str:
    if directory is None:
        directory = Settings.from_env().data_dir
    return f"sqlite:///{Path(directory) / f'{name}.sqlite'}"


def load_model(target: str) -> MetaData:
    """Resolve ``"package.module:Base"`` (or ``...:metadata``) to a ``MetaData``."""
    module_name, _, attribute = target.partition(":")
    module = importlib.import_module(module_name)
    value = getattr(module, attribute or "Base")
    if isinstance(value, MetaData):
        return value
    metadata = getattr(value, "metadata", None)
    if not isinstance(metadata, MetaData):
        raise TypeError(f"{target} is neither MetaData nor a declarative base")
    return metadata


class DataStack:
    """The store engine plus the main context and its descendants."""

    def __init__(
        self,
        url: str,
        metadata: MetaData,
        *,
        registry: Optional[MappingRegistry] = None,
        strict_mapping: bool = True,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        echo: bool = False,
    ) -> None:
        self.url = url
        self.metadata = metadata
        self.registry = registry
        self.strict_mapping = strict_mapping
        self.engine = create_store(url, metadata, connect_timeout=connect_timeout, echo=echo)
        LOGGER.info("Store ready at %s", make_url(url).render_as_string(hide_password=True))

    @classmethod
    def named(
        cls, name: str, metadata: MetaData, directory: Optional[Path] = None, **kwargs: Any
    ) -> "DataStack":
        """Stack backed by ``<directory>/<name>.sqlite``."""
        return cls(default_store_url(name, directory), metadata, **kwargs)

    @classmethod
    def from_settings(
        cls, metadata: MetaData, settings: Optional[Settings] = None, **kwargs: Any
    ) -> "DataStack":
        settings = settings or Settings.from_env()
        kwargs.setdefault("strict_mapping", settings.strict_mapping)
        kwargs.setdefault("connect_timeout", settings.connect_timeout)
        kwargs.setdefault("echo", settings.echo_sql)
        return cls(settings.store_url, metadata, **kwargs)

    # Clean up

    def clean_up(self) -> None:
        """Save the main context and release the engine."""
        if "main_context" in self.__dict__:
            try:
                self.main_context.save_changes()
            except SQLAlchemyError as exc:
                LOGGER.error("Saving main context during clean up failed: %s", exc)
            self.main_context.close()
            del self.__dict__["main_context"]
        self.engine.dispose()

    # Contexts

    def _context(
        self, concurrency_type: ConcurrencyType, parent: Optional[ObjectContext]
    ) -> ObjectContext:
        return ObjectContext.with_bind(
            self.engine,
            concurrency_type,
            parent,
            registry=self.registry,
            strict_mapping=self.strict_mapping,
        )

    @cached_property
    def main_context(self) -> ObjectContext:
        return self._context(ConcurrencyType.MAIN_QUEUE, None)

    def new_background_context(self, isolated: bool = False) -> ObjectContext:
        """A private-queue context; unless isolated its saves reach the main context."""
        return self._context(
            ConcurrencyType.PRIVATE_QUEUE, None if isolated else self.main_context
        )

    def new_main_context(
        self, isolated: bool = False, parent: Optional[ObjectContext] = None
    ) -> ObjectContext:
        if parent is None and not isolated:
            parent = self.main_context
        return self._context(ConcurrencyType.MAIN_QUEUE, parent)

    # Convenience accessors

    def named_context(self, name: NamedContext) -> ObjectContext:
        """The shared main context, or a new context the caller must close."""
        name = NamedContext(name)
        if name is NamedContext.MAIN:
            return self.main_context
        if name is NamedContext.BACKGROUND:
            return self.new_background_context()
        return self.new_background_context(isolated=True)

    def query(self, model: Type[T], context: NamedContext = NamedContext.MAIN) -> Query:
        """Query on a named context.

        Background and isolated names create a new context each call. The
        caller owns it and closes it with ``ObjectContext.of(query.session).close()``.
        """
        return self.named_context(context).query(model)

    def manager(self, model: Type[T], context: NamedContext = NamedContext.MAIN) -> DataManager[T]:
        """Manager on a named context; close ``manager.context`` unless it is MAIN."""
        return self.named_context(context).manager(model)
