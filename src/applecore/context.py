"""Session wrapper with serial work queues and futures."""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Any, Callable, List, Optional, Set, Type, TypeVar

from sqlalchemy import event
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from .manager import DataManager
from .mappings.registry import MappingRegistry
from .mappings.registry import registry as default_registry

LOGGER = logging.getLogger("applecore.context")

T = TypeVar("T")
R = TypeVar("R")

_SESSION_KEY = "applecore.context"
_counter = itertools.count(1)
_current = threading.local()


class ConcurrencyType(str, Enum):
    PRIVATE_QUEUE = "private"
    MAIN_QUEUE = "main"


class SerialQueue:
    """A single worker thread that runs submitted callables in order."""

    def __init__(self, label: str) -> None:
        self.label = label
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix=label, initializer=self._enter
        )

    def _enter(self) -> None:
        _current.queue = self

    def is_current(self) -> bool:
        return getattr(_current, "queue", None) is self

    def submit(self, fn: Callable[[], R]) -> "Future[R]":
        return self._executor.submit(fn)

    def run_and_wait(self, fn: Callable[[], R]) -> R:
        if self.is_current():
            return fn()
        return self.submit(fn).result()

    def shutdown(self) -> None:
        self._executor.shutdown(wait=not self.is_current())


_main_queue: Optional[SerialQueue] = None
_main_queue_lock = threading.Lock()


def main_queue() -> SerialQueue:
    """The process-wide queue shared by every main-queue context."""
    global _main_queue
    with _main_queue_lock:
        if _main_queue is None:
            _main_queue = SerialQueue("applecore-main")
        return _main_queue


@dataclass(frozen=True)
class ChangeSet:
    """Identity keys touched by one commit."""

    inserted: frozenset = field(default_factory=frozenset)
    updated: frozenset = field(default_factory=frozenset)
    deleted: frozenset = field(default_factory=frozenset)

    def __bool__(self) -> bool:
        return bool(self.inserted or self.updated or self.deleted)


SaveObserver = Callable[["ObjectContext", ChangeSet], None]


def _identity_key(obj: Any):
    return sa_inspect(obj).mapper.identity_key_from_instance(obj)


def _log_failure(future: Future) -> None:
    exc = future.exception()
    if exc is not None:
        LOGGER.error("Merging changes failed: %s", exc)


class ObjectContext:
    """Wraps a SQLAlchemy session behind a serial work queue.

    Work is scheduled with :meth:`perform` / :meth:`save`, which return
    futures, or run synchronously with :meth:`perform_and_wait` /
    :meth:`save_and_wait`. A context created with a parent merges its
    committed changes into the parent, and :meth:`save_changes` commits the
    whole parent chain.
    """

    def __init__(
        self,
        session: Session,
        concurrency_type: ConcurrencyType = ConcurrencyType.PRIVATE_QUEUE,
        parent: Optional["ObjectContext"] = None,
        *,
        registry: Optional[MappingRegistry] = None,
        strict_mapping: Optional[bool] = None,
        name: Optional[str] = None,
    ) -> None:
        self.session = session
        self.concurrency_type = ConcurrencyType(concurrency_type)
        self.parent = parent
        if registry is None:
            registry = parent.registry if parent is not None else default_registry
        self.registry = registry
        if strict_mapping is None:
            strict_mapping = parent.strict_mapping if parent is not None else True
        self.strict_mapping = strict_mapping
        self.name = name or f"{self.concurrency_type.value}-{next(_counter)}"

        if self.concurrency_type is ConcurrencyType.MAIN_QUEUE:
            self._queue = main_queue()
            self._owns_queue = False
        else:
            self._queue = SerialQueue(f"applecore-{self.name}")
            self._owns_queue = True

        self._save_observers: List[SaveObserver] = []
        self._inserted: Set[Any] = set()
        self._updated: Set[Any] = set()
        self._deleted: Set[Any] = set()
        self._flushed = False
        self._closed = False

        event.listen(session, "after_flush", self._record_flush)
        event.listen(session, "after_commit", self._did_commit)
        event.listen(session, "after_rollback", self._did_rollback)
        session.info[_SESSION_KEY] = self

        if parent is not None:
            self.merge_changes_into(parent)

    def __repr__(self) -> str:
        return f"<ObjectContext {self.name}>"

    @classmethod
    def with_bind(
        cls,
        bind: Any = None,
        concurrency_type: ConcurrencyType = ConcurrencyType.PRIVATE_QUEUE,
        parent: Optional["ObjectContext"] = None,
        **kwargs: Any,
    ) -> "ObjectContext":
        """Create a context around a fresh session on ``bind`` (or the parent's)."""
        if bind is None:
            if parent is None:
                raise ValueError("A bind or a parent context is required")
            bind = parent.session.get_bind()
        session = Session(bind=bind, autoflush=True, expire_on_commit=False)
        return cls(session, concurrency_type, parent, **kwargs)

    @classmethod
    def of(cls, value: Any) -> "ObjectContext":
        """Return ``value`` if it is a context, else the context wrapping a session."""
        if isinstance(value, ObjectContext):
            return value
        if isinstance(value, Session):
            existing = value.info.get(_SESSION_KEY)
            if existing is not None:
                return existing
            return cls(value)
        raise TypeError(f"Expected ObjectContext or Session, got {type(value).__name__}")

    # Properties

    @property
    def has_changes(self) -> bool:
        session = self.session
        return bool(self._flushed or session.new or session.dirty or session.deleted)

    def query(self, model: Type[T]) -> Query:
        return self.session.query(model)

    def manager(self, model: Type[T]) -> DataManager[T]:
        return DataManager(model, self)

    # Operations

    def insert(self, model: Type[T]) -> T:
        obj = model()
        self.session.add(obj)
        return obj

    def perform(self, block: Callable[[], R]) -> "Future[R]":
        """Schedule ``block`` on this context's queue."""
        return self._queue.submit(block)

    def perform_and_wait(self, block: Callable[[], R]) -> R:
        """Run ``block`` on this context's queue and wait for its result."""
        return self._queue.run_and_wait(block)

    async def perform_async(self, block: Callable[[], R]) -> R:
        return await asyncio.wrap_future(self.perform(block))

    def save(self, block: Optional[Callable[["ObjectContext"], Any]] = None) -> "Future[None]":
        """Schedule ``block(context)`` followed by :meth:`save_changes`."""
        return self._queue.submit(partial(self._run_save, block))

    def save_and_wait(self, block: Optional[Callable[["ObjectContext"], Any]] = None) -> None:
        self._queue.run_and_wait(partial(self._run_save, block))

    async def save_async(self, block: Optional[Callable[["ObjectContext"], Any]] = None) -> None:
        await asyncio.wrap_future(self.save(block))

    def _run_save(self, block: Optional[Callable[["ObjectContext"], Any]]) -> None:
        if block is not None:
            block(self)
        self.save_changes()

    def save_changes(self, save_parents: bool = True) -> None:
        """Commit pending changes, then those of every parent context.

        SQLAlchemy errors propagate after the failing session is rolled back.
        """
        self._queue.run_and_wait(self._commit)
        if not save_parents:
            return
        context = self.parent
        while context is not None:
            context.perform_and_wait(context._commit)
            context = context.parent

    def _commit(self) -> None:
        if not self.has_changes:
            return
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            LOGGER.error("Saving %s failed: %s", self.name, exc)
            self.session.rollback()
            raise

    def delete_object(self, obj: Any) -> None:
        self.session.delete(obj)

    def get(self, obj: T) -> T:
        """Return this context's instance of a persistent ``obj``."""
        state = sa_inspect(obj)
        if state.identity is None:
            raise ValueError(f"{type(obj).__name__} instance has no persistent identity")
        return self.session.get(state.mapper.class_, state.identity)

    # Synchronisation

    def observe_saves(self, observer: SaveObserver) -> None:
        """Call ``observer(context, changes)`` after every successful commit."""
        self._save_observers.append(observer)

    def merge_changes_into(self, target: "ObjectContext") -> None:
        """Merge the changes of each commit of this context into ``target``."""

        def merge(_: "ObjectContext", changes: ChangeSet) -> None:
            target.perform(partial(target.merge_changes, changes)).add_done_callback(_log_failure)

        self.observe_saves(merge)

    def merge_changes(self, changes: ChangeSet) -> None:
        """Expire updated objects and drop deleted ones from this session."""
        identity_map = self.session.identity_map
        for key in changes.updated:
            obj = identity_map.get(key)
            if obj is not None and not self.session.is_modified(obj):
                self.session.expire(obj)
        for key in changes.deleted:
            obj = identity_map.get(key)
            if obj is not None:
                self.session.expunge(obj)

    def _record_flush(self, session: Session, flush_context: Any) -> None:
        self._flushed = True
        self._inserted.update(_identity_key(obj) for obj in session.new)
        self._updated.update(_identity_key(obj) for obj in session.dirty)
        self._deleted.update(_identity_key(obj) for obj in session.deleted)

    def _did_commit(self, session: Session) -> None:
        changes = ChangeSet(
            inserted=frozenset(self._inserted),
            updated=frozenset(self._updated - self._inserted - self._deleted),
            deleted=frozenset(self._deleted),
        )
        self._reset_changes()
        if not changes:
            return
        for observer in list(self._save_observers):
            try:
                observer(self, changes)
            except Exception:
                LOGGER.exception("Save observer failed on %s", self.name)

    def _did_rollback(self, session: Session) -> None:
        self._reset_changes()

    def _reset_changes(self) -> None:
        self._flushed = False
        self._inserted.clear()
        self._updated.clear()
        self._deleted.clear()

    # Lifecycle

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for name, fn in (
            ("after_flush", self._record_flush),
            ("after_commit", self._did_commit),
            ("after_rollback", self._did_rollback),
        ):
            if event.contains(self.session, name, fn):
                event.remove(self.session, name, fn)
        self.session.info.pop(_SESSION_KEY, None)
        self.session.close()
        if self._owns_queue:
            self._queue.shutdown()

    def __enter__(self) -> "ObjectContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
