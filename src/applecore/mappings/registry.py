"""Registry of mappings per entity type."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Type

from .base import Mapping, StandardMapping
from .scalars import IntegerMapping

_UNSET: Any = object()


def default_id_mapping() -> StandardMapping:
    return IntegerMapping("id")


@dataclass
class MappingEntry:
    id: Optional[StandardMapping] = field(default_factory=default_id_mapping)
    order_key: Optional[str] = None
    attributes: List[Mapping] = field(default_factory=list)
    schema: Optional[Type[Any]] = None


class MappingRegistry:
    """Holds the identifier, ordering key and attribute mappings per model.

    Models without an entry get the default ``IntegerMapping("id")`` and no
    other mappings.
    """

    def __init__(self) -> None:
        self._entries: Dict[type, MappingEntry] = {}
        self._lock = threading.Lock()

    def __contains__(self, model: type) -> bool:
        return model in self._entries

    def entry(self, model: type) -> Optional[MappingEntry]:
        return self._entries.get(model)

    def _ensure(self, model: type) -> MappingEntry:
        entry = self._entries.get(model)
        if entry is None:
            entry = self._entries[model] = MappingEntry()
        return entry

    def add_mapping(self, model: type, mapping: Mapping) -> None:
        with self._lock:
            self._ensure(model).attributes.append(mapping)

    def map_id_with(self, model: type, mapping: Optional[StandardMapping]) -> None:
        with self._lock:
            self._ensure(model).id = mapping

    def map_order_to(self, model: type, key: Optional[str]) -> None:
        with self._lock:
            self._ensure(model).order_key = key

    def validate_with(self, model: type, schema: Optional[Type[Any]]) -> None:
        with self._lock:
            self._ensure(model).schema = schema

    def configure(
        self,
        model: type,
        *mappings: Mapping,
        id: Optional[StandardMapping] = _UNSET,
        order_key: Optional[str] = _UNSET,
        schema: Optional[Type[Any]] = _UNSET,
    ) -> MappingEntry:
        """Register several mappings for ``model`` in one call."""
        with self._lock:
            entry = self._ensure(model)
            entry.attributes.extend(mappings)
            if id is not _UNSET:
                entry.id = id
            if order_key is not _UNSET:
                entry.order_key = order_key
            if schema is not _UNSET:
                entry.schema = schema
            return entry

    def id_mapping(self, model: type) -> Optional[StandardMapping]:
        entry = self._entries.get(model)
        if entry is None:
            return default_id_mapping()
        return entry.id

    def order_key(self, model: type) -> Optional[str]:
        entry = self._entries.get(model)
        return entry.order_key if entry else None

    def attribute_mappings(self, model: type) -> List[Mapping]:
        entry = self._entries.get(model)
        return list(entry.attributes) if entry else []

    def schema(self, model: type) -> Optional[Type[Any]]:
        entry = self._entries.get(model)
        return entry.schema if entry else None

    def clear(self, model: Optional[type] = None) -> None:
        with self._lock:
            if model is None:
                self._entries.clear()
            else:
                self._entries.pop(model, None)


registry = MappingRegistry()
