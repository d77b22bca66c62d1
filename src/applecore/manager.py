"""Find-or-insert reconciliation of JSON payloads against stored entities."""

from __future__ import annotations

import logging
from typing import (TYPE_CHECKING, Any, Dict, Generic, List, Optional, Type,
                    TypeVar)

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Mapper

from .logging_utils import (trace_entity, trace_existing, trace_id,
                            trace_insert, trace_update)
from .mapper import DataMapper
from .mappings.base import MappingError, report_failure
from .mappings.registry import MappingRegistry

if TYPE_CHECKING:
    from .context import ObjectContext

LOGGER = logging.getLogger("applecore.manager")

T = TypeVar("T")


class DataManager(Generic[T]):
    """Upserts instances of ``model`` from JSON within one context.

    Objects are matched on the attribute of the model's ID mapping. Lookups
    see objects inserted earlier in the same session even before they are
    flushed, so repeated IDs inside one payload resolve to one object.
    """

    def __init__(
        self,
        model: Type[T],
        context: Any,
        registry: Optional[MappingRegistry] = None,
    ) -> None:
        from .context import ObjectContext

        self.model = model
        self.context: "ObjectContext" = ObjectContext.of(context)
        self.mapper: DataMapper[T] = DataMapper(model, self.context, registry)

    @property
    def entity_name(self) -> str:
        return self.model.__name__

    @property
    def entity(self) -> Mapper:
        return sa_inspect(self.model)

    @property
    def session(self):
        return self.context.session

    def find_with_id(self, identifier: Any) -> Optional[T]:
        """Find an object by its ID; ``None`` when no such object exists."""
        id_mapping = self.mapper.id_mapping
        if id_mapping is None:
            raise MappingError(f"{self.entity_name} does not have an ID mapping")

        attribute = id_mapping.attribute
        session = self.session
        for obj in session.new:
            if isinstance(obj, self.model) and getattr(obj, attribute, None) == identifier:
                return obj

        column = getattr(self.model, attribute)
        with session.no_autoflush:
            found = session.query(self.model).filter(column == identifier).first()
        if found is not None and found in session.deleted:
            return None
        return found

    def insert(self) -> T:
        obj = self.model()
        self.session.add(obj)
        return obj

    def delete_all(self) -> int:
        """Delete every object of this type; return how many were deleted."""
        session = self.session
        count = 0
        for obj in list(session.new):
            if isinstance(obj, self.model):
                session.expunge(obj)
                count += 1
        with session.no_autoflush:
            stored = session.query(self.model).all()
        for obj in stored:
            if obj not in session.deleted:
                session.delete(obj)
                count += 1
        return count

    # JSON

    def find_or_insert_with_json(self, json: Any, extra: Optional[Dict[str, Any]] = None) -> T:
        """Return the object with the payload's ID untouched, or insert it."""
        identifier = self.mapper.get_id_from_json(json)
        trace_id(identifier)

        obj = self.find_with_id(identifier) if identifier is not None else None
        if obj is None:
            return self.insert_with_json(json, extra)

        trace_existing()
        return obj

    def insert_or_update_with_json(self, json: Any, extra: Optional[Dict[str, Any]] = None) -> T:
        self.mapper.validate(json)
        identifier = self.mapper.get_id_from_json(json)
        trace_id(identifier)

        obj = self.find_with_id(identifier) if identifier is not None else None
        if obj is None:
            trace_insert()
            obj = self.insert()
        else:
            trace_update()

        return self._apply(obj, json, extra)

    def insert_with_json(self, json: Any, extra: Optional[Dict[str, Any]] = None) -> T:
        self.mapper.validate(json)
        trace_insert()
        return self._apply(self.insert(), json, extra)

    def update(self, obj: T, json: Any, extra: Optional[Dict[str, Any]] = None) -> T:
        self.mapper.validate(json)
        return self._apply(obj, json, extra)

    def _apply(self, obj: T, json: Any, extra: Optional[Dict[str, Any]]) -> T:
        # Partially mapped objects must not be flushed by lazy loads.
        with self.session.no_autoflush:
            self.mapper.map_json(json, obj)
            for key, value in (extra or {}).items():
                setattr(obj, key, value)
        return obj

    def insert_set_with_json(
        self,
        json: Any,
        extra: Optional[Dict[str, Any]] = None,
        update_existing: bool = True,
        order_offset: int = 0,
    ) -> List[T]:
        """Upsert every node of a JSON array, in order.

        Without an ID mapping every node is inserted. When the model has an
        order key, the objects receive ``order_offset``, ``order_offset + 1``...
        """
        if not isinstance(json, list):
            report_failure(self.context, f"{self.entity_name}: expected array")
            return []

        id_mapping = self.mapper.id_mapping
        order_key = self.mapper.order_key
        strict = self.context.strict_mapping
        objects: List[T] = []
        order = order_offset

        for node in json:
            trace_entity(self.entity_name)
            try:
                if id_mapping is None:
                    obj = self.insert_with_json(node, extra)
                else:
                    if not strict and id_mapping.get_value(node, self.context) is None:
                        LOGGER.warning("Skipping %s without ID", self.entity_name)
                        continue
                    if update_existing:
                        obj = self.insert_or_update_with_json(node, extra)
                    else:
                        obj = self.find_or_insert_with_json(node, extra)
            except MappingError as exc:
                if strict:
                    raise
                LOGGER.warning("Skipping %s: %s", self.entity_name, exc)
                continue

            if order_key:
                setattr(obj, order_key, order)
            objects.append(obj)
            order += 1

        return objects
