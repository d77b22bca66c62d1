"""Relationship mappings that recurse into nested managers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import inspect as sa_inspect

from ..strings import underscore
from .base import MISSING, MappingError, StandardMapping, report_failure

if TYPE_CHECKING:
    from ..context import ObjectContext


def _relationship(obj: Any, attribute: str):
    mapper = sa_inspect(type(obj), raiseerr=False)
    if mapper is None or attribute not in mapper.relationships:
        raise MappingError(f"{type(obj).__name__}.{attribute} is not a relationship")
    return mapper.relationships[attribute]


class RelationshipMapping(StandardMapping):
    """Common plumbing: resolve the target model from the owning relationship."""

    def __init__(
        self,
        attribute: str,
        model: Optional[type] = None,
        json_key: Optional[str] = None,
        *,
        skip_if_missing: Optional[bool] = None,
    ) -> None:
        super().__init__(attribute, json_key, skip_if_missing=skip_if_missing)
        self.model = model

    def target_model(self, obj: Any) -> type:
        if self.model is not None:
            return self.model
        return _relationship(obj, self.attribute).mapper.class_

    def get_value(self, json: Any, context: "ObjectContext", model: Optional[type] = None) -> Any:
        raise NotImplementedError

    def map_value(self, json: Any, obj: Any, context: "ObjectContext") -> None:
        if self.skip_if_missing and self.get_attribute_json(json) is MISSING:
            return
        setattr(obj, self.attribute, self.get_value(json, context, self.target_model(obj)))


class ToOneRelationshipMapping(RelationshipMapping):
    def __init__(
        self,
        attribute: str,
        model: Optional[type] = None,
        json_key: Optional[str] = None,
        *,
        update_existing: bool = True,
        skip_if_missing: Optional[bool] = None,
    ) -> None:
        super().__init__(attribute, model, json_key, skip_if_missing=skip_if_missing)
        self.update_existing = update_existing

    def get_value(self, json: Any, context: "ObjectContext", model: Optional[type] = None) -> Any:
        value = self.get_attribute_json(json)
        if value is None or value is MISSING:
            return None
        if isinstance(value, dict):
            manager = context.manager(model or self.model)
            if self.update_existing:
                return manager.insert_or_update_with_json(value)
            return manager.find_or_insert_with_json(value)
        report_failure(context, f"Key `{self.json_key}`: expected JSON object")
        return None


class ToManyRelationshipMapping(RelationshipMapping):
    """Replaces a collection with the objects built from a JSON array.

    Objects are de-duplicated; set collections receive a ``set``, everything
    else a list in array order. ``ordered`` mappings need a list-like
    collection, since a set cannot keep the array order. A missing array
    leaves the collection alone unless ``skip_if_missing`` is turned off.
    """

    skip_if_missing = True

    def __init__(
        self,
        attribute: str,
        model: Optional[type] = None,
        json_key: Optional[str] = None,
        *,
        ordered: bool = False,
        update_existing: bool = True,
        skip_if_missing: Optional[bool] = None,
    ) -> None:
        super().__init__(attribute, model, json_key, skip_if_missing=skip_if_missing)
        self.ordered = ordered
        self.update_existing = update_existing

    def get_value(self, json: Any, context: "ObjectContext", model: Optional[type] = None) -> Any:
        value = self.get_attribute_json(json)
        if value is None or value is MISSING:
            return None
        if isinstance(value, list):
            manager = context.manager(model or self.model)
            return manager.insert_set_with_json(value, update_existing=self.update_existing)
        report_failure(context, f"Key `{self.json_key}`: expected JSON array")
        return None

    def map_value(self, json: Any, obj: Any, context: "ObjectContext") -> None:
        unordered = self._is_set_collection(obj)
        if self.ordered and unordered:
            raise MappingError(
                f"{type(obj).__name__}.{self.attribute} is an unordered collection"
            )
        objects = self.get_value(json, context, self.target_model(obj))
        if objects is None:
            if self.skip_if_missing:
                return
            objects = []
        unique = list(dict.fromkeys(objects))
        setattr(obj, self.attribute, set(unique) if unordered else unique)

    def _is_set_collection(self, obj: Any) -> bool:
        collection_class = _relationship(obj, self.attribute).collection_class
        return isinstance(collection_class, type) and issubclass(
            collection_class, (set, frozenset)
        )


class RelatedObjectIDMapping(RelationshipMapping):
    """Links an existing object referenced by ID, e.g. ``"author_id": 4``."""

    def __init__(
        self,
        attribute: str,
        model: Optional[type] = None,
        json_key: Optional[str] = None,
        *,
        skip_if_missing: Optional[bool] = None,
    ) -> None:
        if json_key is None:
            json_key = self.default_json_key(attribute)
        super().__init__(attribute, model, json_key, skip_if_missing=skip_if_missing)

    @staticmethod
    def default_json_key(attribute: str) -> str:
        return underscore(attribute) + "_id"

    def get_value(self, json: Any, context: "ObjectContext", model: Optional[type] = None) -> Any:
        value = self.get_attribute_json(json)
        if value is None or value is MISSING:
            return None
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            report_failure(context, f"Key `{self.json_key}`: expected number or string")
            return None
        try:
            identifier = int(value) if isinstance(value, float) else value
        except (OverflowError, ValueError):
            report_failure(context, f"Key `{self.json_key}`: number out of range")
            return None

        manager = context.manager(model or self.model)
        obj = manager.find_with_id(identifier)
        if obj is None:
            report_failure(
                context,
                f"Key `{self.json_key}`: {manager.entity_name} with ID {value} not found",
            )
        return obj
