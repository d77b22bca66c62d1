"""Applies registered mappings to entity instances."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, List, Optional, Type, TypeVar

from pydantic import ValidationError
from sqlalchemy import inspect as sa_inspect

from .mappings.base import Mapping, MappingError, StandardMapping, report_failure
from .mappings.registry import MappingRegistry
from .mappings.registry import registry as default_registry

if TYPE_CHECKING:
    from .context import ObjectContext

T = TypeVar("T")


def ensure_mapped(model: Any) -> None:
    if not isinstance(model, type) or sa_inspect(model, raiseerr=False) is None:
        raise TypeError(f"{model!r} is not a mapped class")


class DataMapper(Generic[T]):
    """Maps JSON nodes onto instances of ``model`` using the registry."""

    def __init__(
        self,
        model: Type[T],
        context: "ObjectContext",
        registry: Optional[MappingRegistry] = None,
    ) -> None:
        ensure_mapped(model)
        self.model = model
        self.context = context
        if registry is None:
            registry = getattr(context, "registry", None) or default_registry
        self.registry = registry

    @property
    def entity_name(self) -> str:
        return self.model.__name__

    @property
    def attribute_mappings(self) -> List[Mapping]:
        return self.registry.attribute_mappings(self.model)

    @property
    def id_mapping(self) -> Optional[StandardMapping]:
        return self.registry.id_mapping(self.model)

    @property
    def order_key(self) -> Optional[str]:
        return self.registry.order_key(self.model)

    def map_json(self, json: Any, obj: T) -> None:
        id_mapping = self.id_mapping
        if id_mapping is not None:
            id_mapping.map_value(json, obj, self.context)

        for mapping in self.attribute_mappings:
            mapping.map_value(json, obj, self.context)

    def get_id_from_json(self, json: Any) -> Any:
        id_mapping = self.id_mapping
        if id_mapping is None:
            report_failure(self.context, f"{self.entity_name} has no ID mapping")
            return None

        identifier = id_mapping.get_value(json, self.context)
        if identifier is None:
            report_failure(
                self.context,
                f"{self.entity_name}: no ID at key `{id_mapping.json_key}`",
            )
        return identifier

    def validate(self, json: Any) -> None:
        """Check ``json`` against the pydantic schema registered for the model."""
        schema = self.registry.schema(self.model)
        if schema is None:
            return
        try:
            schema.model_validate(json)
        except ValidationError as exc:
            raise MappingError(f"{self.entity_name}: invalid payload: {exc}") from exc

    # Registration on the default registry

    @classmethod
    def add_mapping(cls, model: type, mapping: Mapping) -> None:
        default_registry.add_mapping(model, mapping)

    @classmethod
    def map_id_with(cls, model: type, mapping: Optional[StandardMapping]) -> None:
        default_registry.map_id_with(model, mapping)

    @classmethod
    def map_order_to(cls, model: type, key: Optional[str]) -> None:
        default_registry.map_order_to(model, key)
