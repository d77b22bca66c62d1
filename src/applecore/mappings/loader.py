"""Declare mappings in YAML instead of registration calls.

Example::

    Post:
      id: {integer: remote_id, from: id}
      order: position
      attributes:
        - string: title
        - {date: published_at, lenient: true}
        - {to_many: comments, ordered: true}
        - {related_id: author, target: Author}
        - {case: status, cases: {draft: 0, live: 1}, default: 0}

Each attribute item names its type by key, with the attribute name as value.
``from`` overrides the JSON key. ``id: null`` disables the ID mapping.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping as MappingABC
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import yaml

from .base import Mapping, MappingError, StandardMapping
from .registry import MappingRegistry
from .registry import registry as default_registry
from .relationships import (RelatedObjectIDMapping, ToManyRelationshipMapping,
                            ToOneRelationshipMapping)
from .scalars import (Base64Mapping, BooleanMapping, CaseMapping, DateMapping,
                      DoubleMapping, IntegerMapping, StringMapping)

LOGGER = logging.getLogger("applecore.mappings.loader")

Factory = Callable[[str, Optional[str], Dict[str, Any], Callable[[str], type]], Mapping]


def _plain(cls):
    def build(attribute, json_key, options, resolve):
        return cls(attribute, json_key, skip_if_missing=options.get("skip_if_missing"))

    return build


def _case(attribute, json_key, options, resolve):
    cases = options.get("cases")
    if not isinstance(cases, MappingABC):
        raise MappingError(f"case mapping `{attribute}` needs a `cases` table")
    return CaseMapping(
        attribute,
        json_key,
        cases={str(key): value for key, value in cases.items()},
        default_case=options.get("default"),
        skip_if_missing=options.get("skip_if_missing"),
    )


def _date(attribute, json_key, options, resolve):
    return DateMapping(
        attribute,
        json_key,
        date_formats=options.get("formats"),
        lenient=bool(options.get("lenient", False)),
        skip_if_missing=options.get("skip_if_missing"),
    )


def _target(options, resolve) -> Optional[type]:
    name = options.get("target")
    return resolve(name) if name else None


def _to_one(attribute, json_key, options, resolve):
    return ToOneRelationshipMapping(
        attribute,
        _target(options, resolve),
        json_key,
        update_existing=bool(options.get("update_existing", True)),
        skip_if_missing=options.get("skip_if_missing"),
    )


def _to_many(attribute, json_key, options, resolve):
    return ToManyRelationshipMapping(
        attribute,
        _target(options, resolve),
        json_key,
        ordered=bool(options.get("ordered", False)),
        update_existing=bool(options.get("update_existing", True)),
        skip_if_missing=options.get("skip_if_missing"),
    )


def _related_id(attribute, json_key, options, resolve):
    return RelatedObjectIDMapping(
        attribute,
        _target(options, resolve),
        json_key,
        skip_if_missing=options.get("skip_if_missing"),
    )


MAPPING_TYPES: Dict[str, Factory] = {
    "integer": _plain(IntegerMapping),
    "double": _plain(DoubleMapping),
    "boolean": _plain(BooleanMapping),
    "string": _plain(StringMapping),
    "base64": _plain(Base64Mapping),
    "date": _date,
    "case": _case,
    "to_one": _to_one,
    "to_many": _to_many,
    "related_id": _related_id,
}


def _model_lookup(models: Any) -> Dict[str, type]:
    if isinstance(models, MappingABC):
        return dict(models)
    mapper_registry = getattr(models, "registry", None)
    if mapper_registry is not None and hasattr(mapper_registry, "mappers"):
        return {mapper.class_.__name__: mapper.class_ for mapper in mapper_registry.mappers}
    return {model.__name__: model for model in models}


def _build_mapping(item: Any, resolve: Callable[[str], type]) -> Mapping:
    if isinstance(item, str):
        return StringMapping(item)
    if not isinstance(item, MappingABC):
        raise MappingError(f"Invalid mapping declaration: {item!r}")

    options = dict(item)
    kind = options.pop("type", None)
    attribute = options.pop("attribute", None)
    if kind is None:
        kinds = [key for key in options if key in MAPPING_TYPES]
        if len(kinds) != 1:
            raise MappingError(f"Cannot determine mapping type of {item!r}")
        kind = kinds[0]
        attribute = options.pop(kind)

    factory = MAPPING_TYPES.get(kind)
    if factory is None:
        raise MappingError(f"Unknown mapping type `{kind}`")
    if not isinstance(attribute, str) or not attribute:
        raise MappingError(f"Mapping {item!r} has no attribute name")
    return factory(attribute, options.get("from"), options, resolve)


def _read(source: Union[str, Path, MappingABC]) -> MappingABC:
    if isinstance(source, MappingABC):
        return source
    if isinstance(source, Path) or (isinstance(source, str) and "\n" not in source and Path(source).is_file()):
        with Path(source).open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    else:
        data = yaml.safe_load(source)
    if data is None:
        return {}
    if not isinstance(data, MappingABC):
        raise MappingError("Mapping document must be a table keyed by model name")
    return data


def load_mappings(
    source: Union[str, Path, MappingABC],
    models: Any,
    registry: Optional[MappingRegistry] = None,
) -> List[type]:
    """Register the mappings declared in ``source``; return the configured models.

    ``models`` is a ``{name: class}`` table, a declarative base or an iterable
    of mapped classes.
    """
    target_registry = registry if registry is not None else default_registry
    lookup = _model_lookup(models)

    def resolve(name: str) -> type:
        try:
            return lookup[name]
        except KeyError:
            raise MappingError(f"Unknown model `{name}`") from None

    configured: List[type] = []
    for model_name, declaration in _read(source).items():
        model = resolve(str(model_name))
        declaration = declaration or {}
        if not isinstance(declaration, MappingABC):
            raise MappingError(f"Declaration for `{model_name}` must be a table")

        mappings = [_build_mapping(item, resolve) for item in declaration.get("attributes") or []]
        options: Dict[str, Any] = {}
        if "id" in declaration:
            id_decl = declaration["id"]
            if id_decl is None:
                options["id"] = None
            else:
                id_mapping = _build_mapping(id_decl, resolve)
                if not isinstance(id_mapping, StandardMapping):
                    raise MappingError(f"ID mapping of `{model_name}` must be a standard mapping")
                options["id"] = id_mapping
        if "order" in declaration:
            options["order_key"] = declaration["order"]

        target_registry.configure(model, *mappings, **options)
        LOGGER.debug("Registered %s mappings for %s", len(mappings), model_name)
        configured.append(model)
    return configured
