"""Futures-based contexts and declarative JSON mapping on top of SQLAlchemy."""

from .context import ChangeSet, ConcurrencyType, ObjectContext
from .manager import DataManager
from .mapper import DataMapper
from .mappings import (Base64Mapping, BooleanMapping, CaseMapping,
                       CustomMapping, DateMapping, DoubleMapping,
                       IntegerMapping, Mapping, MappingError, MappingRegistry,
                       RelatedObjectIDMapping, StandardMapping, StringMapping,
                       ToManyRelationshipMapping, ToOneRelationshipMapping,
                       registry)
from .stack import DataStack, NamedContext, StoreError
from .strings import underscore

__all__ = [
    "Base64Mapping",
    "BooleanMapping",
    "CaseMapping",
    "ChangeSet",
    "ConcurrencyType",
    "CustomMapping",
    "DataManager",
    "DataMapper",
    "DataStack",
    "DateMapping",
    "DoubleMapping",
    "IntegerMapping",
    "Mapping",
    "MappingError",
    "MappingRegistry",
    "NamedContext",
    "ObjectContext",
    "RelatedObjectIDMapping",
    "StandardMapping",
    "StoreError",
    "StringMapping",
    "ToManyRelationshipMapping",
    "ToOneRelationshipMapping",
    "registry",
    "underscore",
]
