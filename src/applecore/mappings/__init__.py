"""JSON-to-attribute mappings and their registry."""

from .base import (MISSING, CustomMapping, Mapping, MappingError,
                   StandardMapping, report_failure)
from .registry import (MappingEntry, MappingRegistry, default_id_mapping,
                       registry)
from .relationships import (RelatedObjectIDMapping, RelationshipMapping,
                            ToManyRelationshipMapping,
                            ToOneRelationshipMapping)
from .scalars import (Base64Mapping, BooleanMapping, CaseMapping, DateMapping,
                      DoubleMapping, IntegerMapping, NumberMapping,
                      StringMapping, mapped_value)

__all__ = [
    "MISSING",
    "Base64Mapping",
    "BooleanMapping",
    "CaseMapping",
    "CustomMapping",
    "DateMapping",
    "DoubleMapping",
    "IntegerMapping",
    "Mapping",
    "MappingEntry",
    "MappingError",
    "MappingRegistry",
    "NumberMapping",
    "RelatedObjectIDMapping",
    "RelationshipMapping",
    "StandardMapping",
    "StringMapping",
    "ToManyRelationshipMapping",
    "ToOneRelationshipMapping",
    "default_id_mapping",
    "mapped_value",
    "registry",
    "report_failure",
]
