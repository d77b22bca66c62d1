"""Scalar attribute mappings."""

from __future__ import annotations

import base64
import binascii
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping, Optional, Sequence

from dateutil import parser as dtparse

from .base import MISSING, StandardMapping, report_failure

if TYPE_CHECKING:
    from ..context import ObjectContext

LOGGER = logging.getLogger("applecore.mappings")


class NumberMapping(StandardMapping):
    def get_value(self, json: Any, context: "ObjectContext") -> Any:
        value = self.get_attribute_json(json)
        if value is None or value is MISSING:
            return None
        if not isinstance(value, (int, float)):
            report_failure(context, f"Key `{self.json_key}`: expected number")
            return None
        try:
            return self.convert(value)
        except (OverflowError, ValueError):
            # 1e400 decodes to inf, which has no integer form
            report_failure(context, f"Key `{self.json_key}`: number out of range")
            return None

    def convert(self, number: Any) -> Any:
        return number


class IntegerMapping(NumberMapping):
    def convert(self, number: Any) -> int:
        return int(number)


class DoubleMapping(NumberMapping):
    def convert(self, number: Any) -> float:
        return float(number)


class BooleanMapping(NumberMapping):
    def convert(self, number: Any) -> bool:
        return bool(number)


class StringMapping(StandardMapping):
    def get_value(self, json: Any, context: "ObjectContext") -> Any:
        value = self.get_attribute_json(json)
        if value is None or value is MISSING:
            return None
        if isinstance(value, str):
            return value
        report_failure(context, f"Key `{self.json_key}`: expected string")
        return None


def mapped_value(case: Any) -> Any:
    """Return what gets stored for ``case``.

    Objects exposing ``mapped_value`` store that, enum members store their
    ``value`` and anything else is stored as-is.
    """
    if case is None:
        return None
    if hasattr(case, "mapped_value"):
        return case.mapped_value
    if isinstance(case, Enum):
        return case.value
    return case


class CaseMapping(StringMapping):
    """Translates a fixed set of strings into stored values."""

    def __init__(
        self,
        attribute: str,
        json_key: Optional[str] = None,
        *,
        cases: Mapping[str, Any],
        default_case: Any = None,
        skip_if_missing: Optional[bool] = None,
    ) -> None:
        super().__init__(attribute, json_key, skip_if_missing=skip_if_missing)
        self.cases = dict(cases)
        self.default_case = default_case

    def get_value(self, json: Any, context: "ObjectContext") -> Any:
        string = super().get_value(json, context)
        if isinstance(string, str) and string in self.cases:
            return mapped_value(self.cases[string])
        return mapped_value(self.default_case)


class DateMapping(StandardMapping):
    """Parses date strings with ``date_formats``; numbers are UNIX timestamps."""

    date_formats: Sequence[str] = (
        "%Y-%m-%dT%H:%M:%S.%f%z",
        "%Y-%m-%dT%H:%M:%S%z",
    )

    def __init__(
        self,
        attribute: str,
        json_key: Optional[str] = None,
        *,
        date_formats: Optional[Sequence[str]] = None,
        lenient: bool = False,
        skip_if_missing: Optional[bool] = None,
    ) -> None:
        super().__init__(attribute, json_key, skip_if_missing=skip_if_missing)
        if date_formats is not None:
            self.date_formats = tuple(date_formats)
        self.lenient = lenient

    def get_value(self, json: Any, context: "ObjectContext") -> Any:
        value = self.get_attribute_json(json)
        if value is None or value is MISSING:
            return None
        if isinstance(value, str):
            return self.parse(value)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            try:
                return datetime.fromtimestamp(float(value), tz=timezone.utc)
            except (OverflowError, OSError, ValueError):
                report_failure(context, f"Key `{self.json_key}`: number out of range")
                return None
        report_failure(context, f"Key `{self.json_key}`: expected string or number")
        return None

    def parse(self, text: str) -> Optional[datetime]:
        for fmt in self.date_formats:
            try:
                return datetime.strptime(text, fmt)
            except ValueError:
                continue
        if self.lenient:
            try:
                return dtparse.isoparse(text)
            except ValueError:
                pass
        LOGGER.debug("Key `%s`: unparseable date %r", self.json_key, text)
        return None


class Base64Mapping(StringMapping):
    def get_value(self, json: Any, context: "ObjectContext") -> Any:
        string = super().get_value(json, context)
        if string is None:
            return None
        try:
            return base64.b64decode(string, validate=True)
        except (binascii.Error, ValueError):
            report_failure(context, f"Key `{self.json_key}`: invalid Base64 string")
            return None
