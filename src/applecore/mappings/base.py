"""Building blocks shared by every JSON-to-attribute mapping."""

from __future__ import annotations

import inspect
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping as MappingABC
from typing import TYPE_CHECKING, Any, Callable, Optional

from ..strings import underscore

if TYPE_CHECKING:
    from ..context import ObjectContext

LOGGER = logging.getLogger("applecore.mappings")


class MappingError(ValueError):
    """Raised when a JSON payload does not fit the registered mappings."""


class _Missing:
    __slots__ = ()

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


def report_failure(context: Any, message: str) -> None:
    """Raise in strict contexts, log otherwise."""
    if getattr(context, "strict_mapping", True):
        raise MappingError(message)
    LOGGER.warning(message)


class Mapping(ABC):
    """Writes one value from a JSON node onto an entity instance."""

    @abstractmethod
    def map_value(self, json: Any, obj: Any, context: "ObjectContext") -> None:
        raise NotImplementedError


class CustomMapping(Mapping):
    """Delegates to a callable.

    The handler is called as ``handler(obj, json, context)`` or, when it only
    takes two positional parameters, ``handler(obj, json)``. An unbound method
    such as ``Post.apply_json`` fits the second form.
    """

    def __init__(self, handler: Callable[..., None]) -> None:
        self.handler = handler
        self._pass_context = _positional_arity(handler) >= 3

    def map_value(self, json: Any, obj: Any, context: "ObjectContext") -> None:
        if self._pass_context:
            self.handler(obj, json, context)
        else:
            self.handler(obj, json)


def _positional_arity(func: Callable[..., Any]) -> int:
    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError):
        return 3
    count = 0
    for param in signature.parameters.values():
        if param.kind is inspect.Parameter.VAR_POSITIONAL:
            return 3
        if param.kind in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
        ):
            count += 1
    return count


class StandardMapping(Mapping):
    """Maps the JSON value at ``json_key`` onto ``attribute``.

    ``json_key`` defaults to the snake_case form of the attribute name and may
    contain dots to reach into nested objects. Subclasses implement
    :meth:`get_value` to convert the raw JSON value.

    An absent key maps like ``null`` unless ``skip_if_missing`` is set, in
    which case the attribute is left untouched.
    """

    skip_if_missing = False

    def __init__(
        self,
        attribute: str,
        json_key: Optional[str] = None,
        *,
        skip_if_missing: Optional[bool] = None,
    ) -> None:
        self.attribute = attribute
        self.json_key = json_key if json_key is not None else underscore(attribute)
        if skip_if_missing is not None:
            self.skip_if_missing = skip_if_missing

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.attribute!r}, json_key={self.json_key!r})"

    def get_attribute_json(self, json: Any) -> Any:
        """Return the node at ``json_key``, ``None`` for null or ``MISSING``."""
        current = json
        for part in self.json_key.split("."):
            if current is None:
                break
            if not isinstance(current, MappingABC):
                return MISSING
            current = current.get(part, MISSING)
            if current is MISSING:
                return MISSING
        return current

    def get_value(self, json: Any, context: "ObjectContext") -> Any:
        return None

    def map_value(self, json: Any, obj: Any, context: "ObjectContext") -> None:
        if self.skip_if_missing and self.get_attribute_json(json) is MISSING:
            return
        setattr(obj, self.attribute, self.get_value(json, context))
