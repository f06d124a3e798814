"""Reading and writing fields on entity instances.

Writes go through two tiers behind one ``FieldWriter`` interface: structured
attribute access first (mapped attributes, settable properties, declared
fields), then a ``set_<field>`` mutator method. Reads mirror the chain in the
other direction: a ``get_<field>()`` getter, then plain attribute access.
"""

import inspect
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Mapper

from src.fixtures.errors import ConfigurationError

_MISSING = object()


class FieldWriter(ABC):
    """Assigns one field on an instance."""

    @abstractmethod
    def can_write(self, entity_type: type, field: str) -> bool:
        """Whether this writer can assign ``field`` on instances of ``entity_type``."""

    @abstractmethod
    def write(self, instance: Any, field: str, value: Any) -> None:
        """Assign ``value`` to ``field`` on ``instance``."""


class AttributeWriter(FieldWriter):
    """Structured access through ``setattr``."""

    def can_write(self, entity_type: type, field: str) -> bool:
        mapper = sa_inspect(entity_type, raiseerr=False)
        if isinstance(mapper, Mapper) and field in mapper.attrs:
            return True

        attr = inspect.getattr_static(entity_type, field, _MISSING)
        if isinstance(attr, property):
            return attr.fset is not None
        if attr is not _MISSING:
            if hasattr(attr, "__set__"):
                return True
            # Never shadow methods with data.
            return not callable(attr)

        return any(
            field in getattr(klass, "__annotations__", {})
            for klass in entity_type.__mro__
        )

    def write(self, instance: Any, field: str, value: Any) -> None:
        setattr(instance, field, value)


class MutatorWriter(FieldWriter):
    """Fallback through a conventionally named ``set_<field>`` method."""

    @staticmethod
    def method_name(field: str) -> str:
        return f"set_{field}"

    def can_write(self, entity_type: type, field: str) -> bool:
        return callable(getattr(entity_type, self.method_name(field), None))

    def write(self, instance: Any, field: str, value: Any) -> None:
        getattr(instance, self.method_name(field))(value)


DEFAULT_WRITERS: tuple[FieldWriter, ...] = (AttributeWriter(), MutatorWriter())


def select_writer(
    entity_type: type,
    field: str,
    writers: tuple[FieldWriter, ...] = DEFAULT_WRITERS,
) -> FieldWriter:
    """Return the first writer able to assign ``field``.

    Raises:
        ConfigurationError: If no writer can assign the field.
    """
    for writer in writers:
        if writer.can_write(entity_type, field):
            return writer
    raise ConfigurationError(
        f"{entity_type.__name__} has no writable attribute or "
        f"{MutatorWriter.method_name(field)}() method for field '{field}'",
    )


def read_field(source: Any, field: str) -> Any:
    """Read ``field`` from a raw mapping or a built instance.

    Missing fields read as None; they are not an error.
    """
    if isinstance(source, Mapping):
        return source.get(field)

    getter = getattr(source, f"get_{field}", None)
    if callable(getter):
        value = getter()
        if value:
            return value

    value = getattr(source, field, None)
    if inspect.ismethod(value):
        return value()
    return value
