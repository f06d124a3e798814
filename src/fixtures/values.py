"""Field values in raw fixture records.

A raw record maps field names to values. Plain values are literals; the
wrappers below mark values the instance builder computes at assignment time.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

# (instance_so_far, descriptor, store) -> value, or an awaitable of the value
Evaluator = Callable[[Any, Any, Any], Any | Awaitable[Any]]


@dataclass(frozen=True)
class Literal:
    """A value assigned as-is."""

    value: Any


@dataclass(frozen=True)
class Deferred:
    """A value computed when the field is assigned.

    The evaluator receives the partially built instance, the fixture
    descriptor and the store, and runs exactly once per record.
    """

    evaluator: Evaluator


@dataclass(frozen=True)
class Reference:
    """A handle registered earlier in the same load, looked up by key."""

    key: str


FieldValue = Literal | Deferred | Reference


def ref(key: str) -> Reference:
    """Refer to a record registered under ``key`` (prefix + identifier)."""
    return Reference(key)


def as_field_value(value: Any) -> FieldValue:
    """Wrap a raw mapping value so callers can dispatch on its variant."""
    if isinstance(value, (Literal, Deferred, Reference)):
        return value
    return Literal(value)


def literal_or_none(value: Any) -> Any:
    """Return the literal content of a raw value, or None if it is computed later."""
    wrapped = as_field_value(value)
    if isinstance(wrapped, Literal):
        return wrapped.value
    return None
