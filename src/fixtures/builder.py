"""Materialising new instances from raw records."""

import inspect
from collections.abc import Mapping
from typing import Any

from src.fixtures.descriptor import FixtureDescriptor, RawRecord
from src.fixtures.errors import ConfigurationError, DeferredReferenceError, FixtureError
from src.fixtures.identity import Identifier
from src.fixtures.metadata import MetadataCache
from src.fixtures.references import ReferenceRegistry
from src.fixtures.store import FixtureStore
from src.fixtures.values import Deferred, FieldValue, Literal, as_field_value


class InstanceBuilder:
    """Builds one instance per new record.

    Mapping records are assigned field by field, in declaration order, onto
    an instance allocated without calling its constructor. Records that
    are already instances of the entity type are used as they are.
    """

    def __init__(self, cache: MetadataCache, references: ReferenceRegistry) -> None:
        self._cache = cache
        self._references = references

    async def build(
        self,
        record: RawRecord,
        descriptor: FixtureDescriptor,
        identifier: Identifier,
        store: FixtureStore,
    ) -> Any:
        entity_type = descriptor.entity_type

        if isinstance(record, Mapping):
            instance = self._cache.instantiate(entity_type)
            for field, raw in record.items():
                value = await self._evaluate(
                    field, as_field_value(raw), instance, descriptor, store,
                )
                self._cache.writer_for(entity_type, field).write(instance, field, value)
        elif isinstance(record, entity_type):
            instance = record
        else:
            raise ConfigurationError(
                f"Record of type {type(record).__name__} is neither a mapping "
                f"nor a {entity_type.__name__}",
            )

        if identifier.is_complete:
            self._cache.metadata_for(entity_type).force_identifier(
                instance, identifier.as_dict(),
            )
        return instance

    async def _evaluate(
        self,
        field: str,
        value: FieldValue,
        instance: Any,
        descriptor: FixtureDescriptor,
        store: FixtureStore,
    ) -> Any:
        if isinstance(value, Literal):
            return value.value
        if not isinstance(value, Deferred):
            return self._references.lookup(value.key)

        try:
            result = value.evaluator(instance, descriptor, store)
            if inspect.isawaitable(result):
                result = await result
        except FixtureError:
            raise
        except Exception as exc:
            raise DeferredReferenceError(field, exc) from exc
        return result
