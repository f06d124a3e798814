"""Identity resolution: does a raw record denote a new or an existing row?"""

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from src.fixtures.access import read_field
from src.fixtures.descriptor import FixtureDescriptor, RawRecord
from src.fixtures.metadata import MetadataCache
from src.fixtures.store import FixtureStore
from src.fixtures.values import literal_or_none

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identifier:
    """Identifier field values declared by a record, in key order.

    A field the record does not provide holds None.
    """

    fields: tuple[str, ...]
    values: tuple[Any, ...]

    @property
    def is_empty(self) -> bool:
        return all(value is None for value in self.values)

    @property
    def is_complete(self) -> bool:
        return bool(self.fields) and all(value is not None for value in self.values)

    @property
    def is_composite(self) -> bool:
        return len(self.fields) > 1

    @property
    def single_value(self) -> Any:
        """The value of a single-field identifier; None when composite."""
        if len(self.fields) != 1:
            return None
        return self.values[0]

    def as_dict(self) -> dict[str, Any]:
        return dict(zip(self.fields, self.values))


class DispositionKind(StrEnum):
    NEW = "NEW"
    EXISTING = "EXISTING"


@dataclass(frozen=True)
class Disposition:
    """New record, or an existing persisted one (with its handle)."""

    kind: DispositionKind
    handle: Any = None

    @classmethod
    def new(cls) -> "Disposition":
        return cls(kind=DispositionKind.NEW)

    @classmethod
    def existing(cls, handle: Any) -> "Disposition":
        return cls(kind=DispositionKind.EXISTING, handle=handle)

    @property
    def is_new(self) -> bool:
        return self.kind == DispositionKind.NEW


class IdentityResolver:
    """Extracts identifiers and reconciles them against the store."""

    def __init__(self, cache: MetadataCache) -> None:
        self._cache = cache

    def identify(self, record: RawRecord, descriptor: FixtureDescriptor) -> Identifier:
        fields = self._cache.metadata_for(descriptor.entity_type).identifier_fields
        # Computed identifier values are unknown until the record is built.
        values = tuple(literal_or_none(read_field(record, field)) for field in fields)
        return Identifier(fields=fields, values=values)

    async def resolve(
        self,
        record: RawRecord,
        descriptor: FixtureDescriptor,
        store: FixtureStore,
    ) -> tuple[Identifier, Disposition]:
        identifier = self.identify(record, descriptor)

        if identifier.is_empty or not descriptor.reconcile_existing_ids:
            return identifier, Disposition.new()

        if not identifier.is_complete:
            logger.debug(
                "%s: incomplete identifier %s, treating record as new",
                descriptor.label, identifier.as_dict(),
            )
            return identifier, Disposition.new()

        handle = await store.find_one(descriptor.entity_type, identifier.as_dict())
        if handle is None:
            return identifier, Disposition.new()

        logger.debug("%s: %s already persisted", descriptor.label, identifier.as_dict())
        return identifier, Disposition.existing(handle)
