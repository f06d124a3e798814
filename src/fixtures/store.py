"""Store collaborator interface + in-memory implementation.

- FixtureStore: what the loader needs from persistence
- InMemoryFixtureStore: for tests and database-less runs

The SQLAlchemy-backed store lives with the repositories
(src/repositories/fixture_store.py).
"""

import itertools
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import Any

from src.fixtures.errors import ConfigurationError, StoreError
from src.fixtures.metadata import EntityMetadata


class FixtureStore(ABC):
    """Persistence operations used by the fixture loader.

    ``persist`` only stages a write; it becomes visible after ``flush``.
    ``clear`` drops in-process cached instances without touching
    committed data.
    """

    @abstractmethod
    def metadata_for(self, entity_type: type) -> EntityMetadata:
        """Identifier definition of ``entity_type``.

        Raises:
            ConfigurationError: If the store does not manage the type.
        """

    @abstractmethod
    async def find_one(self, entity_type: type, identifier: Mapping[str, Any]) -> Any | None:
        """Return the persisted record matching every identifier field, if any."""

    @abstractmethod
    def persist(self, instance: Any) -> None:
        """Stage ``instance`` for insertion."""

    @abstractmethod
    async def flush(self) -> None:
        """Write staged instances."""

    @abstractmethod
    def clear(self) -> None:
        """Forget cached instances."""

    @contextmanager
    def suppress_logging(self) -> Iterator[None]:
        """Silence store-level statement logging while the block runs."""
        yield


class InMemoryFixtureStore(FixtureStore):
    """In-memory fixture store for testing.

    NOT for production use. Identifier fields are declared per type. On
    flush, an instance whose single identifier is still None gets the next
    value of a counter, the way a database assigns autoincrement keys.
    Flushing a duplicate identifier raises StoreError and commits nothing
    from that batch.
    """

    def __init__(self, identifiers: Mapping[type, Sequence[str]]) -> None:
        self._identifiers = {
            entity_type: tuple(fields) for entity_type, fields in identifiers.items()
        }
        self._committed: dict[type, list[Any]] = {}
        self._staged: list[Any] = []
        self._sequence = itertools.count(1)
        self.flush_count = 0
        self.clear_count = 0
        self.events: list[tuple[str, Any]] = []

    def metadata_for(self, entity_type: type) -> EntityMetadata:
        fields = self._identifiers.get(entity_type)
        if fields is None:
            raise ConfigurationError(f"Unknown entity type {entity_type.__name__}")
        return EntityMetadata(entity_type=entity_type, identifier_fields=fields)

    async def find_one(self, entity_type: type, identifier: Mapping[str, Any]) -> Any | None:
        self.events.append(("find_one", dict(identifier)))
        return self._match(entity_type, identifier)

    def _match(self, entity_type: type, identifier: Mapping[str, Any]) -> Any | None:
        for row in self._committed.get(entity_type, []):
            if all(getattr(row, field, None) == value for field, value in identifier.items()):
                return row
        return None

    def persist(self, instance: Any) -> None:
        self.events.append(("persist", instance))
        self._staged.append(instance)

    async def flush(self) -> None:
        self.events.append(("flush", len(self._staged)))
        # Check the whole batch first: a rejected flush commits nothing and
        # leaves every instance staged.
        batch: list[tuple[Any, dict[str, Any]]] = []
        for instance in self._staged:
            entity_type = type(instance)
            fields = self.metadata_for(entity_type).identifier_fields
            identifier = {field: getattr(instance, field, None) for field in fields}
            if len(fields) == 1 and identifier[fields[0]] is None:
                identifier[fields[0]] = next(self._sequence)
            duplicate = self._match(entity_type, identifier) is not None or any(
                type(other) is entity_type and other_id == identifier
                for other, other_id in batch
            )
            if duplicate:
                raise StoreError(
                    f"Duplicate identifier {identifier} for {entity_type.__name__}",
                )
            batch.append((instance, identifier))

        for instance, identifier in batch:
            for field, value in identifier.items():
                setattr(instance, field, value)
            self._committed.setdefault(type(instance), []).append(instance)
        self._staged = []
        self.flush_count += 1

    def clear(self) -> None:
        self.events.append(("clear", None))
        self.clear_count += 1

    def all(self, entity_type: type) -> list[Any]:
        """Committed instances of ``entity_type`` in insertion order."""
        return list(self._committed.get(entity_type, []))

    @property
    def pending(self) -> list[Any]:
        return list(self._staged)
