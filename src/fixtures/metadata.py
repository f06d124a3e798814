"""Entity metadata and the per-run reflection cache."""

import inspect
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Mapper

from src.fixtures.access import FieldWriter, select_writer
from src.fixtures.errors import ConfigurationError

if TYPE_CHECKING:
    from src.fixtures.store import FixtureStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntityMetadata:
    """Identifier definition for one entity type."""

    entity_type: type
    identifier_fields: tuple[str, ...]

    @property
    def is_composite(self) -> bool:
        return len(self.identifier_fields) > 1

    def force_identifier(self, instance: Any, values: Mapping[str, Any]) -> None:
        """Write caller-supplied identifier values onto the instance.

        The store then inserts these values instead of generating its own.
        """
        for field in self.identifier_fields:
            setattr(instance, field, values[field])


class MetadataCache:
    """Reflection results memoised for the lifetime of one loader run.

    Holds entity metadata, the field writer chosen per (type, field) and
    the instantiator per type. Nothing here is shared across runs.
    """

    def __init__(self, store: "FixtureStore") -> None:
        self._store = store
        self._metadata: dict[type, EntityMetadata] = {}
        self._writers: dict[tuple[type, str], FieldWriter] = {}
        self._instantiators: dict[type, Callable[[], Any]] = {}

    def metadata_for(self, entity_type: type) -> EntityMetadata:
        metadata = self._metadata.get(entity_type)
        if metadata is None:
            metadata = self._store.metadata_for(entity_type)
            self._metadata[entity_type] = metadata
        return metadata

    def writer_for(self, entity_type: type, field: str) -> FieldWriter:
        key = (entity_type, field)
        writer = self._writers.get(key)
        if writer is None:
            writer = select_writer(entity_type, field)
            logger.debug(
                "Field %s.%s assigned via %s",
                entity_type.__name__, field, type(writer).__name__,
            )
            self._writers[key] = writer
        return writer

    def instantiator_for(self, entity_type: type) -> Callable[[], Any]:
        instantiator = self._instantiators.get(entity_type)
        if instantiator is None:
            instantiator = _make_instantiator(entity_type)
            self._instantiators[entity_type] = instantiator
        return instantiator

    def instantiate(self, entity_type: type) -> Any:
        """Allocate an instance without running its ``__init__``.

        Raises:
            ConfigurationError: If the type cannot be instantiated.
        """
        instantiator = self.instantiator_for(entity_type)
        try:
            return instantiator()
        except TypeError as exc:
            raise ConfigurationError(
                f"Cannot instantiate {entity_type.__name__}: {exc}",
            ) from exc


def _make_instantiator(entity_type: type) -> Callable[[], Any]:
    if not isinstance(entity_type, type):
        raise ConfigurationError(f"{entity_type!r} is not a class")
    if inspect.isabstract(entity_type):
        raise ConfigurationError(
            f"{entity_type.__name__} is abstract and cannot be instantiated",
        )

    mapper = sa_inspect(entity_type, raiseerr=False)
    if isinstance(mapper, Mapper):
        # Sets up ORM instance state without calling the constructor.
        return mapper.class_manager.new_instance

    return lambda: entity_type.__new__(entity_type)
