"""Fixture descriptors and load results.

A FixtureDescriptor declares which entity type a batch of records creates
and how the loader treats it (ordering, references, batching,
reconciliation). ``Fixture`` is the declarative form: subclass it, set the
class attributes and return the records from ``get_records()``.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

from src.fixtures.errors import ConfigurationError, LoaderStateError

if TYPE_CHECKING:
    from src.fixtures.references import ReferenceRegistry

# A raw record is either a field mapping or an already-built instance.
RawRecord = Mapping[str, Any] | object


@dataclass(frozen=True)
class FixtureDescriptor:
    """Immutable per-dataset loading policy.

    Attributes:
        entity_type: Class instantiated for each raw mapping.
        priority: Lower loads first; ties keep declaration order.
        reference_prefix: When set, every loaded record is registered
            under ``prefix + identifier``.
        reference_accessor: Attribute read from the instance when the
            record carried no identifier (``get_<accessor>()`` is tried
            first).
        flush_every: Flush after every N processed records; 0 flushes
            once, at the end.
        reconcile_existing_ids: Look up caller-supplied identifiers and
            skip records that already exist.
        clear_on_flush: Drop the store's identity cache after each flush.
        disable_store_logging: Silence SQL logging while loading.
        name: Label used in logs and errors; defaults to the entity name.
    """

    entity_type: type
    priority: int = 0
    reference_prefix: str | None = None
    reference_accessor: str = "id"
    flush_every: int = 0
    reconcile_existing_ids: bool = True
    clear_on_flush: bool = True
    disable_store_logging: bool = True
    name: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.entity_type, type):
            raise ConfigurationError(
                f"entity_type must be a class, got {self.entity_type!r}",
            )
        if isinstance(self.priority, bool) or not isinstance(self.priority, int):
            raise ConfigurationError(f"priority must be an int, got {self.priority!r}")
        if self.flush_every < 0:
            raise ConfigurationError(
                f"flush_every must be >= 0, got {self.flush_every}",
            )
        if self.reference_prefix == "":
            raise ConfigurationError("reference_prefix must be None or non-empty")
        if not self.reference_accessor:
            raise ConfigurationError("reference_accessor must be non-empty")

    @property
    def label(self) -> str:
        return self.name or self.entity_type.__name__


class Fixture(ABC):
    """Declarative fixture: class attributes plus ``get_records()``.

    Example::

        class PostFixture(Fixture):
            entity_type = PostRow
            reference_prefix = "posts-"
            flush_every = 1

            def get_records(self):
                return [{"id": "p1", "title": "First"}]
    """

    entity_type: ClassVar[type]
    priority: ClassVar[int] = 0
    reference_prefix: ClassVar[str | None] = None
    reference_accessor: ClassVar[str] = "id"
    flush_every: ClassVar[int] = 0
    reconcile_existing_ids: ClassVar[bool] = True
    clear_on_flush: ClassVar[bool] = True
    disable_store_logging: ClassVar[bool] = True

    _references: "ReferenceRegistry | None" = None

    @abstractmethod
    def get_records(self) -> Iterable[RawRecord]:
        """Return the records to load, in insertion order."""

    def attach(self, references: "ReferenceRegistry") -> None:
        """Bind the registry of the loader run this fixture belongs to."""
        self._references = references

    def get_reference(self, key: str) -> Any:
        """Handle registered under ``key`` earlier in the run.

        Meant for ``Deferred`` evaluators built in ``get_records()``.

        Raises:
            LoaderStateError: If no loader has picked up this fixture.
            ReferenceResolutionError: If nothing is registered under the key.
        """
        if self._references is None:
            raise LoaderStateError(
                f"{type(self).__name__} is not attached to a loader",
            )
        return self._references.lookup(key)

    def has_reference(self, key: str) -> bool:
        return self._references is not None and key in self._references

    @property
    def descriptor(self) -> FixtureDescriptor:
        entity_type = getattr(self, "entity_type", None)
        if entity_type is None:
            raise ConfigurationError(
                f"{type(self).__name__} does not declare entity_type",
            )
        return FixtureDescriptor(
            entity_type=entity_type,
            priority=self.priority,
            reference_prefix=self.reference_prefix,
            reference_accessor=self.reference_accessor,
            flush_every=self.flush_every,
            reconcile_existing_ids=self.reconcile_existing_ids,
            clear_on_flush=self.clear_on_flush,
            disable_store_logging=self.disable_store_logging,
            name=type(self).__name__,
        )


@dataclass(frozen=True)
class LoadResult:
    """Outcome of loading one fixture."""

    fixture: str
    total_records: int
    newly_created: int
    reconciled: int
    flushes: int
