"""Fixture loader: drives resolution, building, persistence and flushing.

One FixtureLoader is one load run. Its reference registry and reflection
cache live exactly as long as the loader object.

State machine:
    IDLE -> LOADING -> (FLUSHING -> LOADING)* -> IDLE

Records are processed strictly one after another and fixtures in ascending
priority order (ties keep declaration order), because a record may refer to
any record committed before it.
"""

import logging
from collections.abc import Iterable
from contextlib import nullcontext
from enum import StrEnum
from typing import Any

from src.fixtures.access import read_field
from src.fixtures.builder import InstanceBuilder
from src.fixtures.descriptor import Fixture, FixtureDescriptor, LoadResult, RawRecord
from src.fixtures.errors import ConfigurationError, FixtureError, LoaderStateError
from src.fixtures.identity import Identifier, IdentityResolver
from src.fixtures.metadata import EntityMetadata, MetadataCache
from src.fixtures.references import ReferenceRegistry
from src.fixtures.scheduler import BatchCommitScheduler
from src.fixtures.store import FixtureStore

logger = logging.getLogger(__name__)

FixtureSource = Fixture | tuple[FixtureDescriptor, Iterable[RawRecord]]


class LoaderState(StrEnum):
    IDLE = "IDLE"
    LOADING = "LOADING"
    FLUSHING = "FLUSHING"


class FixtureLoader:
    """Loads fixtures into a store, one record at a time."""

    def __init__(self, store: FixtureStore) -> None:
        self._store = store
        self._cache = MetadataCache(store)
        self._references = ReferenceRegistry()
        self._resolver = IdentityResolver(self._cache)
        self._builder = InstanceBuilder(self._cache, self._references)
        self._state = LoaderState.IDLE

    @property
    def state(self) -> LoaderState:
        return self._state

    @property
    def references(self) -> ReferenceRegistry:
        return self._references

    def validate(self, descriptor: FixtureDescriptor) -> EntityMetadata:
        """Check a descriptor against the store before any record is built.

        Raises:
            ConfigurationError: Unknown entity type, or a reference prefix
                on an entity with a composite identifier.
        """
        metadata = self._cache.metadata_for(descriptor.entity_type)
        if descriptor.reference_prefix and metadata.is_composite:
            raise ConfigurationError(
                f"Cannot add references for composite identifier "
                f"{metadata.identifier_fields} of {descriptor.entity_type.__name__}",
            )
        return metadata

    async def load_all(self, fixtures: Iterable[FixtureSource]) -> list[LoadResult]:
        """Validate every fixture, then load them in priority order."""
        sources = [_as_source(fixture, self._references) for fixture in fixtures]
        for descriptor, _records in sources:
            try:
                self.validate(descriptor)
            except FixtureError as exc:
                raise exc.with_context(descriptor.label, None)

        ordered = sorted(sources, key=lambda source: source[0].priority)
        results = []
        for descriptor, records in ordered:
            results.append(await self.load(descriptor, records))
        return results

    async def load(
        self,
        descriptor: FixtureDescriptor,
        records: Iterable[RawRecord],
    ) -> LoadResult:
        """Load one fixture's records in declaration order."""
        if self._state != LoaderState.IDLE:
            raise LoaderStateError(
                f"Cannot load {descriptor.label} while the loader is {self._state}",
            )
        self._transition(LoaderState.LOADING)
        try:
            return await self._load(descriptor, records)
        finally:
            self._transition(LoaderState.IDLE)

    async def _load(
        self,
        descriptor: FixtureDescriptor,
        records: Iterable[RawRecord],
    ) -> LoadResult:
        try:
            self.validate(descriptor)
        except FixtureError as exc:
            raise exc.with_context(descriptor.label, None)

        logger.info("Loading fixture %s", descriptor.label)
        scheduler = BatchCommitScheduler(descriptor.flush_every, descriptor.clear_on_flush)
        newly_created = 0
        reconciled = 0
        index = None

        quiet = (
            self._store.suppress_logging()
            if descriptor.disable_store_logging else nullcontext()
        )
        with quiet:
            try:
                for index, record in enumerate(records):
                    if await self._load_record(record, descriptor, scheduler):
                        newly_created += 1
                    else:
                        reconciled += 1
                index = None
                if scheduler.needs_final_flush():
                    await self._flush(scheduler)
            except FixtureError as exc:
                logger.error("Fixture %s aborted at record %s", descriptor.label, index)
                raise exc.with_context(descriptor.label, index)
            except Exception:
                logger.error("Fixture %s aborted at record %s", descriptor.label, index)
                raise

        result = LoadResult(
            fixture=descriptor.label,
            total_records=scheduler.iteration_count,
            newly_created=newly_created,
            reconciled=reconciled,
            flushes=scheduler.flush_count,
        )
        logger.info(
            "Loaded fixture %s: %d records (%d new, %d existing), %d flushes",
            result.fixture, result.total_records, result.newly_created,
            result.reconciled, result.flushes,
        )
        return result

    async def _load_record(
        self,
        record: RawRecord,
        descriptor: FixtureDescriptor,
        scheduler: BatchCommitScheduler,
    ) -> bool:
        """Load one record; True when it was newly created."""
        identifier, disposition = await self._resolver.resolve(
            record, descriptor, self._store,
        )

        if disposition.is_new:
            handle = await self._builder.build(record, descriptor, identifier, self._store)
            self._store.persist(handle)
            if scheduler.record_processed(persisted=True):
                await self._flush(scheduler)
        else:
            handle = disposition.handle
            scheduler.record_processed(persisted=False)

        # After the flush, so store-assigned identifiers can form the key.
        self._register(descriptor, identifier, handle)
        return disposition.is_new

    async def _flush(self, scheduler: BatchCommitScheduler) -> None:
        self._transition(LoaderState.FLUSHING)
        await self._store.flush()
        if scheduler.clear_on_flush:
            self._store.clear()
        scheduler.mark_flushed()
        logger.debug(
            "Flushed after %d records (flush #%d)",
            scheduler.iteration_count, scheduler.flush_count,
        )
        self._transition(LoaderState.LOADING)

    def _register(
        self,
        descriptor: FixtureDescriptor,
        identifier: Identifier,
        handle: Any,
    ) -> None:
        prefix = descriptor.reference_prefix
        if not prefix:
            return
        if identifier.is_composite:
            raise ConfigurationError("Cannot add reference for composite identifiers")

        value = identifier.single_value
        if value is None:
            value = read_field(handle, descriptor.reference_accessor)
        if value is None or value == "":
            if type(handle).__str__ is object.__str__:
                raise ConfigurationError(
                    f"{type(handle).__name__} has no '{descriptor.reference_accessor}' "
                    f"value and no __str__ to build a reference key from",
                )
            value = str(handle)

        self._references.register(f"{prefix}{value}", handle)

    def _transition(self, state: LoaderState) -> None:
        logger.debug("Loader %s -> %s", self._state, state)
        self._state = state


def _as_source(
    fixture: FixtureSource,
    references: ReferenceRegistry,
) -> tuple[FixtureDescriptor, Iterable[RawRecord]]:
    if isinstance(fixture, Fixture):
        fixture.attach(references)
        return fixture.descriptor, fixture.get_records()
    descriptor, records = fixture
    return descriptor, records
