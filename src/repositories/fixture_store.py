"""SQLAlchemy-backed fixture store.

Maps the loader's store operations onto an AsyncSession:
- persist -> add()
- flush -> flush(), then commit() when built with commit_on_flush
- clear -> expunge_all()
- find_one -> get() by primary key, without autoflush so staged rows
  are only written at the loader's batch boundaries
"""

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapper

from src.fixtures.errors import ConfigurationError
from src.fixtures.metadata import EntityMetadata
from src.fixtures.store import FixtureStore
from src.repositories.entity import EntityRepository

logger = logging.getLogger(__name__)


class SqlAlchemyFixtureStore(FixtureStore):
    def __init__(self, session: AsyncSession, *, commit_on_flush: bool = False) -> None:
        self._session = session
        self._commit_on_flush = commit_on_flush
        if commit_on_flush:
            # Handles registered after a committing flush are read once
            # detached, so their loaded state must survive the commit.
            session.sync_session.expire_on_commit = False

    def metadata_for(self, entity_type: type) -> EntityMetadata:
        mapper = inspect(entity_type, raiseerr=False)
        if not isinstance(mapper, Mapper):
            raise ConfigurationError(f"{entity_type!r} is not a mapped entity class")
        fields = EntityRepository(self._session, entity_type).identifier_fields()
        return EntityMetadata(entity_type=entity_type, identifier_fields=fields)

    async def find_one(self, entity_type: type, identifier: Mapping[str, Any]) -> Any | None:
        repo = EntityRepository(self._session, entity_type)
        with self._session.sync_session.no_autoflush:
            return await repo.get(dict(identifier))

    def persist(self, instance: Any) -> None:
        self._session.add(instance)

    async def flush(self) -> None:
        await self._session.flush()
        if self._commit_on_flush:
            await self._session.commit()
            logger.debug("Committed fixture batch")

    def clear(self) -> None:
        self._session.expunge_all()

    @contextmanager
    def suppress_logging(self) -> Iterator[None]:
        """Turn SQL echo off on the bound engine, restoring it afterwards."""
        bind = self._session.sync_session.get_bind()
        engine = getattr(bind, "engine", bind)
        previous = engine.echo
        engine.echo = False
        try:
            yield
        finally:
            engine.echo = previous
