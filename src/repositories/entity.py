"""Generic entity repository, the read side used by the fixture store.

Works for any mapped class. Never commits; callers own the transaction.
"""

from collections.abc import Mapping
from typing import Any, Generic, TypeVar

from sqlalchemy import inspect, select
from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


class EntityRepository(Generic[T]):
    def __init__(self, session: AsyncSession, entity_type: type[T]) -> None:
        self._session = session
        self._entity_type = entity_type

    def identifier_fields(self) -> tuple[str, ...]:
        """Primary-key attribute names, in key order."""
        mapper = inspect(self._entity_type)
        return tuple(
            mapper.get_property_by_column(column).key for column in mapper.primary_key
        )

    async def get(self, identifier: Any) -> T | None:
        """Fetch by primary key: a scalar, tuple, or mapping of attribute names."""
        return await self._session.get(self._entity_type, identifier)

    async def find_by(self, criteria: Mapping[str, Any]) -> list[T]:
        result = await self._session.execute(
            select(self._entity_type).filter_by(**criteria),
        )
        return list(result.scalars().all())

    async def find_one_by(self, criteria: Mapping[str, Any]) -> T | None:
        result = await self._session.execute(
            select(self._entity_type).filter_by(**criteria).limit(1),
        )
        return result.scalars().first()

    async def list_all(self) -> list[T]:
        result = await self._session.execute(select(self._entity_type))
        return list(result.scalars().all())

    async def get_ids(self) -> list[Any]:
        """All values of a single-column identifier.

        Raises:
            ValueError: If the entity has a composite identifier.
        """
        fields = self.identifier_fields()
        if len(fields) != 1:
            raise ValueError(
                f"{self._entity_type.__name__} has a composite identifier {fields}",
            )
        column = getattr(self._entity_type, fields[0])
        result = await self._session.execute(select(column))
        return list(result.scalars().all())
