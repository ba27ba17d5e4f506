"""
Base Repository for the Platform Billing Service

Generic async repository over a caller-owned session. Repositories never
commit; the session context that created them decides the transaction.
"""

from enum import Enum
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel


ModelType = TypeVar("ModelType", bound=SQLModel)


def as_uuid(value: Any) -> UUID:
    """Accept str or UUID ids from the domain layer."""
    return value if isinstance(value, UUID) else UUID(str(value))


def to_column_values(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Unwrap enums so domain field dicts can be written as-is."""
    return {
        key: value.value if isinstance(value, Enum) else value
        for key, value in fields.items()
    }


class BaseRepository(Generic[ModelType]):
    """
    Async repository with the primitives the billing repositories share.

    Args:
        model: The SQLModel class to operate on
        session: Async database session
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self._model = model
        self._session = session

    async def get_by_id(self, id: Any) -> Optional[ModelType]:
        """Get a single row by primary key, or None."""
        return await self._session.get(self._model, as_uuid(id))

    async def add(self, db_obj: ModelType) -> ModelType:
        """Insert a row and load server-side defaults."""
        self._session.add(db_obj)
        await self._session.flush()
        await self._session.refresh(db_obj)
        return db_obj

    async def update_by_id(
        self,
        id: Any,
        fields: Dict[str, Any],
        **conditions: Any,
    ) -> int:
        """
        Single UPDATE statement for one row.

        Extra keyword conditions are matched as column equality, which
        lets callers make the write conditional (compare-and-set).

        Returns:
            Number of rows updated (0 or 1)
        """
        stmt = update(self._model).where(self._model.id == as_uuid(id))
        for column, value in to_column_values(conditions).items():
            stmt = stmt.where(getattr(self._model, column) == value)
        stmt = stmt.values(**to_column_values(fields))

        result = await self._session.execute(stmt)
        return result.rowcount or 0

    async def list_where(self, *criteria: Any, order_by: Any = None) -> List[ModelType]:
        """Select rows matching all criteria."""
        stmt = select(self._model).where(*criteria)
        if order_by is not None:
            stmt = stmt.order_by(order_by)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())
