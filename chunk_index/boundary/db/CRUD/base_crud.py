"""
Generic async CRUD over one mapped model.

Table-specific CRUD classes (chunks, documents, edges, vectors, runs)
subclass BaseCRUD and add their own queries. Chunks and documents are keyed
by natural string ids while runs and edges use UUIDs, so the key column is
taken from the mapper instead of assuming an ``id`` attribute.

Dependencies: sqlalchemy
System role: Shared persistence primitives for the chunk store
"""

from typing import Any, Generic, Sequence, TypeVar

from sqlalchemy import delete, inspect, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from chunk_index.boundary.db.base import Base

ModelT = TypeVar("ModelT", bound=Base)


class BaseCRUD(Generic[ModelT]):
    """
    Key-addressed operations shared by every table of the index.

    Methods never commit; the caller's unit of work owns the transaction.
    Writes flush so database defaults and constraint errors surface inside
    the calling operation.

    Attributes:
        model: Mapped class operated on
        pk: Its (single) primary key column
    """

    def __init__(self, model: type[ModelT]) -> None:
        self.model = model
        self.pk = inspect(model).primary_key[0]

    async def create(self, session: AsyncSession, **values) -> ModelT:
        """
        Insert one row and load its generated columns.

        Args:
            session: Session inside an open transaction
            **values: Column values

        Returns:
            The persisted instance, refreshed after flush
        """
        row = self.model(**values)
        session.add(row)
        await session.flush()
        await session.refresh(row)
        return row

    async def get_by_id(self, session: AsyncSession, id: Any) -> ModelT | None:
        result = await session.execute(select(self.model).where(self.pk == id))
        return result.scalar_one_or_none()

    async def get_by_ids(self, session: AsyncSession, ids: Sequence[Any]) -> dict[Any, ModelT]:
        """Rows for the given keys, keyed by primary key; unknown keys are absent."""
        if not ids:
            return {}
        result = await session.execute(select(self.model).where(self.pk.in_(list(ids))))
        return {getattr(row, self.pk.key): row for row in result.scalars().all()}

    async def get_all(
        self,
        session: AsyncSession,
        limit: int | None = None,
        offset: int = 0,
    ) -> Sequence[ModelT]:
        """Rows in key order, optionally paginated."""
        stmt = select(self.model).order_by(self.pk).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await session.execute(stmt)
        return result.scalars().all()

    async def update_by_id(self, session: AsyncSession, id: Any, **values) -> ModelT | None:
        """
        Set columns on one row.

        Identity-map copies are refreshed from the returned row so callers
        holding the instance see the new values.

        Returns:
            The updated row, or None when the key is unknown
        """
        stmt = (
            update(self.model)
            .where(self.pk == id)
            .values(**values)
            .returning(self.model)
            .execution_options(synchronize_session="fetch")
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def delete_by_id(self, session: AsyncSession, id: Any) -> bool:
        """Delete one row; False when nothing matched."""
        result = await session.execute(delete(self.model).where(self.pk == id))
        return result.rowcount > 0

    async def exists(self, session: AsyncSession, id: Any) -> bool:
        result = await session.execute(select(self.pk).where(self.pk == id))
        return result.scalar_one_or_none() is not None
