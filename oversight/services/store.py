"""
SQL-backed record store used by the triage collections.

Writes are staged on the request's AsyncSession and only become visible on
commit(), so a batch mutation and its audit entry either land together or
not at all.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Generic, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import SQLModel, select, col
from sqlmodel.ext.asyncio.session import AsyncSession

from oversight.core.errors import ConflictError, NotFoundError, StoreError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=SQLModel)


@dataclass
class FilterSpec:
    """Predicates that can be pushed down to the database."""
    equals: Dict[str, Any] = field(default_factory=dict)
    date_field: str = "created_at"
    since: Optional[datetime] = None
    order_by: str = "created_at"
    descending: bool = True
    limit: Optional[int] = None
    options: Sequence[Any] = ()


class SqlModelStore(Generic[ModelT]):
    def __init__(self, session: AsyncSession, model: Type[ModelT]):
        self.session = session
        self.model = model

    def _column(self, name: str):
        if not hasattr(self.model, name):
            raise StoreError(f"{self.model.__name__} has no field '{name}'")
        return col(getattr(self.model, name))

    async def list(self, spec: Optional[FilterSpec] = None) -> List[ModelT]:
        spec = spec or FilterSpec()
        query = select(self.model)
        for option in spec.options:
            query = query.options(option)
        for name, value in spec.equals.items():
            query = query.where(self._column(name) == value)
        if spec.since is not None:
            query = query.where(self._column(spec.date_field) >= spec.since)

        order_column = self._column(spec.order_by)
        # id as secondary key keeps the fetch order deterministic for equal timestamps
        if spec.descending:
            query = query.order_by(order_column.desc(), col(self.model.id).desc())
        else:
            query = query.order_by(order_column.asc(), col(self.model.id).asc())
        if spec.limit:
            query = query.limit(spec.limit)

        try:
            result = await self.session.exec(query)
            return list(result.all())
        except SQLAlchemyError as e:
            logger.warning("Listing %s failed: %s", self.model.__name__, e)
            raise StoreError(f"Could not load {self.model.__name__} records") from e

    async def get(self, id: int) -> Optional[ModelT]:
        try:
            return await self.session.get(self.model, id)
        except SQLAlchemyError as e:
            raise StoreError(f"Could not load {self.model.__name__} {id}") from e

    async def update(self, id: int, patch: Dict[str, Any]) -> ModelT:
        record = await self.get(id)
        if record is None:
            raise NotFoundError(f"{self.model.__name__} {id} not found")
        for key, value in patch.items():
            setattr(record, key, value)
        self.session.add(record)
        await self._flush()
        return record

    async def update_many(self, ids: Sequence[int], patch: Dict[str, Any]) -> int:
        statement = (
            update(self.model)
            .where(col(self.model.id).in_(list(ids)))
            .values(**patch)
        )
        return await self._execute(statement)

    async def update_where(self, equals: Dict[str, Any], patch: Dict[str, Any]) -> List[int]:
        """
        Apply ``patch`` to every row matching ``equals`` and return the ids touched.
        """
        query = select(self.model.id)
        for name, value in equals.items():
            query = query.where(self._column(name) == value)
        try:
            result = await self.session.exec(query)
            ids = list(result.all())
        except SQLAlchemyError as e:
            raise StoreError(f"Could not load {self.model.__name__} records") from e
        if ids:
            affected = await self.update_many(ids, patch)
            if affected != len(ids):
                raise StoreError(
                    f"Updated {affected} of {len(ids)} {self.model.__name__} records; refresh and retry"
                )
        return ids

    async def delete(self, ids: Sequence[int]) -> int:
        statement = delete(self.model).where(col(self.model.id).in_(list(ids)))
        return await self._execute(statement)

    async def insert(self, record: ModelT) -> int:
        self.session.add(record)
        await self._flush()
        return record.id

    async def commit(self) -> None:
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            raise ConflictError("The change conflicts with an existing record") from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.warning("Commit failed: %s", e)
            raise StoreError("Could not save changes") from e

    async def rollback(self) -> None:
        await self.session.rollback()

    async def _execute(self, statement) -> int:
        try:
            result = await self.session.execute(statement)
        except IntegrityError as e:
            raise ConflictError("The change conflicts with an existing record") from e
        except SQLAlchemyError as e:
            logger.warning("Write to %s failed: %s", self.model.__name__, e)
            raise StoreError(f"Could not write {self.model.__name__} records") from e
        return result.rowcount

    async def _flush(self) -> None:
        try:
            await self.session.flush()
        except IntegrityError as e:
            raise ConflictError("The change conflicts with an existing record") from e
        except SQLAlchemyError as e:
            logger.warning("Write to %s failed: %s", self.model.__name__, e)
            raise StoreError(f"Could not write {self.model.__name__} records") from e
