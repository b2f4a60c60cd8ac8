"""
Entity Sets
A mapped model bound to a session, exposing the upsert and merge helpers
"""
from __future__ import annotations

from typing import Any, Generic, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from orm_extensions.infrastructure.database.dialects import MergeDialect
from orm_extensions.infrastructure.database.merge import merge_entity, merge_entity_async
from orm_extensions.infrastructure.database.metadata import EntityDescriptor, resolve_descriptor
from orm_extensions.infrastructure.database.upsert import (
    Predicate,
    UpsertResult,
    add_or_update,
    add_or_update_async,
    predicate_clause,
)

TModel = TypeVar("TModel")


class _BaseEntitySet(Generic[TModel]):
    def __init__(self, model: Type[TModel]) -> None:
        # fail fast for unmapped models
        resolve_descriptor(model)
        self.model = model

    @property
    def descriptor(self) -> EntityDescriptor:
        return resolve_descriptor(self.model)

    def _check(self, entity: Any) -> None:
        if not isinstance(entity, self.model):
            raise TypeError(
                f"{type(entity).__qualname__} is not an instance of {self.model.__qualname__}"
            )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(model={self.model.__qualname__})>"


class EntitySet(_BaseEntitySet[TModel]):
    """
    Synchronous entity set.

    Attributes:
        session: SQLAlchemy session
        model: Mapped model class

    Usage:
        customers = EntitySet(session, Customer)
        customers.add_or_update(Customer(id=7, name="Ada"), Customer.id == 7)
        customers.merge(Customer(id=8, name="Grace"))
        session.commit()
    """

    def __init__(self, session: Session, model: Type[TModel]) -> None:
        super().__init__(model)
        self.session = session

    def add_or_update(
        self,
        entity: TModel,
        predicate: Predicate | None,
        *,
        flush: bool = False,
    ) -> UpsertResult[TModel]:
        self._check(entity)
        return add_or_update(self.session, entity, predicate, flush=flush)

    def merge(self, entity: TModel, *, dialect: str | MergeDialect | None = None) -> int:
        self._check(entity)
        return merge_entity(self.session, entity, dialect=dialect)

    def first(self, predicate: Predicate) -> TModel | None:
        stmt = select(self.model).where(predicate_clause(self.model, predicate)).limit(1)
        return self.session.scalars(stmt).first()


class AsyncEntitySet(_BaseEntitySet[TModel]):
    """
    Asynchronous entity set over an ``AsyncSession``.

    Usage:
        customers = AsyncEntitySet(session, Customer)
        await customers.merge(Customer(id=8, name="Grace"))
        await session.commit()
    """

    def __init__(self, session: AsyncSession, model: Type[TModel]) -> None:
        super().__init__(model)
        self.session = session

    async def add_or_update(
        self,
        entity: TModel,
        predicate: Predicate | None,
        *,
        flush: bool = False,
    ) -> UpsertResult[TModel]:
        self._check(entity)
        return await add_or_update_async(self.session, entity, predicate, flush=flush)

    async def merge(self, entity: TModel, *, dialect: str | MergeDialect | None = None) -> int:
        self._check(entity)
        return await merge_entity_async(self.session, entity, dialect=dialect)

    async def first(self, predicate: Predicate) -> TModel | None:
        stmt = select(self.model).where(predicate_clause(self.model, predicate)).limit(1)
        return (await self.session.scalars(stmt)).first()
