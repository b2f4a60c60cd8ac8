"""
Predicate Upsert
Find a row by predicate, then add the entity or copy its values onto the match
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Generic, TypeVar, Union

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from orm_extensions.infrastructure.database.metadata import resolve_descriptor
from orm_extensions.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# A boolean clause, or a callable building one from the model class:
#   Customer.email == "ada@example.com"
#   lambda c: c.email == "ada@example.com"
Predicate = Union[ColumnElement[bool], Callable[[Any], ColumnElement[bool]]]


class EntityState(str, Enum):
    """Tracking state of the instance returned by an upsert."""

    ADDED = "added"
    MODIFIED = "modified"


@dataclass(frozen=True)
class UpsertResult(Generic[T]):
    """
    Outcome of an upsert.

    Attributes:
        entity: The instance now tracked by the session
        state: ADDED for a new pending row, MODIFIED for an updated existing row
    """

    entity: T
    state: EntityState

    @property
    def created(self) -> bool:
        return self.state is EntityState.ADDED


def predicate_clause(model: Any, predicate: Predicate) -> ColumnElement[bool]:
    """Return the clause itself, or the clause built by calling the predicate with the model."""
    if isinstance(predicate, ColumnElement):
        return predicate
    return predicate(model)


def _lookup(entity: Any, predicate: Predicate | None) -> Select[Any]:
    if predicate is None:
        raise ValueError("predicate is required")
    model = type(entity)
    # fail on unmapped types before touching the store
    resolve_descriptor(model)
    return select(model).where(predicate_clause(model, predicate)).limit(1)


def _apply(session: Session | AsyncSession, entity: T, existing: T | None) -> UpsertResult[T]:
    model = type(entity)
    if existing is None:
        session.add(entity)
        logger.debug("Upsert added entity", entity_type=model.__qualname__)
        return UpsertResult(entity=entity, state=EntityState.ADDED)

    if existing is not entity:
        descriptor = resolve_descriptor(model)
        for column in descriptor.non_key_columns:
            setattr(existing, column.key, column.read_value(entity))
    logger.debug("Upsert modified entity", entity_type=model.__qualname__)
    return UpsertResult(entity=existing, state=EntityState.MODIFIED)


def add_or_update(
    session: Session,
    entity: T,
    predicate: Predicate | None,
    *,
    flush: bool = False,
) -> UpsertResult[T]:
    """
    Add ``entity`` unless a row matches ``predicate``; otherwise update that row.

    Nothing is committed. On a match, every non-key column value of ``entity``
    is copied onto the tracked row, which is returned in place of ``entity``.

    Args:
        session: Active session
        entity: Transient instance carrying the desired values
        predicate: Clause identifying the existing row
        flush: Flush the session after applying the change

    Returns:
        UpsertResult with the tracked instance and its state

    Raises:
        ValueError: If predicate is None
        EntityMetadataError: If the entity type is not mapped

    Example:
        result = add_or_update(session, Customer(id=7, name="Ada"), Customer.id == 7)
        session.commit()
    """
    stmt = _lookup(entity, predicate)
    existing = session.scalars(stmt).first()
    result = _apply(session, entity, existing)
    if flush:
        session.flush()
    return result


async def add_or_update_async(
    session: AsyncSession,
    entity: T,
    predicate: Predicate | None,
    *,
    flush: bool = False,
) -> UpsertResult[T]:
    """Async variant of ``add_or_update``."""
    stmt = _lookup(entity, predicate)
    existing = (await session.scalars(stmt)).first()
    result = _apply(session, entity, existing)
    if flush:
        await session.flush()
    return result
