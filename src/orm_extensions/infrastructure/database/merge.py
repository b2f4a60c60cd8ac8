"""
Merge Statement Generator
Insert-or-update a single entity by primary key with one native statement
"""
from __future__ import annotations

from dataclasses import dataclass
from functools import cached_property, lru_cache
from typing import Any

from sqlalchemy import bindparam, text
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import InstanceState, Mapper, Session
from sqlalchemy.sql.elements import TextClause

from orm_extensions.config import get_settings
from orm_extensions.infrastructure.database.dialects import MergeDialect, bind_name, get_dialect
from orm_extensions.infrastructure.database.metadata import (
    ColumnDescriptor,
    EntityDescriptor,
    resolve_descriptor,
)
from orm_extensions.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class MergeTemplate:
    """
    Command text for one (entity type, dialect) pair.

    Depends only on column metadata, so it is cached and shared between calls.
    """

    sql: str
    dialect_name: str
    descriptor: EntityDescriptor

    @property
    def columns(self) -> tuple[ColumnDescriptor, ...]:
        return self.descriptor.columns

    @cached_property
    def text_clause(self) -> TextClause:
        params = []
        for index, column in enumerate(self.columns):
            if column.type is not None:
                params.append(bindparam(bind_name(index), type_=column.type))
            else:
                params.append(bindparam(bind_name(index)))
        return text(self.sql).bindparams(*params)

    def bind(self, entity: Any, descriptor: EntityDescriptor | None = None) -> MergeStatement:
        """
        Extract the entity's values in column order and pair them with the command text.

        Descriptors that differ only by column readers share a template, so
        values are read through the caller's descriptor when one is given.
        """
        source = descriptor if descriptor is not None else self.descriptor
        return MergeStatement(template=self, parameters=source.read_values(entity))


@dataclass(frozen=True)
class MergeStatement:
    """
    A generated statement: command text plus one positional value per column.

    Attributes:
        template: Template the statement was bound from
        parameters: Values in column order; parameters[i] binds to columns[i]
    """

    template: MergeTemplate
    parameters: tuple[Any, ...]

    def __post_init__(self) -> None:
        if len(self.parameters) != len(self.template.columns):
            raise ValueError(
                f"Merge statement for {self.template.descriptor.qualified_name} expects "
                f"{len(self.template.columns)} parameters, got {len(self.parameters)}"
            )

    @property
    def sql(self) -> str:
        return self.template.sql

    @property
    def columns(self) -> tuple[ColumnDescriptor, ...]:
        return self.template.columns

    def bind_map(self) -> dict[str, Any]:
        return {bind_name(index): value for index, value in enumerate(self.parameters)}

    def as_text(self) -> TextClause:
        return self.template.text_clause


@lru_cache(maxsize=256)
def _render_template(descriptor: EntityDescriptor, dialect: MergeDialect) -> MergeTemplate:
    sql = dialect.render(descriptor)
    logger.debug(
        "Merge template built",
        entity_type=descriptor.entity_type.__qualname__,
        table=descriptor.qualified_name,
        dialect=dialect.name,
        columns=len(descriptor.columns),
    )
    return MergeTemplate(sql=sql, dialect_name=dialect.name, descriptor=descriptor)


def clear_merge_cache() -> None:
    """Drop all cached merge templates."""
    _render_template.cache_clear()


def build_merge_template(
    entity_type: type,
    dialect: str | MergeDialect,
    descriptor: EntityDescriptor | None = None,
) -> MergeTemplate:
    """
    Build (or fetch from cache) the merge command text for an entity type.

    Args:
        entity_type: Mapped or registered entity class
        dialect: Dialect name or instance
        descriptor: Explicit metadata, resolved from the type when omitted

    Raises:
        EntityMetadataError: If the type is unknown or has no primary key
        UnsupportedDialectError: If the dialect is not registered
    """
    if descriptor is None:
        descriptor = resolve_descriptor(entity_type)
    return _render_template(descriptor, get_dialect(dialect))


def build_merge_statement(
    entity: Any,
    dialect: str | MergeDialect,
    descriptor: EntityDescriptor | None = None,
) -> MergeStatement:
    """
    Build the merge statement for one entity instance.

    Example:
        statement = build_merge_statement(customer, "mssql")
        statement.sql         # MERGE INTO [customers] AS [target] ...
        statement.parameters  # (7, "Ada", "ada@example.com")
    """
    if descriptor is None:
        descriptor = resolve_descriptor(type(entity))
    return build_merge_template(type(entity), dialect, descriptor).bind(entity, descriptor)


def _session_dialect(
    session: Session | AsyncSession,
    entity_type: type,
    dialect: str | MergeDialect | None,
) -> MergeDialect:
    if dialect is not None:
        return get_dialect(dialect)

    configured = get_settings().merge_dialect
    if configured:
        return get_dialect(configured)

    mapper = sa_inspect(entity_type, raiseerr=False)
    if isinstance(mapper, Mapper):
        bind = session.get_bind(mapper=mapper)
    else:
        bind = session.get_bind()
    return get_dialect(bind.dialect.name)


def _prepare(
    session: Session | AsyncSession,
    entity: Any,
    dialect: str | MergeDialect | None,
) -> MergeStatement:
    descriptor = resolve_descriptor(type(entity))
    merge_dialect = _session_dialect(session, descriptor.entity_type, dialect)
    return _render_template(descriptor, merge_dialect).bind(entity, descriptor)


async def _load_unloaded_columns(session: AsyncSession, entity: Any) -> None:
    state = sa_inspect(entity, raiseerr=False)
    if not isinstance(state, InstanceState) or not state.persistent or entity not in session:
        return

    descriptor = resolve_descriptor(type(entity))
    unloaded = state.unloaded
    keys = [column.key for column in descriptor.columns if column.key in unloaded]
    if keys:
        await session.refresh(entity, attribute_names=keys)


def merge_entity(
    session: Session,
    entity: Any,
    *,
    dialect: str | MergeDialect | None = None,
) -> int:
    """
    Insert the entity's row, or update it if its primary key already exists.

    Runs one statement in the session's current transaction. The session's
    identity map is left untouched; refresh tracked instances if needed.

    Args:
        session: Session bound to the target store
        entity: Instance of a mapped or registered entity type
        dialect: Override for the merge dialect (defaults to the session bind's)

    Returns:
        Number of rows affected as reported by the store

    Raises:
        EntityMetadataError: Before any statement is sent, if metadata is unusable
        sqlalchemy.exc.DBAPIError: Store failures, unchanged
    """
    statement = _prepare(session, entity, dialect)
    table = statement.template.descriptor.qualified_name
    try:
        result = session.execute(statement.as_text(), statement.bind_map())
    except Exception as e:
        logger.error(
            "Merge failed",
            table=table,
            dialect=statement.template.dialect_name,
            error=str(e),
        )
        raise

    rowcount = result.rowcount  # type: ignore[attr-defined]
    logger.debug("Merge executed", table=table, dialect=statement.template.dialect_name, rowcount=rowcount)
    return rowcount


async def merge_entity_async(
    session: AsyncSession,
    entity: Any,
    *,
    dialect: str | MergeDialect | None = None,
) -> int:
    """
    Async variant of ``merge_entity``.

    Suspends once, while the statement is executed. Cancellation propagates
    from the awaited call; whether the row was written is up to the store.
    Expired or deferred columns of an instance tracked by ``session`` are
    loaded first, since attribute access cannot lazy-load under asyncio.
    """
    await _load_unloaded_columns(session, entity)
    statement = _prepare(session, entity, dialect)
    table = statement.template.descriptor.qualified_name
    try:
        result = await session.execute(statement.as_text(), statement.bind_map())
    except Exception as e:
        logger.error(
            "Merge failed",
            table=table,
            dialect=statement.template.dialect_name,
            error=str(e),
        )
        raise

    rowcount = result.rowcount  # type: ignore[attr-defined]
    logger.debug("Merge executed", table=table, dialect=statement.template.dialect_name, rowcount=rowcount)
    return rowcount
