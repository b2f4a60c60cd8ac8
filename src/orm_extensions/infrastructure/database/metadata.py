"""
Entity Metadata
Column and entity descriptors resolved from SQLAlchemy mappers or registered explicitly
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from sqlalchemy import Table
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import NoInspectionAvailable
from sqlalchemy.orm import Mapper
from sqlalchemy.orm.exc import UnmappedColumnError
from sqlalchemy.types import TypeEngine

from orm_extensions.exceptions import (
    InvalidDescriptorError,
    MissingPrimaryKeyError,
    UnmappedEntityError,
)
from orm_extensions.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ColumnDescriptor:
    """
    One mapped column of an entity.

    Attributes:
        name: Physical column name in the table
        key: Attribute name on the entity instance
        type: SQLAlchemy type used when binding values (None binds raw values)
        primary_key: Whether the column is part of the primary key
        reader: Optional accessor overriding ``getattr(entity, key)``
    """

    name: str
    key: str
    type: TypeEngine[Any] | None = None
    primary_key: bool = False
    reader: Callable[[Any], Any] | None = field(default=None, compare=False, repr=False)

    def read_value(self, entity: Any) -> Any:
        """Read this column's value off an entity instance without modifying it."""
        if self.reader is not None:
            return self.reader(entity)
        return getattr(entity, self.key)


@dataclass(frozen=True)
class EntityDescriptor:
    """
    Read-only metadata for a mapped entity type.

    Columns keep the table's declared order; that order is shared by every
    list rendered into a merge statement and by parameter extraction.
    """

    entity_type: type
    table_name: str
    columns: tuple[ColumnDescriptor, ...]
    schema: str | None = None

    def __post_init__(self) -> None:
        if not self.table_name:
            raise InvalidDescriptorError(
                f"{self.entity_type.__qualname__} has no table name",
                details={"entity_type": self.entity_type.__qualname__},
            )
        if not self.columns:
            raise InvalidDescriptorError(
                f"{self.entity_type.__qualname__} has no mapped columns",
                details={"entity_type": self.entity_type.__qualname__, "table": self.table_name},
            )
        names = [column.name for column in self.columns]
        if len(set(names)) != len(names):
            raise InvalidDescriptorError(
                f"{self.entity_type.__qualname__} maps a column more than once",
                details={"entity_type": self.entity_type.__qualname__, "columns": names},
            )
        if not self.primary_key_columns:
            raise MissingPrimaryKeyError(self.entity_type, self.table_name)

    @property
    def all_columns(self) -> tuple[ColumnDescriptor, ...]:
        return self.columns

    @property
    def primary_key_columns(self) -> tuple[ColumnDescriptor, ...]:
        return tuple(column for column in self.columns if column.primary_key)

    @property
    def non_key_columns(self) -> tuple[ColumnDescriptor, ...]:
        return tuple(column for column in self.columns if not column.primary_key)

    @property
    def qualified_name(self) -> str:
        return f"{self.schema}.{self.table_name}" if self.schema else self.table_name

    def column(self, name: str) -> ColumnDescriptor:
        for column in self.columns:
            if column.name == name:
                return column
        raise KeyError(name)

    def read_values(self, entity: Any) -> tuple[Any, ...]:
        """
        Extract one value per column, in column order.

        Args:
            entity: Instance of the described type

        Returns:
            Tuple of values aligned with ``columns``
        """
        return tuple(column.read_value(entity) for column in self.columns)

    @classmethod
    def build(
        cls,
        entity_type: type,
        table_name: str,
        columns: Iterable[str | ColumnDescriptor],
        primary_key: Iterable[str],
        schema: str | None = None,
    ) -> EntityDescriptor:
        """
        Build a descriptor by hand for types that are not (or not fully) mapped.

        Plain column names are read with ``getattr`` using the name as attribute key.

        Example:
            descriptor = EntityDescriptor.build(
                LegacyRow, "legacy_rows", ["Id", "Payload"], primary_key=["Id"]
            )
        """
        key_names = set(primary_key)
        built: list[ColumnDescriptor] = []
        for column in columns:
            if isinstance(column, str):
                column = ColumnDescriptor(name=column, key=column)
            if column.name in key_names and not column.primary_key:
                column = ColumnDescriptor(
                    name=column.name,
                    key=column.key,
                    type=column.type,
                    primary_key=True,
                    reader=column.reader,
                )
            built.append(column)

        unknown = key_names - {column.name for column in built}
        if unknown:
            raise InvalidDescriptorError(
                f"Primary key columns {sorted(unknown)} are not columns of {table_name}",
                details={"entity_type": entity_type.__qualname__, "table": table_name},
            )
        return cls(entity_type=entity_type, table_name=table_name, columns=tuple(built), schema=schema)


# ─────────────────────────── Resolution ───────────────────────────

_registered: dict[type, EntityDescriptor] = {}


def register_descriptor(descriptor: EntityDescriptor) -> None:
    """Register an explicit descriptor; it takes precedence over mapper inspection."""
    _registered[descriptor.entity_type] = descriptor
    logger.debug(
        "Entity descriptor registered",
        entity_type=descriptor.entity_type.__qualname__,
        table=descriptor.qualified_name,
    )


def unregister_descriptor(entity_type: type) -> None:
    _registered.pop(entity_type, None)


def descriptor_from_mapper(entity_type: type) -> EntityDescriptor:
    """
    Describe a SQLAlchemy-mapped class.

    Only columns of the class's own table are described, in table order.

    Raises:
        UnmappedEntityError: If the type is not mapped
        InvalidDescriptorError: If the mapping is not against a single table
        MissingPrimaryKeyError: If no primary key column is mapped
    """
    try:
        mapper = sa_inspect(entity_type)
    except NoInspectionAvailable:
        raise UnmappedEntityError(entity_type) from None
    if not isinstance(mapper, Mapper):
        raise UnmappedEntityError(entity_type)

    table = mapper.local_table
    if not isinstance(table, Table):
        raise InvalidDescriptorError(
            f"{entity_type.__qualname__} is not mapped to a single table",
            details={"entity_type": entity_type.__qualname__},
        )

    key_names = {column.name for column in table.primary_key.columns}
    if not key_names:
        key_names = {column.name for column in mapper.primary_key if column.table is table}
    columns: list[ColumnDescriptor] = []
    for column in table.columns:
        try:
            prop = mapper.get_property_by_column(column)
        except UnmappedColumnError:
            continue
        columns.append(
            ColumnDescriptor(
                name=column.name,
                key=prop.key,
                type=column.type,
                primary_key=column.name in key_names,
            )
        )

    return EntityDescriptor(
        entity_type=entity_type,
        table_name=table.name,
        columns=tuple(columns),
        schema=table.schema,
    )


def resolve_descriptor(entity_type: type) -> EntityDescriptor:
    """
    Resolve metadata for an entity type.

    Args:
        entity_type: Registered or SQLAlchemy-mapped class

    Returns:
        EntityDescriptor for the type

    Raises:
        EntityMetadataError: If the type is unknown or has no primary key
    """
    registered = _registered.get(entity_type)
    if registered is not None:
        return registered
    return descriptor_from_mapper(entity_type)
