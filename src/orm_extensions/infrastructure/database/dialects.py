"""
Merge Dialects
Render a store's native "insert or update by primary key" construct
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import ClassVar

from sqlalchemy.dialects.mssql.base import MSDialect
from sqlalchemy.dialects.mysql.base import MySQLDialect
from sqlalchemy.dialects.oracle.base import OracleDialect as SAOracleDialect
from sqlalchemy.dialects.postgresql.base import PGDialect
from sqlalchemy.dialects.sqlite.base import SQLiteDialect as SASQLiteDialect
from sqlalchemy.engine import Dialect

from orm_extensions.exceptions import UnsupportedDialectError
from orm_extensions.infrastructure.database.metadata import ColumnDescriptor, EntityDescriptor

BIND_PREFIX = "p"


def bind_name(index: int) -> str:
    """Name of the positional bind parameter for the column at ``index``."""
    return f"{BIND_PREFIX}{index}"


class MergeDialect(ABC):
    """
    Base class for merge/upsert renderers.

    Subclasses pick the SQLAlchemy dialect whose identifier preparer quotes
    names, and implement ``render``. Every list produced here walks
    ``descriptor.columns`` in order, so placeholder i always carries column i.
    """

    name: ClassVar[str]
    aliases: ClassVar[tuple[str, ...]] = ()
    sqlalchemy_dialect: ClassVar[type[Dialect]]

    target_alias: ClassVar[str] = "target"
    source_alias: ClassVar[str] = "source"
    # Whether key columns appear in the update assignment list
    updates_key_columns: ClassVar[bool] = True

    def __init__(self) -> None:
        self._preparer = self.sqlalchemy_dialect().identifier_preparer

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name!r})>"

    # ── identifiers ──

    def quote_identifier(self, identifier: str) -> str:
        return self._preparer.quote_identifier(identifier)

    def qualify_table(self, descriptor: EntityDescriptor) -> str:
        table = self.quote_identifier(descriptor.table_name)
        if descriptor.schema:
            return f"{self.quote_identifier(descriptor.schema)}.{table}"
        return table

    def placeholder(self, index: int) -> str:
        return f":{bind_name(index)}"

    # ── clause fragments ──

    def join_condition(self, descriptor: EntityDescriptor) -> str:
        """Equality of every primary key column between the target and source aliases."""
        target = self.quote_identifier(self.target_alias)
        source = self.quote_identifier(self.source_alias)
        return " AND ".join(
            f"{target}.{self.quote_identifier(column.name)} = {source}.{self.quote_identifier(column.name)}"
            for column in descriptor.primary_key_columns
        )

    def source_projection(self, descriptor: EntityDescriptor) -> str:
        return ", ".join(
            f"{self.placeholder(index)} AS {self.quote_identifier(column.name)}"
            for index, column in enumerate(descriptor.columns)
        )

    def insert_columns(self, descriptor: EntityDescriptor) -> str:
        return ", ".join(self.quote_identifier(column.name) for column in descriptor.columns)

    def insert_values(self, descriptor: EntityDescriptor) -> str:
        source = self.quote_identifier(self.source_alias)
        return ", ".join(f"{source}.{self.quote_identifier(column.name)}" for column in descriptor.columns)

    def update_columns(self, descriptor: EntityDescriptor) -> tuple[ColumnDescriptor, ...]:
        if self.updates_key_columns:
            return descriptor.columns
        return descriptor.non_key_columns

    def update_assignments(self, descriptor: EntityDescriptor) -> str:
        source = self.quote_identifier(self.source_alias)
        return ", ".join(
            f"{self.quote_identifier(column.name)} = {source}.{self.quote_identifier(column.name)}"
            for column in self.update_columns(descriptor)
        )

    @abstractmethod
    def render(self, descriptor: EntityDescriptor) -> str:
        """Render the full command text for one row of ``descriptor``."""


class SqlServerMergeDialect(MergeDialect):
    """T-SQL MERGE with bracket-quoted identifiers."""

    name = "mssql"
    sqlalchemy_dialect = MSDialect

    def render(self, descriptor: EntityDescriptor) -> str:
        target = self.quote_identifier(self.target_alias)
        source = self.quote_identifier(self.source_alias)
        return (
            f"MERGE INTO {self.qualify_table(descriptor)} AS {target} "
            f"USING (SELECT {self.source_projection(descriptor)}) AS {source} "
            f"ON {self.join_condition(descriptor)} "
            f"WHEN MATCHED THEN UPDATE SET {self.update_assignments(descriptor)} "
            f"WHEN NOT MATCHED THEN INSERT ({self.insert_columns(descriptor)}) "
            f"VALUES ({self.insert_values(descriptor)});"
        )


class OracleMergeDialect(MergeDialect):
    """
    Oracle MERGE.

    Oracle raises ORA-38104 when a column referenced in the ON clause is
    updated, so key columns never appear in the SET list. Identifiers are
    quoted only where Oracle requires it, matching how SQLAlchemy emits DDL.
    """

    name = "oracle"
    sqlalchemy_dialect = SAOracleDialect
    updates_key_columns = False

    def quote_identifier(self, identifier: str) -> str:
        return self._preparer.quote(identifier)

    def render(self, descriptor: EntityDescriptor) -> str:
        target = self.quote_identifier(self.target_alias)
        source = self.quote_identifier(self.source_alias)
        sql = (
            f"MERGE INTO {self.qualify_table(descriptor)} {target} "
            f"USING (SELECT {self.source_projection(descriptor)} FROM DUAL) {source} "
            f"ON ({self.join_condition(descriptor)})"
        )
        if self.update_columns(descriptor):
            sql += f" WHEN MATCHED THEN UPDATE SET {self.update_assignments(descriptor)}"
        return sql + (
            f" WHEN NOT MATCHED THEN INSERT ({self.insert_columns(descriptor)}) "
            f"VALUES ({self.insert_values(descriptor)})"
        )

    def update_assignments(self, descriptor: EntityDescriptor) -> str:
        target = self.quote_identifier(self.target_alias)
        source = self.quote_identifier(self.source_alias)
        return ", ".join(
            f"{target}.{self.quote_identifier(column.name)} = {source}.{self.quote_identifier(column.name)}"
            for column in self.update_columns(descriptor)
        )


class OnConflictMergeDialect(MergeDialect):
    """
    ``INSERT ... ON CONFLICT (keys) DO UPDATE`` (PostgreSQL, SQLite >= 3.24).

    The conflict target is the primary key; the pseudo-table ``excluded``
    plays the source row.
    """

    source_alias = "excluded"

    def conflict_target(self, descriptor: EntityDescriptor) -> str:
        return ", ".join(self.quote_identifier(column.name) for column in descriptor.primary_key_columns)

    def update_assignments(self, descriptor: EntityDescriptor) -> str:
        return ", ".join(
            f"{self.quote_identifier(column.name)} = {self.source_alias}.{self.quote_identifier(column.name)}"
            for column in self.update_columns(descriptor)
        )

    def render(self, descriptor: EntityDescriptor) -> str:
        placeholders = ", ".join(self.placeholder(index) for index in range(len(descriptor.columns)))
        return (
            f"INSERT INTO {self.qualify_table(descriptor)} ({self.insert_columns(descriptor)}) "
            f"VALUES ({placeholders}) "
            f"ON CONFLICT ({self.conflict_target(descriptor)}) "
            f"DO UPDATE SET {self.update_assignments(descriptor)}"
        )


class PostgresMergeDialect(OnConflictMergeDialect):
    name = "postgresql"
    sqlalchemy_dialect = PGDialect


class SqliteMergeDialect(OnConflictMergeDialect):
    name = "sqlite"
    sqlalchemy_dialect = SASQLiteDialect


class MySqlMergeDialect(MergeDialect):
    """
    ``INSERT ... ON DUPLICATE KEY UPDATE`` (MySQL, MariaDB).

    The match is made by the store on any unique key, which for a table
    keyed only by its primary key is the primary key. MySQL reports 2
    affected rows when an existing row changes.
    """

    name = "mysql"
    aliases = ("mariadb",)
    sqlalchemy_dialect = MySQLDialect

    def update_assignments(self, descriptor: EntityDescriptor) -> str:
        return ", ".join(
            f"{self.quote_identifier(column.name)} = VALUES({self.quote_identifier(column.name)})"
            for column in self.update_columns(descriptor)
        )

    def render(self, descriptor: EntityDescriptor) -> str:
        placeholders = ", ".join(self.placeholder(index) for index in range(len(descriptor.columns)))
        return (
            f"INSERT INTO {self.qualify_table(descriptor)} ({self.insert_columns(descriptor)}) "
            f"VALUES ({placeholders}) "
            f"ON DUPLICATE KEY UPDATE {self.update_assignments(descriptor)}"
        )


# ─────────────────────────── Registry ───────────────────────────

_dialects: dict[str, MergeDialect] = {}


def register_dialect(dialect: MergeDialect) -> None:
    """Register a dialect under its name and aliases, replacing any existing entry."""
    for name in (dialect.name, *dialect.aliases):
        _dialects[name.lower()] = dialect


def get_dialect(dialect: str | MergeDialect) -> MergeDialect:
    """
    Look up a merge dialect.

    Args:
        dialect: Registered name (SQLAlchemy dialect name) or a dialect instance

    Raises:
        UnsupportedDialectError: If no dialect is registered under the name
    """
    if isinstance(dialect, MergeDialect):
        return dialect
    try:
        return _dialects[dialect.lower()]
    except KeyError:
        raise UnsupportedDialectError(dialect, known=list(_dialects)) from None


def registered_dialects() -> list[str]:
    return sorted(_dialects)


for _dialect in (
    SqlServerMergeDialect(),
    OracleMergeDialect(),
    PostgresMergeDialect(),
    SqliteMergeDialect(),
    MySqlMergeDialect(),
):
    register_dialect(_dialect)
