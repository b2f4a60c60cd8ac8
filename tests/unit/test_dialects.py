import pytest
from sqlalchemy import String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from orm_extensions.exceptions import UnsupportedDialectError
from orm_extensions.infrastructure.database.dialects import (
    MergeDialect,
    MySqlMergeDialect,
    OracleMergeDialect,
    SqlServerMergeDialect,
    get_dialect,
    register_dialect,
    registered_dialects,
)
from orm_extensions.infrastructure.database.metadata import resolve_descriptor
from tests.models import Customer, OrderLine


class ReportingBase(DeclarativeBase):
    pass


class Tag(ReportingBase):
    __tablename__ = "tags"
    __table_args__ = {"schema": "sales"}

    code: Mapped[str] = mapped_column(String(20), primary_key=True)


def test_sql_server_merge_text():
    sql = get_dialect("mssql").render(resolve_descriptor(Customer))
    assert sql == (
        "MERGE INTO [customers] AS [target] "
        "USING (SELECT :p0 AS [Id], :p1 AS [Name], :p2 AS [Email]) AS [source] "
        "ON [target].[Id] = [source].[Id] "
        "WHEN MATCHED THEN UPDATE SET [Id] = [source].[Id], [Name] = [source].[Name], [Email] = [source].[Email] "
        "WHEN NOT MATCHED THEN INSERT ([Id], [Name], [Email]) "
        "VALUES ([source].[Id], [source].[Name], [source].[Email]);"
    )


def test_sqlite_on_conflict_text():
    sql = get_dialect("sqlite").render(resolve_descriptor(OrderLine))
    assert sql == (
        'INSERT INTO "order_lines" ("order_id", "line_no", "sku", "quantity") '
        "VALUES (:p0, :p1, :p2, :p3) "
        'ON CONFLICT ("order_id", "line_no") '
        'DO UPDATE SET "order_id" = excluded."order_id", "line_no" = excluded."line_no", '
        '"sku" = excluded."sku", "quantity" = excluded."quantity"'
    )


def test_postgres_uses_schema():
    sql = get_dialect("postgresql").render(resolve_descriptor(Tag))
    assert sql.startswith('INSERT INTO "sales"."tags" ("code") VALUES (:p0) ON CONFLICT ("code")')


def test_mysql_and_mariadb_share_renderer():
    dialect = get_dialect("mariadb")
    assert isinstance(dialect, MySqlMergeDialect)
    sql = dialect.render(resolve_descriptor(Customer))
    assert sql == (
        "INSERT INTO `customers` (`Id`, `Name`, `Email`) VALUES (:p0, :p1, :p2) "
        "ON DUPLICATE KEY UPDATE `Id` = VALUES(`Id`), `Name` = VALUES(`Name`), `Email` = VALUES(`Email`)"
    )


def test_oracle_never_updates_key_columns():
    sql = get_dialect("oracle").render(resolve_descriptor(OrderLine))
    assert "FROM DUAL) source ON (target.order_id = source.order_id AND target.line_no = source.line_no)" in sql
    assert "UPDATE SET target.sku = source.sku, target.quantity = source.quantity" in sql
    assert "target.order_id = source.order_id," not in sql


def test_oracle_key_only_table_skips_matched_clause():
    sql = OracleMergeDialect().render(resolve_descriptor(Tag))
    assert "WHEN MATCHED" not in sql
    assert sql.endswith("WHEN NOT MATCHED THEN INSERT (code) VALUES (source.code)")


@pytest.mark.parametrize("name", ["mssql", "oracle", "postgresql", "sqlite", "mysql"])
def test_join_condition_covers_exactly_the_primary_key(name):
    dialect = get_dialect(name)
    condition = dialect.join_condition(resolve_descriptor(OrderLine))
    parts = condition.split(" AND ")
    assert len(parts) == 2
    assert "order_id" in parts[0] and "line_no" in parts[1]
    assert "sku" not in condition and "quantity" not in condition


@pytest.mark.parametrize("name", ["mssql", "oracle", "postgresql", "sqlite", "mysql"])
def test_placeholders_follow_column_order(name):
    descriptor = resolve_descriptor(Customer)
    sql = get_dialect(name).render(descriptor)
    positions = [sql.index(f":p{i}") for i in range(len(descriptor.columns))]
    assert positions == sorted(positions)
    assert ":p3" not in sql


def test_unknown_dialect():
    with pytest.raises(UnsupportedDialectError) as exc:
        get_dialect("informix")
    assert exc.value.details["dialect"] == "informix"
    assert "sqlite" in exc.value.details["known"]


def test_dialect_names_are_case_insensitive():
    assert isinstance(get_dialect("MSSQL"), SqlServerMergeDialect)


def test_register_custom_dialect():
    class BracketSqliteDialect(SqlServerMergeDialect):
        name = "bracket-test"

    dialect = BracketSqliteDialect()
    register_dialect(dialect)
    assert get_dialect("bracket-test") is dialect
    assert "bracket-test" in registered_dialects()
    assert get_dialect(dialect) is dialect
    assert isinstance(dialect, MergeDialect)
