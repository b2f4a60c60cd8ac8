"""
Database Infrastructure
Entity metadata, merge dialects, merge and upsert helpers, sessions
"""
from orm_extensions.infrastructure.database.dialects import (
    MergeDialect,
    MySqlMergeDialect,
    OnConflictMergeDialect,
    OracleMergeDialect,
    PostgresMergeDialect,
    SqliteMergeDialect,
    SqlServerMergeDialect,
    get_dialect,
    register_dialect,
    registered_dialects,
)
from orm_extensions.infrastructure.database.entity_set import AsyncEntitySet, EntitySet
from orm_extensions.infrastructure.database.merge import (
    MergeStatement,
    MergeTemplate,
    build_merge_statement,
    build_merge_template,
    clear_merge_cache,
    merge_entity,
    merge_entity_async,
)
from orm_extensions.infrastructure.database.metadata import (
    ColumnDescriptor,
    EntityDescriptor,
    register_descriptor,
    resolve_descriptor,
    unregister_descriptor,
)
from orm_extensions.infrastructure.database.session import DatabaseSessionFactory
from orm_extensions.infrastructure.database.upsert import (
    EntityState,
    UpsertResult,
    add_or_update,
    add_or_update_async,
)

__all__ = [
    # Metadata
    "ColumnDescriptor",
    "EntityDescriptor",
    "register_descriptor",
    "unregister_descriptor",
    "resolve_descriptor",
    # Dialects
    "MergeDialect",
    "OnConflictMergeDialect",
    "SqlServerMergeDialect",
    "OracleMergeDialect",
    "PostgresMergeDialect",
    "SqliteMergeDialect",
    "MySqlMergeDialect",
    "register_dialect",
    "get_dialect",
    "registered_dialects",
    # Merge
    "MergeTemplate",
    "MergeStatement",
    "build_merge_template",
    "build_merge_statement",
    "clear_merge_cache",
    "merge_entity",
    "merge_entity_async",
    # Upsert
    "EntityState",
    "UpsertResult",
    "add_or_update",
    "add_or_update_async",
    # Sets & sessions
    "EntitySet",
    "AsyncEntitySet",
    "DatabaseSessionFactory",
]
