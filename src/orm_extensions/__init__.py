"""
ORM Extensions
Upsert, native merge and type discovery helpers for SQLAlchemy sessions
"""
from orm_extensions.discovery import (
    get_mapped_classes,
    get_module_types,
    get_types_from_interface,
)
from orm_extensions.exceptions import (
    EntityMetadataError,
    MissingPrimaryKeyError,
    OrmExtensionError,
    UnmappedEntityError,
    UnsupportedDialectError,
)
from orm_extensions.infrastructure.database import (
    AsyncEntitySet,
    ColumnDescriptor,
    EntityDescriptor,
    EntitySet,
    EntityState,
    MergeDialect,
    MergeStatement,
    UpsertResult,
    add_or_update,
    add_or_update_async,
    build_merge_statement,
    merge_entity,
    merge_entity_async,
    register_descriptor,
    register_dialect,
)

__version__ = "0.1.0"

__all__ = [
    "add_or_update",
    "add_or_update_async",
    "merge_entity",
    "merge_entity_async",
    "build_merge_statement",
    "EntitySet",
    "AsyncEntitySet",
    "UpsertResult",
    "EntityState",
    "MergeStatement",
    "MergeDialect",
    "register_dialect",
    "ColumnDescriptor",
    "EntityDescriptor",
    "register_descriptor",
    "get_mapped_classes",
    "get_module_types",
    "get_types_from_interface",
    "OrmExtensionError",
    "EntityMetadataError",
    "UnmappedEntityError",
    "MissingPrimaryKeyError",
    "UnsupportedDialectError",
]
