from typing import Any, Dict, Optional

# ───────────────────────────── Base Exception ───────────────────────────────
class OrmExtensionError(Exception):
    """Base class for errors raised by the helpers themselves. Store errors are never wrapped in these."""
    code: str = "orm_extension_error"
    message: str
    details: Optional[Dict[str, Any]]

    def __init__(
        self,
        message: str = "",
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message or self.__class__.__name__)
        if code is not None:
            self.code = code
        self.message = message or self.__class__.__name__
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


# ───────────────────────────── Metadata Errors ──────────────────────────────
class EntityMetadataError(OrmExtensionError):
    """Entity metadata could not be resolved. Raised before any statement reaches the store."""
    code = "entity_metadata_error"


class UnmappedEntityError(EntityMetadataError):
    code = "unmapped_entity"

    def __init__(self, entity_type: Any) -> None:
        name = getattr(entity_type, "__qualname__", repr(entity_type))
        super().__init__(
            f"{name} is not a known entity type",
            details={"entity_type": name},
        )
        self.entity_type = entity_type


class MissingPrimaryKeyError(EntityMetadataError):
    code = "missing_primary_key"

    def __init__(self, entity_type: Any, table_name: Optional[str] = None) -> None:
        name = getattr(entity_type, "__qualname__", repr(entity_type))
        details: Dict[str, Any] = {"entity_type": name}
        if table_name:
            details["table"] = table_name
        super().__init__(f"{name} has no primary key", details=details)
        self.entity_type = entity_type


class InvalidDescriptorError(EntityMetadataError):
    code = "invalid_descriptor"


# ───────────────────────────── Dialect Errors ───────────────────────────────
class UnsupportedDialectError(OrmExtensionError):
    code = "unsupported_dialect"

    def __init__(self, dialect_name: str, known: Optional[list[str]] = None) -> None:
        details: Dict[str, Any] = {"dialect": dialect_name}
        if known:
            details["known"] = sorted(known)
        super().__init__(f"No merge dialect registered for {dialect_name!r}", details=details)
        self.dialect_name = dialect_name


__all__ = [
    "OrmExtensionError",
    "EntityMetadataError",
    "UnmappedEntityError",
    "MissingPrimaryKeyError",
    "InvalidDescriptorError",
    "UnsupportedDialectError",
]
