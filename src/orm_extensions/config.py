# src/orm_extensions/config.py

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Library settings (Pydantic v2).

    - Read from ORM_EXTENSIONS_* environment variables, then an optional .env file.
    - Only the session factory and logging helpers consume the database and log
      settings; merge_dialect is consulted by the merge generator.
    """

    model_config = SettingsConfigDict(
        env_prefix="ORM_EXTENSIONS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------------------------
    # Database
    # ------------------------------------------------------------------------------------
    database_url: str = Field(
        default="sqlite+aiosqlite:///:memory:",
        description="Async SQLAlchemy URL",
    )
    echo_sql: bool = Field(default=False)
    pool_size: int = Field(default=5, ge=1)  # ignored for SQLite
    max_overflow: int = Field(default=10, ge=0)

    # ------------------------------------------------------------------------------------
    # Merge generator
    # ------------------------------------------------------------------------------------
    merge_dialect: Optional[str] = Field(
        default=None,
        description="Force a merge dialect instead of using the session bind's dialect name",
    )

    # ------------------------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------------------------
    log_level: str = Field(default="INFO")
    json_logs: bool = Field(default=True)

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError("LOG_LEVEL must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL")
        return level

    @field_validator("merge_dialect")
    @classmethod
    def _normalize_dialect(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip().lower()

    def safe_dict(self) -> dict:
        return {
            "database_url": "<masked>" if self.database_url else "<unset>",
            "echo_sql": self.echo_sql,
            "pool_size": self.pool_size,
            "max_overflow": self.max_overflow,
            "merge_dialect": self.merge_dialect or "<auto>",
            "log_level": self.log_level,
            "json_logs": self.json_logs,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
