"""Configuration management for dbmeta."""

import os
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from pydantic import Field
from pydantic_settings import BaseSettings

from .errors import ConfigurationError


def _find_env_file() -> Optional[str]:
    """Find .env file in multiple locations.

    Search order:
    1. Current working directory
    2. ~/.dbmeta/.env
    3. Package directory (where this file is located)
    """
    if os.path.exists(".env"):
        return ".env"

    user_env = Path.home() / ".dbmeta" / ".env"
    if user_env.exists():
        return str(user_env)

    package_dir = Path(__file__).parent.parent
    package_env = package_dir / ".env"
    if package_env.exists():
        return str(package_env)

    return None


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Connection
    db_type: str = Field(
        default="postgres",
        description="Database dialect (postgres, duckdb)"
    )
    db_url: Optional[str] = Field(
        default=None,
        description="Full connection string; overrides the individual parameters"
    )
    db_host: Optional[str] = Field(default=None, description="Database host")
    db_port: Optional[int] = Field(default=5432, description="Database port")
    db_user: Optional[str] = Field(default=None, description="Database user")
    db_password: Optional[str] = Field(default=None, description="Database password")
    db_name: Optional[str] = Field(default=None, description="Database name")

    # DuckDB
    duckdb_path: Optional[str] = Field(
        default=None,
        description="Path to the .duckdb file (default: in-memory)"
    )
    duckdb_read_only: bool = Field(
        default=True,
        description="Open DuckDB files read-only"
    )

    # Pool and concurrency
    pool_min_size: int = Field(default=1, description="Minimum pooled connections")
    pool_max_size: int = Field(
        default=5,
        description="Maximum pooled connections; bounds in-flight catalog queries"
    )
    schema_concurrency: int = Field(
        default=1,
        description="Number of schemas introspected at once (1 = sequential)"
    )
    query_timeout_seconds: Optional[float] = Field(
        default=None,
        description="Per-statement timeout for catalog queries"
    )

    # Introspection behaviour
    include_system_schemas: bool = Field(
        default=False,
        description="Include system schemas when discovering all schemas"
    )
    hstore_as_json: bool = Field(
        default=False,
        description="Normalize the hstore extension type to json instead of unsupported"
    )

    log_level: str = Field(default="WARNING", description="Logging level for the CLI")

    class Config:
        env_file = _find_env_file()
        env_file_encoding = "utf-8"

    def build_connection_string(self) -> str:
        """Return ``db_url`` or assemble a PostgreSQL DSN from the parts.

        Raises:
            ConfigurationError: If a required parameter is missing
        """
        if self.db_url:
            return self.db_url

        required = {
            "db_user": self.db_user,
            "db_host": self.db_host,
            "db_port": self.db_port,
            "db_name": self.db_name,
        }
        missing = [name for name, value in required.items() if value in (None, "")]
        if missing:
            raise ConfigurationError(
                f"Missing connection parameters: {', '.join(missing)}",
                details={"missing": missing},
            )

        credentials = quote(self.db_user, safe="")
        if self.db_password:
            credentials += ":" + quote(self.db_password, safe="")
        return f"postgresql://{credentials}@{self.db_host}:{self.db_port}/{self.db_name}"

    def validate_pool(self) -> None:
        if self.pool_min_size < 0 or self.pool_max_size < 1 or self.pool_min_size > self.pool_max_size:
            raise ConfigurationError(
                f"Invalid pool size: min={self.pool_min_size}, max={self.pool_max_size}"
            )
        if self.schema_concurrency < 1:
            raise ConfigurationError(f"schema_concurrency must be >= 1, got {self.schema_concurrency}")


# Global settings instance
settings = Settings()
