"""Error types for dbmeta introspection."""

from typing import Optional, Dict, Any


class DbMetaError(Exception):
    """Base exception for introspection errors.

    ``fatal`` errors abort the whole run. Non-fatal errors are confined to
    the entity or schema that raised them and recorded as failures.
    """

    fatal = False

    def __init__(self, message: str, code: str = "DBMETA_ERROR", details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to a dictionary for reports."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(DbMetaError):
    """Missing or invalid connection parameters."""

    fatal = True

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="CONFIGURATION_ERROR", details=details)


class ConnectivityError(DbMetaError):
    """Transport or authentication failure talking to the database."""

    fatal = True

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="CONNECTIVITY_ERROR", details=details)


class UnsupportedDialectError(DbMetaError):
    """No introspector implementation exists for the requested dialect."""

    fatal = True

    def __init__(self, dialect: str):
        super().__init__(
            f"Unsupported database dialect: {dialect}",
            code="UNSUPPORTED_DIALECT",
            details={"dialect": dialect},
        )


class EntityNotFoundError(DbMetaError):
    """Table or view is absent from the catalog, or has no columns."""

    def __init__(self, schema: str, name: str, entity_kind: str = "table"):
        super().__init__(
            f"{entity_kind.capitalize()} {schema}.{name} not found or has no columns",
            code="ENTITY_NOT_FOUND",
            details={"schema": schema, "name": name, "kind": entity_kind},
        )


class ProviderQueryError(DbMetaError):
    """A catalog query failed inside the query provider."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="PROVIDER_QUERY_ERROR", details=details)


def is_fatal(error: BaseException) -> bool:
    """Return True if ``error`` must abort the whole introspection run."""
    return isinstance(error, DbMetaError) and error.fatal
