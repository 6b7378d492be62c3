"""
Structured error types for the graves storage subsystem.

Every failure the persistence layer can surface carries a category, an
explicit retry flag, structured context (backend, table, statement) and the
chained driver exception that caused it. Callers never have to parse driver
messages to decide what happened.

Manifesto:
    - **Typed Error Hierarchy:** Config, database, transient and row-mapping
      failures are distinct types handled at distinct seams
    - **Explicit Retry Semantics:** Each error knows if it's retryable
    - **Rich Context:** Errors carry the backend and failing statement
    - **Error Chaining:** Driver exceptions are preserved as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                       GravesError                                │
        │  (category, retryable, context, cause)                           │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ConfigError          DatabaseError        ValidationError       │
        │  (CONFIG, fatal)      (DATABASE)           (VALIDATION)          │
        │       │                    │                    │                │
        │  UnknownBackendError  SchemaError          RowMappingError       │
        │                       MigrationError                             │
        │                                                                  │
        │  TransientError                                                  │
        │  (retryable=True)                                                │
        │       │                                                          │
        │  DatabaseConnectionError                                         │
        └─────────────────────────────────────────────────────────────────┘

Handling Policy:
    - **ConfigError:** fatal, the owning process disables persistence
    - **DatabaseConnectionError:** fatal during startup, logged afterwards
    - **SchemaError:** raised from schema setup when a DDL statement fails
      with anything other than an "already exists" condition
    - **RowMappingError:** the offending row is skipped during bulk load
    - **DatabaseError:** a single write failed, logged and swallowed

Examples:
    >>> error = DatabaseConnectionError("pool exhausted")
    >>> error.retryable
    True
    >>> error = ConfigError("Unknown storage backend: oracle")
    >>> error.with_context(backend="oracle").context.backend
    'oracle'

Tags:
    error-handling, exception-hierarchy, retry-logic, error-context,
    graves, persistence

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing.

    Attributes:
        NETWORK: Connection refused, DNS, socket timeouts
        DATABASE: Pool exhaustion, statement failures, DDL failures
        STORAGE: Legacy store files on disk
        VALIDATION: Bad column names, unreadable rows
        CONFIG: Unknown backend, missing driver, invalid settings
        INTERNAL: Bugs, unexpected state
        UNKNOWN: Uncategorized errors
    """

    NETWORK = "NETWORK"
    DATABASE = "DATABASE"
    STORAGE = "STORAGE"
    VALIDATION = "VALIDATION"
    CONFIG = "CONFIG"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """Structured metadata attached to a :class:`GravesError`.

    Attributes:
        backend: Backend identifier in use (``sqlite``, ``postgresql``, ...)
        table: Logical table the failing statement touched
        statement: SQL text of the failing statement
        column: Column name for schema and update failures
        metadata: Additional key-value pairs
    """

    backend: str | None = None
    table: str | None = None
    statement: str | None = None
    column: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["backend", "table", "statement", "column"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class GravesError(Exception):
    """
    Base exception for all graves storage errors.

    Subclasses set ``default_category`` and ``default_retryable`` so that
    raising sites only pass what differs from the defaults.

    Examples:
        >>> error = GravesError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.to_dict()["retryable"]
        False
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> GravesError:
        """
        Add context to this error (fluent API).

        Usage:
            raise SchemaError("Failed").with_context(table="grave", column="uuid")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# TRANSIENT ERRORS (Usually Retryable)
# =============================================================================


class TransientError(GravesError):
    """Temporary error that may succeed on retry."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class DatabaseConnectionError(TransientError):
    """Database connection, connectivity test or pool acquisition error."""

    default_category = ErrorCategory.DATABASE


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(GravesError):
    """
    Data validation error.

    Never retryable - the caller or the stored data must be fixed.
    """

    default_category = ErrorCategory.VALIDATION
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        return result


class RowMappingError(ValidationError):
    """A stored row could not be translated into a domain object."""

    pass


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(GravesError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class UnknownBackendError(ConfigError):
    """The configured storage backend identifier is not recognised."""

    def __init__(self, identifier: str, supported: list[str] | None = None):
        self.identifier = identifier
        message = f"Unknown storage backend: {identifier}"
        if supported:
            message += f" (supported: {', '.join(supported)})"
        super().__init__(message)


# =============================================================================
# DATABASE ERRORS
# =============================================================================


class DatabaseError(GravesError):
    """A statement failed against the active backend."""

    default_category = ErrorCategory.DATABASE
    default_retryable = False


class SchemaError(DatabaseError):
    """A table or column could not be created or altered."""

    pass


class MigrationError(DatabaseError):
    """The legacy store could not be read or consumed."""

    default_category = ErrorCategory.STORAGE


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, GravesError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "GravesError",
    "TransientError",
    "DatabaseConnectionError",
    "ValidationError",
    "RowMappingError",
    "ConfigError",
    "UnknownBackendError",
    "DatabaseError",
    "SchemaError",
    "MigrationError",
    "is_retryable",
]
