"""Tests for the graves error hierarchy."""

from __future__ import annotations

import sqlite3

from graves.core.errors import (
    ConfigError,
    DatabaseConnectionError,
    DatabaseError,
    ErrorCategory,
    GravesError,
    MigrationError,
    RowMappingError,
    SchemaError,
    UnknownBackendError,
    ValidationError,
    is_retryable,
)


class TestHierarchy:
    def test_categories(self) -> None:
        assert DatabaseConnectionError("x").category is ErrorCategory.DATABASE
        assert DatabaseError("x").category is ErrorCategory.DATABASE
        assert SchemaError("x").category is ErrorCategory.DATABASE
        assert MigrationError("x").category is ErrorCategory.STORAGE
        assert ConfigError("x").category is ErrorCategory.CONFIG
        assert RowMappingError("x").category is ErrorCategory.VALIDATION

    def test_subclassing(self) -> None:
        assert issubclass(UnknownBackendError, ConfigError)
        assert issubclass(RowMappingError, ValidationError)
        assert issubclass(SchemaError, DatabaseError)

    def test_unknown_backend_message(self) -> None:
        error = UnknownBackendError("oracle", ["sqlite", "mysql"])
        assert error.identifier == "oracle"
        assert error.message == "Unknown storage backend: oracle (supported: sqlite, mysql)"


class TestRetry:
    def test_retry_flags(self) -> None:
        assert DatabaseConnectionError("pool exhausted").retryable is True
        assert ConfigError("bad").retryable is False
        assert is_retryable(DatabaseConnectionError("x"))
        assert is_retryable(TimeoutError())
        assert not is_retryable(ValueError())

    def test_override(self) -> None:
        assert DatabaseError("deadlock", retryable=True).retryable is True


class TestContext:
    def test_with_context_and_to_dict(self) -> None:
        cause = sqlite3.OperationalError("no such table: grave")
        error = DatabaseError("Statement failed", cause=cause).with_context(
            backend="sqlite", table="grave", statement="SELECT 1", attempt=2
        )

        assert error.__cause__ is cause
        data = error.to_dict()
        assert data["error_type"] == "DatabaseError"
        assert data["context"] == {"backend": "sqlite", "table": "grave", "statement": "SELECT 1", "attempt": 2}
        assert data["cause"] == "no such table: grave"

    def test_validation_fields(self) -> None:
        data = RowMappingError("bad uuid", field="uuid", value="zzz").to_dict()
        assert data["field"] == "uuid"
        assert data["value"] == "'zzz'"

    def test_repr(self) -> None:
        assert repr(GravesError("boom")) == "GravesError('boom', category=INTERNAL)"
