"""Tests for ``coastline.core.errors`` — taxonomy, context and classification."""

from __future__ import annotations

import pytest

from coastline.core.errors import (
    BackendError,
    BackendTimeoutError,
    CoastlineError,
    ConfigError,
    ConstraintViolationError,
    DatabaseConnectionError,
    ErrorCategory,
    ErrorContext,
    InvalidConfigError,
    MissingConfigError,
    PermissionDeniedError,
    StorageError,
    TransactionAbortError,
    TranslationError,
    categorize_error,
    is_retryable,
)


class TestDefaults:
    @pytest.mark.parametrize(
        ("cls", "category", "retryable"),
        [
            (DatabaseConnectionError, ErrorCategory.DATABASE, True),
            (TranslationError, ErrorCategory.VALIDATION, False),
            (BackendError, ErrorCategory.DATABASE, False),
            (ConstraintViolationError, ErrorCategory.DATABASE, False),
            (PermissionDeniedError, ErrorCategory.AUTH, False),
            (BackendTimeoutError, ErrorCategory.NETWORK, True),
            (StorageError, ErrorCategory.STORAGE, False),
            (TransactionAbortError, ErrorCategory.TRANSACTION, False),
            (ConfigError, ErrorCategory.CONFIG, False),
        ],
    )
    def test_category_and_retryable(self, cls, category, retryable):
        error = cls("boom")
        assert error.category is category
        assert error.retryable is retryable
        assert isinstance(error, CoastlineError)

    def test_explicit_overrides_win(self):
        error = BackendError("boom", retryable=True, category=ErrorCategory.NETWORK)
        assert error.retryable is True
        assert error.category is ErrorCategory.NETWORK

    def test_backend_subclasses_share_parent(self):
        assert issubclass(ConstraintViolationError, BackendError)
        assert issubclass(StorageError, BackendError)
        assert not issubclass(TranslationError, BackendError)


class TestContext:
    def test_with_context_sets_known_fields_and_metadata(self):
        error = BackendError("boom").with_context(table="users", operation="select", sqlstate="42P01")
        assert error.context.table == "users"
        assert error.context.operation == "select"
        assert error.context.metadata == {"sqlstate": "42P01"}

    def test_with_context_is_fluent(self):
        error = TranslationError("bad")
        assert error.with_context(table="t") is error

    def test_context_to_dict_skips_none(self):
        ctx = ErrorContext(backend="platform", metadata={"bucket": "media"})
        assert ctx.to_dict() == {"backend": "platform", "bucket": "media"}


class TestSerialization:
    def test_to_dict_includes_cause_and_code(self):
        cause = RuntimeError("driver said no")
        error = ConstraintViolationError("duplicate key", code="23505", cause=cause).with_context(table="users")
        d = error.to_dict()
        assert d["error_type"] == "ConstraintViolationError"
        assert d["code"] == "23505"
        assert d["cause"] == "driver said no"
        assert d["context"] == {"table": "users"}
        assert error.__cause__ is cause

    def test_to_dict_without_context(self):
        d = TranslationError("bad").to_dict()
        assert "context" not in d
        assert "cause" not in d

    def test_repr(self):
        assert repr(TranslationError("bad")) == "TranslationError('bad', category=VALIDATION)"


class TestConfigErrors:
    def test_missing_config_message(self):
        error = MissingConfigError("COASTLINE_DB_TYPE")
        assert error.key == "COASTLINE_DB_TYPE"
        assert "COASTLINE_DB_TYPE" in error.message

    def test_invalid_config_keeps_value(self):
        error = InvalidConfigError("COASTLINE_DB_TYPE", "mongo")
        assert error.value == "mongo"
        assert "'mongo'" in error.message


class TestHelpers:
    def test_is_retryable(self):
        assert is_retryable(DatabaseConnectionError("x"))
        assert not is_retryable(TranslationError("x"))
        assert is_retryable(ConnectionResetError())
        assert not is_retryable(ValueError())

    def test_categorize_error(self):
        assert categorize_error(StorageError("x")) is ErrorCategory.STORAGE
        assert categorize_error(OSError()) is ErrorCategory.NETWORK
        assert categorize_error(TypeError()) is ErrorCategory.VALIDATION
        assert categorize_error(KeyError()) is ErrorCategory.UNKNOWN
