"""Tests for ``coastline.core.result`` — result envelopes."""

from __future__ import annotations

import pytest

from coastline.core.errors import BackendError, StorageError
from coastline.core.result import (
    DeleteResult,
    FileDeleteResult,
    FileResult,
    InsertResult,
    OperationResult,
    QueryResult,
    UpdateResult,
)


class TestOperationResult:
    def test_success(self):
        result = OperationResult.success({"id": 1})
        assert result.ok
        assert result.data == {"id": 1}
        assert result.error is None

    def test_failure(self):
        error = BackendError("boom")
        result = OperationResult.failure(error)
        assert not result.ok
        assert result.data is None
        assert result.error is error

    def test_unwrap_raises_carried_error(self):
        error = BackendError("boom")
        with pytest.raises(BackendError):
            OperationResult.failure(error).unwrap()

    def test_unwrap_or(self):
        assert OperationResult.failure(BackendError("x")).unwrap_or([]) == []
        assert OperationResult.success(None).unwrap_or("fallback") == "fallback"
        assert OperationResult.success(5).unwrap_or(0) == 5

    def test_map(self):
        assert OperationResult.success(2, count=1).map(lambda v: v * 10).data == 20
        error = BackendError("x")
        assert OperationResult.failure(error).map(lambda v: v).error is error
        assert OperationResult.success(None).map(lambda v: v + 1).data is None

    def test_to_dict(self):
        d = OperationResult.failure(BackendError("boom", code="X1")).to_dict()
        assert d["ok"] is False
        assert d["error"]["code"] == "X1"

    def test_is_immutable(self):
        result = OperationResult.success(1)
        with pytest.raises(AttributeError):
            result.data = 2  # type: ignore[misc]


class TestListResults:
    def test_query_result_counts_rows_by_default(self):
        result = QueryResult.success([{"id": 1}, {"id": 2}])
        assert result.count == 2

    def test_query_result_keeps_explicit_total(self):
        result = QueryResult.success([{"id": 1}], count=40)
        assert result.count == 40

    def test_none_rows_become_empty_list(self):
        assert QueryResult.success(None).data == []
        assert UpdateResult.success(None).count == 0

    def test_delete_zero_matches_is_success(self):
        result = DeleteResult.success([])
        assert result.ok
        assert result.count == 0

    def test_insert_result_has_no_default_count(self):
        assert InsertResult.success({"id": "a"}).count is None


class TestFileResults:
    def test_file_result(self):
        assert FileResult(url="https://x/y").ok
        failed = FileResult(error=StorageError("bucket missing"))
        assert not failed.ok
        assert failed.to_dict()["error"]["error_type"] == "StorageError"

    def test_file_delete_result(self):
        assert FileDeleteResult().ok
        assert not FileDeleteResult(error=StorageError("x")).ok
