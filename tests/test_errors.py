"""
Tests for the error taxonomy and boundary Result type.
"""
import pytest

from degradation_report.errors import (
    AuditError,
    CacheError,
    ErrorKind,
    ResolverError,
    Result,
    StoreError,
    SynthesisError,
    capture,
)


class TestErrorKinds:
    @pytest.mark.parametrize("error_type,kind", [
        (StoreError, ErrorKind.STORE),
        (CacheError, ErrorKind.CACHE),
        (SynthesisError, ErrorKind.SYNTHESIS),
        (AuditError, ErrorKind.AUDIT),
    ])
    def test_kind(self, error_type, kind):
        error = error_type("failed", operation="op")

        assert isinstance(error, ResolverError)
        assert error.kind is kind
        assert error.operation == "op"
        assert str(error) == "failed"

    def test_kind_values(self):
        assert ErrorKind.STORE.value == "store"
        assert ErrorKind.SYNTHESIS == "synthesis"


class TestResult:
    def test_success(self):
        result = Result.success(5)

        assert result.ok
        assert result.value == 5
        assert result.value_or(0) == 5

    def test_failure(self):
        error = StoreError("down")
        result = Result.failure(error)

        assert not result.ok
        assert result.error is error
        assert result.value_or("default") == "default"


class TestCapture:
    def test_returns_value(self):
        assert capture(StoreError, lambda x: x * 2, 21).value == 42

    def test_captures_matching_error(self):
        def failing():
            raise CacheError("cache down")

        result = capture(CacheError, failing)

        assert not result.ok
        assert isinstance(result.error, CacheError)

    def test_unexpected_error_wrapped(self):
        def lookup():
            raise ConnectionResetError("peer reset")

        result = capture(StoreError, lookup)

        assert not result.ok
        assert isinstance(result.error, StoreError)
        assert result.error.operation == "lookup"
        assert "ConnectionResetError" in str(result.error)
        assert isinstance(result.error.__cause__, ConnectionResetError)

    def test_other_boundary_error_wrapped(self):
        def failing():
            raise StoreError("store down")

        result = capture(CacheError, failing)

        assert isinstance(result.error, CacheError)
        assert isinstance(result.error.__cause__, StoreError)

    def test_passes_kwargs(self):
        result = capture(StoreError, dict, a=1)
        assert result.value == {"a": 1}
