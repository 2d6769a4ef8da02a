"""
Error taxonomy and boundary result type.

Every error kind defined here is non-fatal: the orchestrator converts each one
into a degraded continuation and none of them ever reaches the caller of
``resolve``.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, Optional, Type, TypeVar


T = TypeVar("T")


class ErrorKind(str, Enum):
    """Which boundary an error came from."""
    STORE = "store"
    CACHE = "cache"
    SYNTHESIS = "synthesis"
    AUDIT = "audit"


class ResolverError(Exception):
    """Base class for boundary errors."""

    kind: ErrorKind

    def __init__(self, message: str, *, operation: Optional[str] = None) -> None:
        super().__init__(message)
        self.operation = operation


class StoreError(ResolverError):
    """Persistent store unavailable or query failed. Read degrades to not-found."""
    kind = ErrorKind.STORE


class CacheError(ResolverError):
    """Cache backend unavailable. Read degrades to a miss."""
    kind = ErrorKind.CACHE


class SynthesisError(ResolverError):
    """Model call failed, returned unparseable content, or no credential."""
    kind = ErrorKind.SYNTHESIS


class AuditError(ResolverError):
    """Telemetry write failed. Always swallowed."""
    kind = ErrorKind.AUDIT


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a call across a component boundary."""

    value: Optional[T] = None
    error: Optional[ResolverError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ResolverError) -> "Result[T]":
        return cls(error=error)

    def value_or(self, default: Optional[T]) -> Optional[T]:
        """Return the value, or ``default`` when the call failed."""
        return self.value if self.ok else default


def capture(
    error_type: Type[ResolverError],
    fn: Callable[..., T],
    *args,
    **kwargs,
) -> Result[T]:
    """Run ``fn`` at a component boundary and return its outcome as a Result.

    An ``error_type`` exception becomes a failed Result as-is. Any other
    exception is wrapped in ``error_type`` so the caller can still degrade.
    """
    try:
        return Result.success(fn(*args, **kwargs))
    except error_type as e:
        return Result.failure(e)
    except Exception as e:
        name = getattr(fn, "__name__", "call")
        wrapped = error_type(f"{name} failed: {type(e).__name__}: {e}", operation=name)
        wrapped.__cause__ = e
        return Result.failure(wrapped)
