"""
Report Cache - Fast path in front of the substance store.

Keys are built from the normalized substance name. Entries carry the source
that produced them. Expiry is opt-in: without a TTL an entry lives until it is
overwritten. Invalidating the remote cache is left to the backend operator.
"""
from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional

import requests
from pydantic import ValidationError

from degradation_report.errors import CacheError
from degradation_report.models import (
    CacheEntry,
    DegradationReport,
    ResponseSource,
    normalize_substance_name,
)
from degradation_report.rest_client import SupabaseClient


logger = logging.getLogger(__name__)


CACHE_KEY_PREFIX = "substance_"


def cache_key(substance_name: str) -> str:
    """Cache key for a substance, e.g. ``substance_paracetamol``."""
    return f"{CACHE_KEY_PREFIX}{normalize_substance_name(substance_name)}"


def _substance_from_key(key: str) -> str:
    return key[len(CACHE_KEY_PREFIX):] if key.startswith(CACHE_KEY_PREFIX) else key


class ReportCache(ABC):
    """Contract shared by cache backends. Backend failures raise CacheError."""

    @abstractmethod
    def get(self, key: str) -> Optional[DegradationReport]:
        """Return the cached report, or None on a miss."""

    @abstractmethod
    def set(self, key: str, report: DegradationReport, source: ResponseSource) -> None:
        """Store or overwrite an entry."""

    def close(self) -> None:
        """Release backend resources."""


class InMemoryReportCache(ReportCache):
    """
    Process-local cache of reports.

    - Optional TTL; expired entries are evicted when read.
    - Safe to share between threads.
    """

    def __init__(self, ttl_seconds: Optional[float] = None) -> None:
        self.ttl_seconds = ttl_seconds
        self._lock = threading.Lock()
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[DegradationReport]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self.ttl_seconds):
                logger.debug(f"Cache entry {key!r} expired")
                del self._entries[key]
                return None
        return entry.report.model_copy(deep=True)

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        """Raw entry lookup (no expiry check), for inspection."""
        with self._lock:
            return self._entries.get(key)

    def set(self, key: str, report: DegradationReport, source: ResponseSource) -> None:
        entry = CacheEntry(
            key=key,
            substance_name=_substance_from_key(key),
            report=report.model_copy(deep=True),
            source=source,
        )
        with self._lock:
            self._entries[key] = entry

    def invalidate(self, key: str) -> None:
        """Operator hook: drop an entry if present. The pipeline never calls this."""
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __repr__(self) -> str:
        return f"InMemoryReportCache(entries={len(self)}, ttl={self.ttl_seconds})"


class SupabaseReportCache(ReportCache):
    """
    Cache backed by the ``get_or_set_cache`` stored procedure.

    Called with only key and substance name it reads; with data and source it
    writes.
    """

    def __init__(
        self,
        url: str,
        key: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.client = SupabaseClient(url, key, timeout=timeout, session=session)

    def get(self, key: str) -> Optional[DegradationReport]:
        data = self.client.rpc(
            "get_or_set_cache",
            {"p_cache_key": key, "p_substance_name": _substance_from_key(key)},
            CacheError,
        )
        if not data:
            return None
        try:
            return DegradationReport.from_payload(data)
        except (ValidationError, AttributeError) as e:
            raise CacheError(f"Cached payload for {key!r} is not schema-valid: {e}", operation="get") from e

    def set(self, key: str, report: DegradationReport, source: ResponseSource) -> None:
        self.client.rpc(
            "get_or_set_cache",
            {
                "p_cache_key": key,
                "p_substance_name": _substance_from_key(key),
                "p_data": report.to_payload(),
                "p_source": source,
            },
            CacheError,
        )

    def close(self) -> None:
        self.client.close()
