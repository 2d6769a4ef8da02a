"""
Substance Store - Persistent home of resolved degradation reports.

The store holds one report per normalized substance name (upsert, last writer
wins) plus the append-only search history and system event log that feed the
analytics views.

Two backends:
- InMemorySubstanceStore: process-local, used when no backend is configured
- SupabaseSubstanceStore: stored procedures on a managed Postgres via PostgREST
"""
from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests
from pydantic import ValidationError

from degradation_report.errors import StoreError
from degradation_report.models import (
    DegradationReport,
    RecentSearch,
    ResolutionRecord,
    ResponseSource,
    SearchStatistic,
    SystemEvent,
    normalize_substance_name,
)
from degradation_report.rest_client import SupabaseClient


logger = logging.getLogger(__name__)


class SubstanceStore(ABC):
    """Contract shared by every persistent store backend.

    Every method raises StoreError on backend failure. Callers decide how to
    degrade.
    """

    @abstractmethod
    def lookup(self, substance_name: str) -> Optional[DegradationReport]:
        """Get the stored report for a substance, or None if absent."""

    @abstractmethod
    def save(
        self,
        substance_name: str,
        search_term: str,
        report: DegradationReport,
        source: ResponseSource,
        processing_time_ms: int,
    ) -> None:
        """Upsert the report for a substance."""

    @abstractmethod
    def log_resolution(self, record: ResolutionRecord) -> None:
        """Append a search-history row."""

    @abstractmethod
    def record_system_event(self, event: SystemEvent) -> None:
        """Append a system event."""

    @abstractmethod
    def search_statistics(self, limit: int = 10) -> List[SearchStatistic]:
        """Per-substance search counts, most searched first."""

    @abstractmethod
    def recent_searches(self, limit: int = 20) -> List[RecentSearch]:
        """Most recent searches, newest first."""

    def close(self) -> None:
        """Release backend resources."""


# =============================================================================
# In-Memory Store
# =============================================================================


class InMemorySubstanceStore(SubstanceStore):
    """
    Process-local substance store.

    Reports are kept in their structured payload form and rebuilt on every
    lookup, so repeated reads return equal, independent objects.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._reports: dict[str, Dict[str, Any]] = {}  # normalized name -> row
        self._records: list[ResolutionRecord] = []
        self._events: list[SystemEvent] = []

    def lookup(self, substance_name: str) -> Optional[DegradationReport]:
        key = normalize_substance_name(substance_name)
        with self._lock:
            row = self._reports.get(key)
        if row is None:
            return None
        report = DegradationReport.from_payload(row["payload"])
        # Rows without products count as absent so the next call re-synthesizes
        return report if report.products else None

    def save(
        self,
        substance_name: str,
        search_term: str,
        report: DegradationReport,
        source: ResponseSource,
        processing_time_ms: int,
    ) -> None:
        key = normalize_substance_name(substance_name)
        row = {
            "substance_name": key,
            "search_term": search_term,
            "payload": report.to_payload(),
            "response_source": source,
            "processing_time_ms": processing_time_ms,
            "updated_at": datetime.now(timezone.utc),
        }
        with self._lock:
            self._reports[key] = row

    def log_resolution(self, record: ResolutionRecord) -> None:
        with self._lock:
            self._records.append(record)

    def record_system_event(self, event: SystemEvent) -> None:
        with self._lock:
            self._events.append(event)

    def search_statistics(self, limit: int = 10) -> List[SearchStatistic]:
        with self._lock:
            records = list(self._records)
            dcb_names = {k: row["search_term"] for k, row in self._reports.items()}

        grouped: dict[str, list[ResolutionRecord]] = defaultdict(list)
        for record in records:
            grouped[record.substance_name].append(record)

        stats = [
            SearchStatistic(
                substance_name=name,
                dcb_name=dcb_names.get(name),
                search_count=len(rows),
                unique_users=len({r.client_ip for r in rows}),
                last_searched=max(r.timestamp for r in rows),
            )
            for name, rows in grouped.items()
        ]
        stats.sort(key=lambda s: (-s.search_count, s.substance_name))
        return stats[:limit]

    def recent_searches(self, limit: int = 20) -> List[RecentSearch]:
        with self._lock:
            records = list(self._records)
        records.sort(key=lambda r: r.timestamp, reverse=True)
        return [
            RecentSearch(
                substance_name=r.substance_name,
                search_term=r.search_term,
                search_timestamp=r.timestamp,
                user_ip=r.client_ip,
                response_source=r.response_source,
            )
            for r in records[:limit]
        ]

    def get_records(self) -> list[ResolutionRecord]:
        """All search-history rows, oldest first."""
        with self._lock:
            return list(self._records)

    def get_events(self) -> list[SystemEvent]:
        """All system events, oldest first."""
        with self._lock:
            return list(self._events)

    def __len__(self) -> int:
        """Return the number of stored substances."""
        with self._lock:
            return len(self._reports)

    def __repr__(self) -> str:
        return f"InMemorySubstanceStore(substances={len(self)}, searches={len(self._records)})"


# =============================================================================
# Supabase Store
# =============================================================================


class SupabaseSubstanceStore(SubstanceStore):
    """
    Substance store backed by Supabase stored procedures.

    Procedures:
    - get_substance_data(substance_name)
    - save_degradation_data_safe(substance_name, search_term, cas_number, dcb_name,
      products, references_list, response_source, processing_time_ms)
    - log_search_safe(substance_name, search_term, user_ip, user_agent,
      response_source, was_cached)
    - log_system_event(p_level, p_component, p_action, p_message, p_metadata)

    Views: search_statistics, recent_searches.

    Products and references travel as JSON arrays, never as serialized strings.
    """

    def __init__(
        self,
        url: str,
        key: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.client = SupabaseClient(url, key, timeout=timeout, session=session)

    def lookup(self, substance_name: str) -> Optional[DegradationReport]:
        key = normalize_substance_name(substance_name)
        data = self.client.rpc("get_substance_data", {"substance_name": key}, StoreError)

        # Set-returning functions come back as a list of rows
        if isinstance(data, list):
            data = data[0] if data else None
        if not data:
            return None

        try:
            report = DegradationReport.from_payload(data)
        except (ValidationError, AttributeError) as e:
            raise StoreError(f"Stored report for {key!r} is not schema-valid: {e}", operation="lookup") from e

        if not report.products:
            logger.info(f"Stored row for {key!r} has no products, treating as not found")
            return None
        return report

    def save(
        self,
        substance_name: str,
        search_term: str,
        report: DegradationReport,
        source: ResponseSource,
        processing_time_ms: int,
    ) -> None:
        payload = report.to_payload()
        self.client.rpc(
            "save_degradation_data_safe",
            {
                "substance_name": normalize_substance_name(substance_name),
                "search_term": search_term,
                "cas_number": None,
                "dcb_name": search_term,
                "products": payload["products"],
                "references_list": payload["references"],
                "response_source": source,
                "processing_time_ms": processing_time_ms,
            },
            StoreError,
        )
        logger.info(f"Saved report for {substance_name!r} ({source})")

    def log_resolution(self, record: ResolutionRecord) -> None:
        self.client.rpc(
            "log_search_safe",
            {
                "substance_name": record.substance_name,
                "search_term": record.search_term,
                "user_ip": record.client_ip,
                "user_agent": record.user_agent,
                "response_source": record.response_source,
                "was_cached": record.was_cached,
            },
            StoreError,
        )

    def record_system_event(self, event: SystemEvent) -> None:
        self.client.rpc(
            "log_system_event",
            {
                "p_level": event.level,
                "p_component": event.component,
                "p_action": event.action,
                "p_message": event.message,
                "p_metadata": event.metadata,
            },
            StoreError,
        )

    def search_statistics(self, limit: int = 10) -> List[SearchStatistic]:
        rows = self.client.select(
            "search_statistics",
            {"select": "*", "order": "search_count.desc", "limit": limit},
            StoreError,
        )
        try:
            return [SearchStatistic.model_validate(row) for row in rows or []]
        except ValidationError as e:
            raise StoreError(f"Unexpected search_statistics row: {e}", operation="search_statistics") from e

    def recent_searches(self, limit: int = 20) -> List[RecentSearch]:
        rows = self.client.select(
            "recent_searches",
            {"select": "*", "limit": limit},
            StoreError,
        )
        try:
            return [RecentSearch.model_validate(row) for row in rows or []]
        except ValidationError as e:
            raise StoreError(f"Unexpected recent_searches row: {e}", operation="recent_searches") from e

    def close(self) -> None:
        self.client.close()

    def __repr__(self) -> str:
        return f"SupabaseSubstanceStore(url={self.client.base_url})"
