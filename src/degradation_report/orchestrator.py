"""
Resolution Orchestrator - User-facing API for the report pipeline.

Wraps cache, store, synthesizer and audit sink behind a single call:

    Substance name -> Cache -> Store -> Synthesizer -> Persist -> Audit -> Report

The first source that has a report wins. ``resolve`` never raises: every
boundary error degrades to the next source, and anything unexpected ends in the
static fallback dataset.

Example usage:
    from degradation_report.orchestrator import build_orchestrator

    orc = build_orchestrator()
    resolution = orc.resolve("Paracetamol")
    print(resolution.source, len(resolution.report.products))
"""
from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

from degradation_report.audit import (
    AuditSink,
    CompositeAuditSink,
    JsonlAuditSink,
    LoggingAuditSink,
    StoreAuditSink,
)
from degradation_report.cache import InMemoryReportCache, ReportCache, SupabaseReportCache, cache_key
from degradation_report.config import ResolverConfig
from degradation_report.errors import CacheError, ErrorKind, Result, StoreError, capture
from degradation_report.fallback import fallback_report
from degradation_report.models import (
    DegradationReport,
    RequestMeta,
    Resolution,
    ResolutionRecord,
    ResponseSource,
    SystemEvent,
    normalize_substance_name,
)
from degradation_report.observability import ResolutionSummary, log_pipeline_event
from degradation_report.store import InMemorySubstanceStore, SubstanceStore, SupabaseSubstanceStore
from degradation_report.synthesizer import Synthesizer, build_synthesizer


logger = logging.getLogger(__name__)


class ResolutionOrchestrator:
    """
    Sequences one resolution attempt:

        CACHE_CHECK -> STORE_CHECK -> SYNTHESIZE -> PERSIST -> AUDIT

    with ERROR_RECOVERY reachable from any stage before AUDIT.

    Collaborators are injected. Pass ``cache=None`` (or disable it in config) to
    run without a cache and ``store=None`` to run without persistence.
    """

    def __init__(
        self,
        synthesizer: Synthesizer,
        store: Optional[SubstanceStore] = None,
        cache: Optional[ReportCache] = None,
        audit_sink: Optional[AuditSink] = None,
        config: Optional[ResolverConfig] = None,
    ) -> None:
        self.config = config or ResolverConfig()
        self.synthesizer = synthesizer
        self.store = store
        self.cache = cache if self.config.enable_cache else None
        self.audit_sink = audit_sink or LoggingAuditSink()
        self.summary = ResolutionSummary()
        self._start_time = datetime.now()
        logger.info("ResolutionOrchestrator initialized")

    # =========================================================================
    # Public API
    # =========================================================================

    def resolve(
        self,
        substance_name: str,
        request_meta: Optional[RequestMeta] = None,
    ) -> Resolution:
        """Resolve a substance name into a degradation report.

        Args:
            substance_name: Raw user input. Kept verbatim as the search term;
                the stripped form feeds the lookup key and the prompt.
            request_meta: Client IP and user agent for the audit record

        Returns:
            Resolution with a schema-valid report and its provenance
        """
        start = time.perf_counter()
        meta = request_meta or RequestMeta()
        raw_term = substance_name or ""
        search_term = raw_term.strip()
        name = normalize_substance_name(search_term)

        self._event("INFO", "search", "start", f"Search started for {search_term}", {
            "substance": search_term,
            "user_ip": meta.client_ip,
            "user_agent": meta.user_agent[:100],
        })

        try:
            resolution = self._run_pipeline(name, search_term, raw_term, start)
        except Exception as e:
            return self._recover(name, search_term, raw_term, meta, start, e)

        self._audit(resolution, meta)
        self._event("INFO", "search", "complete", f"Search completed for {search_term}", {
            "processing_time_ms": resolution.processing_time_ms,
            "response_source": resolution.source,
            "products_count": len(resolution.report.products),
            "references_count": len(resolution.report.references),
        })
        return resolution

    def health_check(self) -> Dict[str, Any]:
        """Return backend wiring and resolution counters for monitoring."""
        uptime = (datetime.now() - self._start_time).total_seconds()
        degraded_reasons = []
        if self.store is None:
            degraded_reasons.append("store_disabled")
        if self.cache is None:
            degraded_reasons.append("cache_disabled")
        if not self.synthesizer.has_model:
            degraded_reasons.append("model_unconfigured")

        return {
            "status": "degraded" if degraded_reasons else "healthy",
            "store": type(self.store).__name__ if self.store else None,
            "cache": type(self.cache).__name__ if self.cache else None,
            "model_configured": self.synthesizer.has_model,
            "uptime_seconds": round(uptime, 2),
            "resolutions": self.summary.to_dict(),
            "degraded_reasons": degraded_reasons or None,
        }

    def close(self) -> None:
        """Log the resolution summary and release clients owned by the collaborators."""
        if self.summary.resolutions:
            self.summary.log_summary()
        for resource in (self.cache, self.store, self.audit_sink, self.synthesizer):
            if resource is not None:
                resource.close()

    def __repr__(self) -> str:
        return (
            f"ResolutionOrchestrator(store={type(self.store).__name__ if self.store else None}, "
            f"cache={type(self.cache).__name__ if self.cache else None}, "
            f"resolutions={self.summary.resolutions})"
        )

    # =========================================================================
    # Pipeline Stages
    # =========================================================================

    def _run_pipeline(self, name: str, search_term: str, raw_term: str, start: float) -> Resolution:
        key = cache_key(name)

        # CACHE_CHECK
        cached = self._cache_get(key)
        if cached is not None:
            log_pipeline_event("cache_check", status="hit", substance=name)
            self._event("INFO", "search", "cache_hit", f"Cache hit for {search_term}", {
                "processing_time_ms": _elapsed_ms(start),
                "cache_key": key,
            })
            return Resolution(
                substance_name=name,
                search_term=raw_term,
                report=cached,
                source="cache",
                was_cached=True,
                processing_time_ms=_elapsed_ms(start),
            )

        # STORE_CHECK
        stored = self._store_lookup(name)
        if stored is not None:
            log_pipeline_event("store_check", status="hit", substance=name)
            self._cache_set(key, stored, "database")
            self._event("INFO", "search", "database_hit", f"Stored report found for {search_term}", {
                "processing_time_ms": _elapsed_ms(start),
            })
            return Resolution(
                substance_name=name,
                search_term=raw_term,
                report=stored,
                source="database",
                processing_time_ms=_elapsed_ms(start),
            )

        # SYNTHESIZE
        synthesis = self.synthesizer.synthesize(search_term)
        if synthesis.error is not None:
            self._degraded(synthesis.error.kind, name, str(synthesis.error))
        processing_time_ms = _elapsed_ms(start)
        self._event(
            "INFO",
            "ai" if synthesis.source == "gemini" else "mock",
            "generate",
            f"Report generated for {search_term} ({synthesis.source})",
            {
                "substance": search_term,
                "strategy": synthesis.strategy.value,
                "products_count": len(synthesis.report.products),
                "references_count": len(synthesis.report.references),
            },
        )

        # PERSIST
        self._store_save(name, search_term, synthesis.report, synthesis.source, processing_time_ms)
        self._cache_set(key, synthesis.report, synthesis.source)

        return Resolution(
            substance_name=name,
            search_term=raw_term,
            report=synthesis.report,
            source=synthesis.source,
            processing_time_ms=processing_time_ms,
            strategy=synthesis.strategy.value,
        )

    def _recover(
        self,
        name: str,
        search_term: str,
        raw_term: str,
        meta: RequestMeta,
        start: float,
        error: Exception,
    ) -> Resolution:
        """ERROR_RECOVERY: audit the failure as "error", answer from the static dataset."""
        processing_time_ms = _elapsed_ms(start)
        logger.exception(f"Resolution failed for {search_term!r} ({processing_time_ms}ms)")
        log_pipeline_event("resolve", status="failed", substance=name, details={"error": str(error)})

        self._event("ERROR", "search", "error", f"Search failed for {search_term}: {error}", {
            "processing_time_ms": processing_time_ms,
            "error_message": str(error),
            "error_type": type(error).__name__,
        })

        fallback = Resolution(
            substance_name=name,
            search_term=raw_term,
            report=fallback_report(search_term),
            source="mock_fallback",
            processing_time_ms=processing_time_ms,
        )
        self._audit(fallback, meta, source="error")

        self._event("INFO", "search", "fallback", f"Static dataset used as fallback for {search_term}", {
            "processing_time_ms": processing_time_ms,
        })
        return fallback

    # =========================================================================
    # Boundaries
    # =========================================================================

    def _cache_get(self, key: str) -> Optional[DegradationReport]:
        if self.cache is None:
            return None
        result: Result[Optional[DegradationReport]] = capture(CacheError, self.cache.get, key)
        if not result.ok:
            self._degraded(ErrorKind.CACHE, key, str(result.error))
        return result.value_or(None)

    def _cache_set(self, key: str, report: DegradationReport, source: ResponseSource) -> None:
        if self.cache is None:
            return
        result = capture(CacheError, self.cache.set, key, report, source)
        if not result.ok:
            self._degraded(ErrorKind.CACHE, key, str(result.error))

    def _store_lookup(self, name: str) -> Optional[DegradationReport]:
        if self.store is None:
            return None
        result: Result[Optional[DegradationReport]] = capture(StoreError, self.store.lookup, name)
        if not result.ok:
            self._degraded(ErrorKind.STORE, name, str(result.error))
        return result.value_or(None)

    def _store_save(
        self,
        name: str,
        search_term: str,
        report: DegradationReport,
        source: ResponseSource,
        processing_time_ms: int,
    ) -> None:
        if self.store is None:
            return
        result = capture(
            StoreError, self.store.save, name, search_term, report, source, processing_time_ms
        )
        if result.ok:
            log_pipeline_event("persist", status="completed", substance=name, details={"source": source})
        else:
            self._degraded(ErrorKind.STORE, name, str(result.error))

    def _degraded(self, kind: ErrorKind, subject: str, message: str) -> None:
        self.summary.record_degradation(kind.value)
        log_pipeline_event(
            f"{kind.value}_boundary",
            status="degraded",
            substance=subject,
            details={"error": message},
        )

    # =========================================================================
    # Audit
    # =========================================================================

    def _audit(
        self,
        resolution: Resolution,
        meta: RequestMeta,
        source: Optional[ResponseSource] = None,
    ) -> None:
        record = ResolutionRecord(
            substance_name=resolution.substance_name,
            search_term=resolution.search_term,
            client_ip=meta.client_ip,
            user_agent=meta.user_agent,
            response_source=source or resolution.source,
            was_cached=resolution.was_cached,
            processing_time_ms=resolution.processing_time_ms,
        )
        self.summary.record_resolution(record.response_source, record.processing_time_ms)
        try:
            self.audit_sink.record(record)
        except Exception as e:
            logger.error(f"Audit sink raised for {resolution.substance_name!r}: {e}")

    def _event(
        self,
        level: str,
        component: str,
        action: str,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        if not self.config.enable_detailed_audit:
            return
        try:
            self.audit_sink.record(SystemEvent(
                level=level,
                component=component,
                action=action,
                message=message,
                metadata=metadata or {},
            ))
        except Exception as e:
            logger.error(f"Audit sink raised on {component}/{action}: {e}")


def _elapsed_ms(start: float) -> int:
    return max(0, int((time.perf_counter() - start) * 1000))


# =============================================================================
# Factory
# =============================================================================


def build_orchestrator(config: Optional[ResolverConfig] = None) -> ResolutionOrchestrator:
    """Wire an orchestrator from configuration.

    - Supabase URL and key configured: remote store and cache
    - otherwise: in-memory store and cache
    - model credential configured: model strategy, else static dataset
    """
    config = config or ResolverConfig.from_env()

    store: SubstanceStore
    cache: Optional[ReportCache] = None
    if config.has_remote_store:
        store = SupabaseSubstanceStore(
            config.supabase_url, config.supabase_key, timeout=config.store_timeout_seconds
        )
        if config.enable_cache:
            cache = SupabaseReportCache(
                config.supabase_url, config.supabase_key, timeout=config.store_timeout_seconds
            )
    else:
        store = InMemorySubstanceStore()
        if config.enable_cache:
            cache = InMemoryReportCache(ttl_seconds=config.cache_ttl_seconds)

    sinks: List[AuditSink] = [LoggingAuditSink(), StoreAuditSink(store)]
    if config.audit_log_path:
        sinks.append(JsonlAuditSink(config.audit_log_path))

    return ResolutionOrchestrator(
        synthesizer=build_synthesizer(config),
        store=store,
        cache=cache,
        audit_sink=CompositeAuditSink(sinks),
        config=config,
    )


def quick_resolve(substance_name: str, request_meta: Optional[RequestMeta] = None) -> Resolution:
    """One-shot resolution with a freshly wired orchestrator."""
    orc = build_orchestrator()
    try:
        return orc.resolve(substance_name, request_meta)
    finally:
        orc.close()
