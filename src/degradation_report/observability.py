"""
Structured Logging for the resolution pipeline.

Provides audit-ready structured logs for:
- Pipeline stage transitions (cache check, store check, synthesis, persist, audit)
- Timed external calls (model, store)
- Per-source resolution counts for health checks

Uses Python's logging with structured output format.
"""
from __future__ import annotations

import json
import logging
import time
from collections import Counter
from contextlib import contextmanager
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, Optional


# =============================================================================
# Logger Setup
# =============================================================================

logger = logging.getLogger("degradation_report.observability")


def setup_structured_logging(
    level: int = logging.INFO,
    json_format: bool = False,
) -> None:
    """Configure structured logging for the pipeline.

    Args:
        level: Logging level (default INFO)
        json_format: If True, output logs as JSON for machine parsing
    """
    handler = logging.StreamHandler()

    if json_format:
        formatter = logging.Formatter('%(message)s')
    else:
        formatter = logging.Formatter(
            '%(asctime)s | %(levelname)s | %(name)s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    handler.setFormatter(formatter)

    package_logger = logging.getLogger("degradation_report")
    package_logger.handlers = []
    package_logger.addHandler(handler)
    package_logger.setLevel(level)
    package_logger.propagate = False


# =============================================================================
# Structured Log Events
# =============================================================================

@dataclass
class PipelineEvent:
    """Structured log for one pipeline stage."""
    event: str  # "cache_check", "store_check", "synthesize", "persist", "audit", "model_call"
    substance: Optional[str] = None
    status: str = "started"  # "started", "completed", "failed", "hit", "miss", "degraded"
    details: Optional[Dict[str, Any]] = None
    duration_ms: Optional[float] = None
    timestamp: str = ""

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now().isoformat()


def log_pipeline_event(
    event: str,
    status: str = "started",
    **kwargs
) -> None:
    """Log a pipeline stage event.

    Args:
        event: Stage name (e.g., "cache_check", "synthesize")
        status: "started", "completed", "failed", "hit", "miss" or "degraded"
        **kwargs: Additional fields (substance, details, duration_ms)
    """
    pipeline_event = PipelineEvent(
        event=event,
        status=status,
        **kwargs
    )

    log_data = asdict(pipeline_event)
    line = f"PIPELINE | {json.dumps(log_data, default=str, ensure_ascii=False)}"

    if status == "failed":
        logger.error(line)
    elif status == "degraded":
        logger.warning(line)
    else:
        logger.info(line)


# =============================================================================
# Context Managers
# =============================================================================

@contextmanager
def timed_operation(operation_name: str, **context):
    """Context manager for timing operations with structured logging.

    Usage:
        with timed_operation("model_call", substance="paracetamol") as timer:
            # do work
            timer["response_chars"] = 1200

    Args:
        operation_name: Name of the operation
        **context: Additional context fields
    """
    start_time = time.perf_counter()
    result_data: Dict[str, Any] = {}

    log_pipeline_event(operation_name, status="started", details=context)

    try:
        yield result_data
        duration_ms = (time.perf_counter() - start_time) * 1000
        log_pipeline_event(
            operation_name,
            status="completed",
            duration_ms=round(duration_ms, 2),
            details={**context, **result_data}
        )
    except Exception as e:
        duration_ms = (time.perf_counter() - start_time) * 1000
        log_pipeline_event(
            operation_name,
            status="failed",
            duration_ms=round(duration_ms, 2),
            details={**context, "error": str(e)}
        )
        raise


# =============================================================================
# Resolution Summary
# =============================================================================

class ResolutionSummary:
    """Counts resolutions per source over the lifetime of an orchestrator."""

    def __init__(self):
        self.start_time = time.perf_counter()
        self.by_source: Counter[str] = Counter()
        self.degraded: Counter[str] = Counter()  # ErrorKind value -> count
        self.total_ms = 0

    def record_resolution(self, source: str, processing_time_ms: int):
        """Record one finished resolution."""
        self.by_source[source] += 1
        self.total_ms += processing_time_ms

    def record_degradation(self, kind: str):
        """Record a boundary error that was degraded."""
        self.degraded[kind] += 1

    @property
    def resolutions(self) -> int:
        return sum(self.by_source.values())

    def to_dict(self) -> Dict[str, Any]:
        """Return summary as dict."""
        total = self.resolutions
        return {
            "uptime_seconds": round(time.perf_counter() - self.start_time, 2),
            "resolutions": total,
            "by_source": dict(self.by_source),
            "degraded": dict(self.degraded),
            "avg_processing_ms": round(self.total_ms / total, 2) if total else 0.0,
            "cache_hit_rate": (
                round(self.by_source["cache"] / total, 3) if total else 0.0
            ),
        }

    def log_summary(self):
        """Log the current summary."""
        logger.info(f"RESOLUTION_SUMMARY | {json.dumps(self.to_dict())}")
