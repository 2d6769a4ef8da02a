"""
Pydantic models for degradation report resolution and auditing.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


ResponseSource = Literal["cache", "database", "gemini", "mock", "mock_fallback", "error"]


def normalize_substance_name(name: str) -> str:
    """Normalize a substance name into the lookup key shared by cache and store."""
    return (name or "").strip().lower()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Response Schema
# =============================================================================


class DegradationProduct(BaseModel):
    """One degradation product formed from a parent substance."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    substance: str = Field(min_length=1)
    degradation_route: str = Field(alias="degradationRoute")
    environmental_conditions: str = Field(alias="environmentalConditions")
    toxicity_data: str = Field(alias="toxicityData")


class DegradationReport(BaseModel):
    """Degradation products of a substance plus the bibliography behind them.

    Both lists are always present. They may be empty only on degraded paths.
    """

    model_config = ConfigDict(populate_by_name=True)

    products: List[DegradationProduct] = Field(default_factory=list)
    references: List[str] = Field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        """Structured (camelCase) form handed to stores and caches."""
        return self.model_dump(by_alias=True)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "DegradationReport":
        """Build a report from a stored payload, tolerating null lists."""
        return cls.model_validate({
            "products": payload.get("products") or [],
            "references": payload.get("references") or [],
        })


# =============================================================================
# Request / Resolution
# =============================================================================


class RequestMeta(BaseModel):
    """Caller identity captured for audit only."""

    client_ip: str = "unknown"
    user_agent: str = ""

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> "RequestMeta":
        """Derive request metadata from HTTP headers (case-insensitive names)."""
        lowered = {k.lower(): v for k, v in headers.items()}
        forwarded_for = lowered.get("x-forwarded-for")
        if forwarded_for:
            client_ip = forwarded_for.split(",")[0].strip() or "unknown"
        else:
            client_ip = lowered.get("x-real-ip") or "unknown"
        return cls(client_ip=client_ip, user_agent=lowered.get("user-agent", ""))


class Resolution(BaseModel):
    """A resolved report together with its provenance."""

    substance_name: str  # normalized key
    search_term: str     # raw caller input
    report: DegradationReport
    source: ResponseSource
    was_cached: bool = False
    processing_time_ms: int = Field(default=0, ge=0)
    strategy: Optional[str] = None  # ParseStrategy value when synthesized


# =============================================================================
# Audit Models
# =============================================================================


class ResolutionRecord(BaseModel):
    """One append-only row per resolution attempt."""

    substance_name: str
    search_term: str
    client_ip: str = "unknown"
    user_agent: str = ""
    response_source: ResponseSource
    was_cached: bool = False
    processing_time_ms: int = Field(default=0, ge=0)
    timestamp: datetime = Field(default_factory=_utcnow)


class SystemEvent(BaseModel):
    """Free-form structured event emitted by the pipeline."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    component: str  # search, cache, database, ai, mock
    action: str     # start, cache_hit, database_hit, generate, complete, error, fallback
    message: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=_utcnow)


class CacheEntry(BaseModel):
    """Transient shadow of a report keyed by normalized substance name."""

    key: str
    substance_name: str
    report: DegradationReport
    source: ResponseSource
    created_at: datetime = Field(default_factory=_utcnow)

    def is_expired(self, ttl_seconds: Optional[float], now: Optional[datetime] = None) -> bool:
        """Check freshness. Without a TTL entries never expire."""
        if ttl_seconds is None:
            return False
        now = now or _utcnow()
        return (now - self.created_at).total_seconds() > ttl_seconds


# =============================================================================
# Analytics Views
# =============================================================================


class SearchStatistic(BaseModel):
    """Aggregate search activity for one substance."""

    substance_name: str
    dcb_name: Optional[str] = None
    search_count: int = 0
    unique_users: int = 0
    last_searched: Optional[datetime] = None


class RecentSearch(BaseModel):
    """One entry of the rolling recent-searches window."""

    substance_name: str
    search_term: str
    search_timestamp: datetime
    user_ip: Optional[str] = None
    response_source: Optional[str] = None
