"""
Configuration for report resolution.

Feature flags and backend settings are read from the environment.
No model credential means the static fallback dataset is used.
No Supabase URL means the in-memory store and cache are used.
"""
import os
from dataclasses import dataclass, field
from typing import Optional


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


@dataclass
class ResolverConfig:
    """Configuration for the resolution pipeline."""

    # Pipeline variants
    enable_cache: bool = field(
        default_factory=lambda: _env_bool("ENABLE_CACHE", "true")
    )
    enable_detailed_audit: bool = field(
        default_factory=lambda: _env_bool("ENABLE_DETAILED_AUDIT", "true")
    )

    # Generative model
    model_api_key: Optional[str] = field(
        default_factory=lambda: os.getenv("ANTHROPIC_API_KEY") or None
    )
    model_name: str = field(
        default_factory=lambda: os.getenv("REPORT_MODEL", "claude-sonnet-4-20250514")
    )
    model_temperature: float = field(
        default_factory=lambda: _env_float("REPORT_TEMPERATURE", 0.3)
    )
    model_max_tokens: int = field(
        default_factory=lambda: int(os.getenv("REPORT_MAX_TOKENS", "4096"))
    )
    model_timeout_seconds: float = field(
        default_factory=lambda: _env_float("MODEL_TIMEOUT_SECONDS", 60.0)
    )

    # Persistent store / cache backend
    supabase_url: Optional[str] = field(
        default_factory=lambda: os.getenv("SUPABASE_URL") or None
    )
    supabase_key: Optional[str] = field(
        default_factory=lambda: (
            os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_ANON_KEY") or None
        )
    )
    store_timeout_seconds: float = field(
        default_factory=lambda: _env_float("STORE_TIMEOUT_SECONDS", 10.0)
    )

    # None keeps cache entries until explicitly overwritten or invalidated
    cache_ttl_seconds: Optional[float] = field(
        default_factory=lambda: _env_float("CACHE_TTL_SECONDS", None)
    )

    # Append-only JSONL audit trail (off when unset)
    audit_log_path: Optional[str] = field(
        default_factory=lambda: os.getenv("AUDIT_LOG_PATH") or None
    )

    @property
    def has_model_credential(self) -> bool:
        return bool(self.model_api_key)

    @property
    def has_remote_store(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    @classmethod
    def from_env(cls) -> "ResolverConfig":
        """Create config from environment variables."""
        return cls()


# Global default config
default_config = ResolverConfig()
