from __future__ import annotations

import os
from dataclasses import dataclass

from lyric_atlas.errors import ConfigurationError
from lyric_atlas.sources.repository import DEFAULT_REPO_BASE_URL

FANOUT_MODES = ("threads", "inline")


def _env_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


def _env_int(name: str, default: str, minimum: int = 0) -> int:
    raw = os.getenv(name, default)
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    return value


@dataclass(frozen=True)
class AppConfig:
    # Endpoints
    external_api_url: str | None
    repo_base_url: str

    # Deadlines (seconds)
    total_timeout_s: float
    repo_timeout_s: float
    external_timeout_s: float
    head_timeout_s: float

    # Retry
    max_retries: int
    backoff_base_s: float
    head_backoff_base_s: float

    # Concurrency
    max_concurrent_requests: int
    worker_threads: int
    fanout: str  # "threads" | "inline"

    # Caches
    lyrics_cache_ttl_s: float
    lyrics_cache_size: int
    metadata_cache_ttl_s: float
    metadata_cache_size: int
    cache_cleanup_interval_s: float


def load_config() -> AppConfig:
    fanout = os.getenv("LYRIC_ATLAS_FANOUT", "threads").strip().lower()
    if fanout not in FANOUT_MODES:
        raise ConfigurationError(f"LYRIC_ATLAS_FANOUT must be one of {', '.join(FANOUT_MODES)}")

    return AppConfig(
        external_api_url=os.getenv("EXTERNAL_NCM_API_URL") or None,
        repo_base_url=os.getenv("LYRIC_ATLAS_REPO_BASE_URL", DEFAULT_REPO_BASE_URL),
        total_timeout_s=_env_float("LYRIC_ATLAS_TOTAL_TIMEOUT", "6.0"),
        repo_timeout_s=_env_float("LYRIC_ATLAS_REPO_TIMEOUT", "4.0"),
        external_timeout_s=_env_float("LYRIC_ATLAS_EXTERNAL_TIMEOUT", "5.0"),
        head_timeout_s=_env_float("LYRIC_ATLAS_HEAD_TIMEOUT", "2.0"),
        max_retries=_env_int("LYRIC_ATLAS_MAX_RETRIES", "1"),
        backoff_base_s=_env_float("LYRIC_ATLAS_BACKOFF_BASE", "0.3"),
        head_backoff_base_s=_env_float("LYRIC_ATLAS_HEAD_BACKOFF_BASE", "0.2"),
        max_concurrent_requests=_env_int("LYRIC_ATLAS_MAX_CONCURRENT_REQUESTS", "15", minimum=1),
        worker_threads=_env_int("LYRIC_ATLAS_WORKER_THREADS", "16", minimum=1),
        fanout=fanout,
        lyrics_cache_ttl_s=_env_float("LYRIC_ATLAS_LYRICS_CACHE_TTL", "3600"),
        lyrics_cache_size=_env_int("LYRIC_ATLAS_LYRICS_CACHE_SIZE", "1000", minimum=1),
        metadata_cache_ttl_s=_env_float("LYRIC_ATLAS_METADATA_CACHE_TTL", "1800"),
        metadata_cache_size=_env_int("LYRIC_ATLAS_METADATA_CACHE_SIZE", "2000", minimum=1),
        cache_cleanup_interval_s=_env_float("LYRIC_ATLAS_CACHE_CLEANUP_INTERVAL", "900"),
    )


def require_external_api_url(cfg: AppConfig) -> str:
    """Fail fast at startup when the external endpoint is missing."""
    if not cfg.external_api_url:
        raise ConfigurationError("EXTERNAL_NCM_API_URL is not set")
    return cfg.external_api_url
