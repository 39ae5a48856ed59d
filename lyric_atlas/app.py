from __future__ import annotations

import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator

from lyric_atlas.cache.memory import CacheJanitor, TTLCache
from lyric_atlas.config import AppConfig, require_external_api_url
from lyric_atlas.net.client import HttpClient
from lyric_atlas.net.governor import InlineExecutor, OutboundGate
from lyric_atlas.sources.external import NeteaseApiSource
from lyric_atlas.sources.repository import GitHubRepositorySource
from lyric_atlas.sources.service import LyricsService

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """Process-scoped pieces shared by every request."""

    service: LyricsService
    http: HttpClient
    executor: Executor
    janitor: CacheJanitor
    lyrics_cache: TTLCache[Any]
    metadata_cache: TTLCache[Any]

    def close(self) -> None:
        self.janitor.stop()
        self.executor.shutdown(wait=False, cancel_futures=True)
        self.http.close()


def build_runtime(cfg: AppConfig) -> Runtime:
    """
    Wire config -> gate/session -> adapters -> caches -> engine.

    Raises ConfigurationError up front when the external endpoint is unset.
    """
    external_url = require_external_api_url(cfg)

    http = HttpClient(gate=OutboundGate(cfg.max_concurrent_requests))
    repository = GitHubRepositorySource(
        http,
        base_url=cfg.repo_base_url,
        timeout_s=cfg.repo_timeout_s,
        head_timeout_s=cfg.head_timeout_s,
        max_retries=cfg.max_retries,
        backoff_base_s=cfg.backoff_base_s,
        head_backoff_base_s=cfg.head_backoff_base_s,
    )
    external = NeteaseApiSource(
        http,
        base_url=external_url,
        timeout_s=cfg.external_timeout_s,
        max_retries=cfg.max_retries,
        backoff_base_s=cfg.backoff_base_s,
    )

    lyrics_cache: TTLCache[Any] = TTLCache("lyrics", cfg.lyrics_cache_ttl_s, cfg.lyrics_cache_size)
    metadata_cache: TTLCache[Any] = TTLCache("metadata", cfg.metadata_cache_ttl_s, cfg.metadata_cache_size)
    janitor = CacheJanitor([lyrics_cache, metadata_cache], cfg.cache_cleanup_interval_s)

    executor: Executor
    if cfg.fanout == "inline":
        executor = InlineExecutor()
    else:
        executor = ThreadPoolExecutor(max_workers=cfg.worker_threads, thread_name_prefix="lyric-probe")

    service = LyricsService(
        repository,
        external,
        cache=lyrics_cache,
        metadata_cache=metadata_cache,
        executor=executor,
        total_timeout_s=cfg.total_timeout_s,
    )
    return Runtime(
        service=service,
        http=http,
        executor=executor,
        janitor=janitor,
        lyrics_cache=lyrics_cache,
        metadata_cache=metadata_cache,
    )


@contextmanager
def running(cfg: AppConfig) -> Iterator[Runtime]:
    rt = build_runtime(cfg)
    rt.janitor.start()
    try:
        yield rt
    finally:
        rt.close()
