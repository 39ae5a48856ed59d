from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from lyric_atlas.cache.memory import TTLCache
from lyric_atlas.errors import RequestTimeout, SourceError
from lyric_atlas.net.governor import CancelToken, InlineExecutor
from lyric_atlas.sources.base import ExternalSource, RepositorySource
from lyric_atlas.sources.service import LyricsService
from lyric_atlas.sources.types import (
    Availability,
    ExternalPayload,
    FetchFailed,
    FetchFound,
    FetchNotFound,
)


class FakeRepository(RepositorySource):
    """
    In-memory repository.

    - files: format -> content
    - errors: format -> SourceError returned as a failed outcome
    - delays: format -> seconds to block (wakes early on cancel)
    """

    def __init__(self):
        self.files: dict[str, str] = {}
        self.errors: dict[str, SourceError] = {}
        self.delays: dict[str, float] = {}
        self.calls: list[str] = []
        self.head_calls: list[str] = []
        self._lock = threading.Lock()

    def _sleep(self, fmt, token):
        delay = self.delays.get(fmt)
        if not delay:
            return False
        if token is None:
            time.sleep(delay)
            return False
        return token.wait(delay)

    def fetch(self, track_id, fmt, token=None):
        with self._lock:
            self.calls.append(fmt)
        if self._sleep(fmt, token):
            return FetchFailed(error=RequestTimeout("repository probe cancelled"), format=fmt)
        if fmt in self.errors:
            return FetchFailed(error=self.errors[fmt], format=fmt)
        if fmt in self.files:
            return FetchFound(format=fmt, content=self.files[fmt], source="repository")
        return FetchNotFound(format=fmt)

    def exists(self, track_id, fmt, token=None):
        with self._lock:
            self.head_calls.append(fmt)
        if self._sleep(fmt, token):
            return Availability(format=fmt, exists=False, error=RequestTimeout("repository probe cancelled"))
        if fmt in self.errors:
            return Availability(format=fmt, exists=False, error=self.errors[fmt])
        return Availability(format=fmt, exists=fmt in self.files)


class FakeExternal(ExternalSource):
    def __init__(self):
        self.payload = ExternalPayload()
        self.error: SourceError | None = None
        self.delay = 0.0
        self.calls: list[str | None] = []
        self._lock = threading.Lock()

    def fetch(self, track_id, format_hint=None, token=None):
        with self._lock:
            self.calls.append(format_hint)
        return super().fetch(track_id, format_hint, token)

    def load_payload(self, track_id, token: CancelToken | None = None):
        if self.delay:
            if token is not None and token.wait(self.delay):
                raise RequestTimeout("external probe cancelled")
            if token is None:
                time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.payload


@pytest.fixture
def repository():
    return FakeRepository()


@pytest.fixture
def external():
    return FakeExternal()


@pytest.fixture
def lyrics_cache():
    return TTLCache("test-lyrics", ttl_s=60, max_size=100)


@pytest.fixture
def make_service(repository, external, lyrics_cache):
    def _make(executor=None, total_timeout_s=6.0):
        return LyricsService(
            repository,
            external,
            cache=lyrics_cache,
            metadata_cache=TTLCache("test-metadata", ttl_s=60, max_size=100),
            executor=executor or InlineExecutor(),
            total_timeout_s=total_timeout_s,
        )

    return _make


@pytest.fixture
def service(make_service):
    return make_service()


@pytest.fixture
def thread_pool():
    pool = ThreadPoolExecutor(max_workers=8)
    yield pool
    pool.shutdown(wait=True, cancel_futures=True)
