from __future__ import annotations

import logging
from concurrent.futures import FIRST_COMPLETED, Executor, Future, wait
from typing import Any, Callable

from lyric_atlas.cache.memory import TTLCache
from lyric_atlas.errors import AggregateError, NotFoundError, RequestTimeout, SourceError
from lyric_atlas.formats import (
    EXTERNAL_FORMATS,
    LyricFormat,
    filter_lyric_lines,
    normalize_format,
    repository_candidates,
)
from lyric_atlas.net.governor import CancelToken, InlineExecutor, settled

from .base import ExternalSource, RepositorySource
from .types import (
    ExternalPayload,
    FetchFailed,
    FetchFound,
    FetchOutcome,
    LyricsFound,
    LyricsNotFound,
    MetadataFound,
    MetadataNotFound,
    MetadataResult,
    RequestShape,
    SearchResult,
)

logger = logging.getLogger(__name__)

DEFAULT_TOTAL_TIMEOUT_S = 6.0


def repo_cache_key(track_id: str, fmt: LyricFormat) -> str:
    return f"repo:{track_id}:{fmt}"


def _require_id(track_id: str | None) -> str:
    if not track_id or not track_id.strip():
        raise ValueError("Missing track id")
    return track_id.strip()


class LyricsService:
    """
    Resolves lyrics for a track id from the repository and the external API.

    The repository always wins over the external API, and among repository
    formats the candidate order wins over completion order. Only successful
    results are cached, so upstream faults heal on the next request.
    """

    def __init__(
        self,
        repository: RepositorySource,
        external: ExternalSource,
        *,
        cache: TTLCache[Any],
        metadata_cache: TTLCache[Any] | None = None,
        executor: Executor | None = None,
        total_timeout_s: float = DEFAULT_TOTAL_TIMEOUT_S,
    ):
        self.repository = repository
        self.external = external
        self.cache = cache
        self.metadata_cache = metadata_cache
        self.executor = executor or InlineExecutor()
        self.total_timeout_s = total_timeout_s

    # ---- search ---------------------------------------------------------

    def resolve(
        self,
        track_id: str,
        fixed_format: str | None = None,
        fallback_order: str | None = None,
    ) -> SearchResult:
        track_id = _require_id(track_id)
        fixed = normalize_format(fixed_format)
        if fixed_format and fixed is None:
            logger.warning("Ignoring unknown fixed format '%s'", fixed_format)
        shape = RequestShape(id=track_id, fixed_format=fixed, fallback_order=fallback_order or None)
        logger.info("Resolving %s (fixed=%s, fallback=%s)", track_id, fixed, shape.fallback_order)

        cached = self.cache.get(shape.cache_key)
        if cached is not None:
            logger.info("Cache hit for %s", shape.cache_key)
            return cached

        token = CancelToken(self.total_timeout_s)
        try:
            if fixed is not None:
                result = self._resolve_fixed(track_id, fixed, token)
            else:
                result = self._resolve_standard(track_id, shape.fallback_order, token)
        finally:
            # stragglers stop at their next checkpoint
            token.cancel("request finished")

        if isinstance(result, LyricsFound):
            logger.info("Lyrics for %s: %s from %s", track_id, result.format, result.source)
            self.cache.set(shape.cache_key, result)
        else:
            logger.info("No lyrics for %s (status %s): %s", track_id, result.status_code, result.error)
        return result

    def _resolve_fixed(self, track_id: str, fmt: LyricFormat, token: CancelToken) -> SearchResult:
        logger.info("Fixed format %s requested for %s", fmt, track_id)

        repo = self._await_one(self._submit(self.repository.fetch, track_id, fmt, token), token, fmt, "Repository")
        if isinstance(repo, FetchFound):
            return _found(track_id, repo)
        if isinstance(repo, FetchFailed):
            return _fixed_failure(track_id, fmt, "Repository", repo)

        if fmt in EXTERNAL_FORMATS:
            ext = self._await_one(self._submit(self.external.fetch, track_id, fmt, token), token, fmt, "External API")
            if isinstance(ext, FetchFound):
                return _found(track_id, ext)
            if isinstance(ext, FetchFailed):
                return _fixed_failure(track_id, fmt, "External API", ext)

        return LyricsNotFound(id=track_id, error=f"Lyrics not found for fixed format: {fmt}", status_code=404)

    def _resolve_standard(self, track_id: str, fallback_raw: str | None, token: CancelToken) -> SearchResult:
        candidates = repository_candidates(fallback_raw)
        logger.debug("Repository candidates for %s: %s", track_id, ", ".join(candidates))

        repo_futs: dict[LyricFormat, Future] = {}
        for fmt in candidates:
            hit = self.cache.get(repo_cache_key(track_id, fmt))
            if isinstance(hit, FetchFound):
                logger.debug("Cached repository %s for %s", fmt, track_id)
                repo_futs[fmt] = settled(hit)
            else:
                repo_futs[fmt] = self._submit(self.repository.fetch, track_id, fmt, token)

        # settled repository outcomes by format
        outcomes: dict[LyricFormat, FetchOutcome] = {}
        ext_fut: Future | None = None
        _decided, winner = self._repo_winner(candidates, repo_futs, outcomes)
        if winner is None:
            ext_fut = self._submit(self.external.fetch, track_id, None, token)

        pending = {f for f in (*repo_futs.values(), ext_fut) if f is not None and not f.done()}
        while pending:
            decided, winner = self._repo_winner(candidates, repo_futs, outcomes)
            if winner is not None or (decided and ext_fut is not None and ext_fut.done()):
                break
            done, pending = wait(pending, timeout=token.remaining(), return_when=FIRST_COMPLETED)
            if not done:
                logger.warning("Search for %s hit the %ss deadline", track_id, self.total_timeout_s)
                token.cancel("deadline exceeded")
                break

        for fmt in candidates:
            if fmt not in outcomes:
                outcomes[fmt] = self._outcome(repo_futs[fmt], fmt, "Repository")
        repo_outcomes = [(fmt, outcomes[fmt]) for fmt in candidates]
        winner = None
        for fmt, outcome in repo_outcomes:
            if isinstance(outcome, FetchFound):
                self.cache.set(repo_cache_key(track_id, fmt), outcome)
                if winner is None:
                    winner = outcome
        if winner is not None:
            # ttml and the rest of the candidates outrank anything external
            return _found(track_id, winner)

        ext = self._outcome(ext_fut, None, "External API") if ext_fut is not None else None
        if isinstance(ext, FetchFound):
            return _found(track_id, ext)

        errors: list[tuple[str, BaseException]] = [
            (f"Repository[{fmt}]", o.error) for fmt, o in repo_outcomes if isinstance(o, FetchFailed)
        ]
        if not errors:
            errors.append(("Repository", NotFoundError(f"no lyrics in formats {', '.join(candidates)}")))
        if isinstance(ext, FetchFailed):
            errors.append(("External API", ext.error))
        else:
            errors.append(("External API", NotFoundError("Lyrics not found in external API")))
        agg = AggregateError(errors)
        return LyricsNotFound(id=track_id, error=str(agg), status_code=agg.status_code)

    def _repo_winner(
        self,
        candidates: list[LyricFormat],
        futs: dict[LyricFormat, Future],
        outcomes: dict[LyricFormat, FetchOutcome],
    ) -> tuple[bool, FetchFound | None]:
        """
        Walk candidates in priority order.

        Returns (decided, winner): decided is False while a higher-priority
        candidate is still in flight. Settled outcomes are memoized in
        `outcomes`.
        """
        for fmt in candidates:
            outcome = outcomes.get(fmt)
            if outcome is None:
                fut = futs[fmt]
                if not fut.done():
                    return False, None
                outcome = outcomes[fmt] = self._outcome(fut, fmt, "Repository")
            if isinstance(outcome, FetchFound):
                return True, outcome
        return True, None

    # ---- metadata -------------------------------------------------------

    def metadata(self, track_id: str) -> MetadataResult:
        """Which formats exist for a track, plus translation/romaji availability."""
        track_id = _require_id(track_id)
        key = f"meta:{track_id}"
        if self.metadata_cache is not None:
            cached = self.metadata_cache.get(key)
            if cached is not None:
                return cached

        formats = repository_candidates(None)
        token = CancelToken(self.total_timeout_s)
        try:
            head_futs = {fmt: self._submit(self.repository.exists, track_id, fmt, token) for fmt in formats}
            ext_fut = self._submit(self.external.load_payload, track_id, token)
            _done, pending = wait([*head_futs.values(), ext_fut], timeout=token.remaining())
            if pending:
                logger.warning("Metadata check for %s timed out with %s probes pending", track_id, len(pending))
                token.cancel("deadline exceeded")
        finally:
            token.cancel("request finished")

        available: list[LyricFormat] = []
        faults: list[tuple[str, BaseException]] = []
        for fmt, fut in head_futs.items():
            probe = self._outcome_raw(fut, "Repository")
            if isinstance(probe, SourceError):
                faults.append((f"Repository[{fmt}]", probe))
            elif probe.exists:
                available.append(fmt)
            elif probe.error is not None:
                faults.append((f"Repository[{fmt}]", probe.error))

        payload: ExternalPayload | None = None
        ext = self._outcome_raw(ext_fut, "External API")
        if isinstance(ext, SourceError):
            faults.append(("External API", ext))
        else:
            payload = ext

        has_translation = has_romaji = False
        if payload is not None:
            for fmt in EXTERNAL_FORMATS:
                if fmt not in available and filter_lyric_lines(getattr(payload, fmt)):
                    available.append(fmt)
            has_translation = bool(filter_lyric_lines(payload.tlyric))
            has_romaji = bool(filter_lyric_lines(payload.romalrc))

        if available:
            result: MetadataResult = MetadataFound(
                id=track_id,
                available_formats=tuple(available),
                has_translation=has_translation,
                has_romaji=has_romaji,
            )
            if self.metadata_cache is not None:
                self.metadata_cache.set(key, result)
            return result

        if faults:
            agg = AggregateError(faults)
            return MetadataNotFound(id=track_id, error=f"Metadata check failed: {agg}", status_code=agg.status_code)
        return MetadataNotFound(id=track_id, error="No lyric formats found in repository or external API.")

    # ---- futures --------------------------------------------------------

    def _submit(self, fn: Callable[..., Any], *args: Any) -> Future:
        return self.executor.submit(fn, *args)

    def _await_one(self, fut: Future, token: CancelToken, fmt: LyricFormat | None, label: str) -> FetchOutcome:
        if not fut.done():
            wait([fut], timeout=token.remaining())
        if not fut.done():
            logger.warning("%s lookup hit the %ss deadline", label, self.total_timeout_s)
            token.cancel("deadline exceeded")
        return self._outcome(fut, fmt, label)

    def _outcome(self, fut: Future, fmt: LyricFormat | None, label: str) -> FetchOutcome:
        """Settle a probe future; unfinished or crashed probes count as failures."""
        value = self._outcome_raw(fut, label)
        if isinstance(value, SourceError):
            return FetchFailed(error=value, format=fmt)
        return value

    @staticmethod
    def _outcome_raw(fut: Future, label: str) -> Any:
        if not fut.done():
            fut.cancel()
        if fut.cancelled() or not fut.done():
            return RequestTimeout(f"{label} lookup timed out")
        exc = fut.exception()
        if exc is None:
            return fut.result()
        if isinstance(exc, SourceError):
            return exc
        logger.error("%s probe raised unexpectedly", label, exc_info=exc)
        return SourceError(f"{label} probe crashed: {exc}")


def _found(track_id: str, outcome: FetchFound) -> LyricsFound:
    return LyricsFound(
        id=track_id,
        format=outcome.format,
        source=outcome.source,
        content=outcome.content,
        translation=outcome.translation if outcome.source == "external" else None,
        romaji=outcome.romaji if outcome.source == "external" else None,
    )


def _fixed_failure(track_id: str, fmt: LyricFormat, label: str, outcome: FetchFailed) -> LyricsNotFound:
    if outcome.timed_out:
        status = 408
    elif outcome.status_code is not None and outcome.status_code >= 500:
        status = 502
    else:
        status = 500
    return LyricsNotFound(
        id=track_id,
        error=f"Failed to fetch fixed format {fmt}: {label}: {outcome.error}",
        status_code=status,
    )
