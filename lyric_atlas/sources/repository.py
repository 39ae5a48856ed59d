from __future__ import annotations

import logging
from urllib.parse import quote

from lyric_atlas.errors import SourceError
from lyric_atlas.formats import LyricFormat
from lyric_atlas.net.client import HttpClient
from lyric_atlas.net.governor import CancelToken

from .base import RepositorySource
from .types import Availability, FetchFailed, FetchFound, FetchNotFound, FetchOutcome

logger = logging.getLogger(__name__)

DEFAULT_REPO_BASE_URL = "https://raw.githubusercontent.com/Steve-XMH/amll-ttml-db/main/ncm-lyrics"


def build_raw_url(base_url: str, track_id: str, fmt: LyricFormat) -> str:
    return f"{base_url.rstrip('/')}/{quote(track_id, safe='')}.{fmt}"


class GitHubRepositorySource(RepositorySource):
    def __init__(
        self,
        http: HttpClient,
        *,
        base_url: str = DEFAULT_REPO_BASE_URL,
        timeout_s: float = 4.0,
        head_timeout_s: float = 2.0,
        max_retries: int = 1,
        backoff_base_s: float = 0.3,
        head_backoff_base_s: float = 0.2,
    ):
        self.http = http
        self.base_url = base_url
        self.timeout_s = timeout_s
        self.head_timeout_s = head_timeout_s
        self.max_retries = max_retries
        self.backoff_base_s = backoff_base_s
        self.head_backoff_base_s = head_backoff_base_s

    def fetch(self, track_id: str, fmt: LyricFormat, token: CancelToken | None = None) -> FetchOutcome:
        url = build_raw_url(self.base_url, track_id, fmt)
        logger.info("Fetching %s from repository: %s", fmt.upper(), url)
        try:
            r = self.http.get(
                url,
                timeout_s=self.timeout_s,
                retries=self.max_retries,
                backoff_base_s=self.backoff_base_s,
                token=token,
            )
        except SourceError as e:
            logger.error("Repository fetch for %s failed: %s", fmt.upper(), e)
            return FetchFailed(error=e, format=fmt)

        if r.status_code == 404:
            logger.info("Repository has no %s for %s", fmt.upper(), track_id)
            return FetchNotFound(format=fmt)
        if not r.ok:
            logger.error("Repository fetch for %s returned HTTP %s", fmt.upper(), r.status_code)
            return FetchFailed(error=SourceError(f"HTTP error {r.status_code}", r.status_code), format=fmt)
        if not r.text.strip():
            # an empty 200 is not a confirmed absence
            logger.warning("Repository returned an empty %s body for %s", fmt.upper(), track_id)
            return FetchFailed(error=SourceError("Empty response body", r.status_code), format=fmt)

        logger.info("Repository fetch for %s succeeded (HTTP %s)", fmt.upper(), r.status_code)
        return FetchFound(format=fmt, content=r.text, source="repository")

    def exists(self, track_id: str, fmt: LyricFormat, token: CancelToken | None = None) -> Availability:
        url = build_raw_url(self.base_url, track_id, fmt)
        logger.debug("Checking repository for %s: %s", fmt.upper(), url)
        try:
            r = self.http.head(
                url,
                timeout_s=self.head_timeout_s,
                retries=self.max_retries,
                backoff_base_s=self.head_backoff_base_s,
                token=token,
            )
        except SourceError as e:
            logger.warning("Repository check for %s failed: %s", fmt.upper(), e)
            return Availability(format=fmt, exists=False, error=e)

        if r.ok:
            return Availability(format=fmt, exists=True)
        if r.status_code == 404:
            return Availability(format=fmt, exists=False)
        logger.warning("Repository check for %s returned HTTP %s", fmt.upper(), r.status_code)
        return Availability(format=fmt, exists=False, error=SourceError(f"HTTP error {r.status_code}", r.status_code))
