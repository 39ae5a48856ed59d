from __future__ import annotations

import json
import logging
from urllib.parse import quote

from lyric_atlas.errors import ConfigurationError, SourceError
from lyric_atlas.net.client import HttpClient
from lyric_atlas.net.governor import CancelToken

from .base import ExternalSource
from .types import ExternalPayload

logger = logging.getLogger(__name__)


def build_external_url(base_url: str, track_id: str) -> str:
    return f"{base_url}?id={quote(track_id, safe='')}"


class NeteaseApiSource(ExternalSource):
    """JSON lyric API keyed by NetEase track id."""

    def __init__(
        self,
        http: HttpClient,
        *,
        base_url: str,
        timeout_s: float = 5.0,
        max_retries: int = 1,
        backoff_base_s: float = 0.3,
    ):
        if not base_url:
            raise ConfigurationError("External API base URL is not configured.")
        self.http = http
        self.base_url = base_url
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.backoff_base_s = backoff_base_s

    def load_payload(self, track_id: str, token: CancelToken | None = None) -> ExternalPayload:
        url = build_external_url(self.base_url, track_id)
        logger.info("Fetching from external API: %s", url)
        r = self.http.get(
            url,
            timeout_s=self.timeout_s,
            retries=self.max_retries,
            backoff_base_s=self.backoff_base_s,
            token=token,
        )
        if r.status_code == 404:
            logger.info("External API has no entry for %s", track_id)
            return ExternalPayload()
        if not r.ok:
            raise SourceError(f"External API failed with status {r.status_code}", r.status_code)
        try:
            data = json.loads(r.text)
        except ValueError as e:
            raise SourceError("External API returned invalid JSON.", 502) from e
        return ExternalPayload.from_json(data)
