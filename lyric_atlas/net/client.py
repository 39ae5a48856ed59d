"""
Outbound HTTP for the lyric sources.

Only transport concerns live here: the shared session, per-call timeouts
capped by the request budget, one bounded retry with linear backoff, and
the outbound concurrency gate. Status codes are returned untouched; the
adapters decide what a 404 or a 503 means.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

import requests
from requests.adapters import HTTPAdapter

from lyric_atlas.errors import RequestTimeout, SourceError

from .governor import CancelToken, OutboundGate

logger = logging.getLogger(__name__)

USER_AGENT = "lyric-atlas/0.1"


@dataclass(frozen=True, slots=True)
class HttpResponse:
    status_code: int
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class HttpClient:
    def __init__(self, *, gate: OutboundGate, session: requests.Session | None = None):
        self.gate = gate
        self.session = session or self._build_session(gate.limit)

    @staticmethod
    def _build_session(pool_size: int) -> requests.Session:
        sess = requests.Session()
        adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
        sess.mount("https://", adapter)
        sess.mount("http://", adapter)
        sess.headers["User-Agent"] = USER_AGENT
        return sess

    def get(
        self,
        url: str,
        *,
        timeout_s: float,
        retries: int = 1,
        backoff_base_s: float = 0.3,
        token: CancelToken | None = None,
    ) -> HttpResponse:
        return self._request("GET", url, timeout_s, retries, backoff_base_s, token)

    def head(
        self,
        url: str,
        *,
        timeout_s: float,
        retries: int = 1,
        backoff_base_s: float = 0.2,
        token: CancelToken | None = None,
    ) -> HttpResponse:
        return self._request("HEAD", url, timeout_s, retries, backoff_base_s, token)

    def _request(
        self,
        method: str,
        url: str,
        timeout_s: float,
        retries: int,
        backoff_base_s: float,
        token: CancelToken | None,
    ) -> HttpResponse:
        attempts = max(retries, 0) + 1
        last_error: requests.RequestException | None = None

        for attempt in range(1, attempts + 1):
            if token is not None:
                token.raise_if_cancelled(f"{method} {url}")
            timeout = token.cap(timeout_s) if token is not None else timeout_s
            if timeout <= 0:
                raise RequestTimeout(f"{method} {url}: no time left")
            if attempt > 1:
                logger.debug("Retry %s/%s for %s", attempt - 1, retries, url)

            def _send() -> requests.Response:
                return self.session.request(method, url, timeout=timeout, allow_redirects=True)

            try:
                r = self.gate.run(_send, token)
                text = r.text if method != "HEAD" else ""
                return HttpResponse(status_code=r.status_code, text=text)
            except (requests.Timeout, requests.ConnectionError) as e:
                last_error = e
                logger.warning("%s %s failed (attempt %s/%s): %s", method, url, attempt, attempts, e)
            except requests.RequestException as e:
                raise SourceError(f"{method} {url} failed: {e}") from e

            if attempt < attempts:
                delay = backoff_base_s * attempt
                if token is not None:
                    if token.wait(delay):
                        raise RequestTimeout(f"{method} {url} aborted during backoff")
                else:
                    time.sleep(delay)

        if isinstance(last_error, requests.Timeout):
            raise RequestTimeout(f"{method} {url} timed out after {attempts} attempt(s)")
        raise SourceError(f"Network error for {url}: {last_error}")

    def close(self) -> None:
        self.session.close()
