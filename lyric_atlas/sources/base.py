from __future__ import annotations

import logging

from lyric_atlas.errors import SourceError
from lyric_atlas.formats import EXTERNAL_FORMATS, LyricFormat, filter_lyric_lines
from lyric_atlas.net.governor import CancelToken

from .types import Availability, ExternalPayload, FetchFailed, FetchFound, FetchNotFound, FetchOutcome

logger = logging.getLogger(__name__)


class RepositorySource:
    """Curated lyric files, one per (track id, format)."""

    name = "repository"

    def fetch(self, track_id: str, fmt: LyricFormat, token: CancelToken | None = None) -> FetchOutcome:
        raise NotImplementedError

    def exists(self, track_id: str, fmt: LyricFormat, token: CancelToken | None = None) -> Availability:
        raise NotImplementedError


class ExternalSource:
    """
    Third-party lyric API returning every format for a track in one payload.

    Subclasses only have to load the payload; format preference, timestamp
    filtering and the translation/romaji side channels are shared.
    """

    name = "external"

    def load_payload(self, track_id: str, token: CancelToken | None = None) -> ExternalPayload:
        raise NotImplementedError

    def fetch(
        self,
        track_id: str,
        format_hint: LyricFormat | None = None,
        token: CancelToken | None = None,
    ) -> FetchOutcome:
        if format_hint is not None and format_hint not in EXTERNAL_FORMATS:
            return FetchNotFound(format=format_hint)
        try:
            payload = self.load_payload(track_id, token)
        except SourceError as e:
            logger.error("External lookup failed for %s: %s", track_id, e)
            return FetchFailed(error=e, format=format_hint)
        return self.pick(track_id, payload, format_hint)

    @staticmethod
    def pick(track_id: str, payload: ExternalPayload, format_hint: LyricFormat | None = None) -> FetchOutcome:
        translation = filter_lyric_lines(payload.tlyric)
        romaji = filter_lyric_lines(payload.romalrc)
        logger.debug(
            "External payload for %s: translation=%s romaji=%s",
            track_id,
            bool(translation),
            bool(romaji),
        )

        # yrc is preferred over lrc when the caller does not ask for one
        order: tuple[LyricFormat, ...] = (format_hint,) if format_hint else EXTERNAL_FORMATS
        for fmt in order:
            content = filter_lyric_lines(getattr(payload, fmt))
            if content:
                logger.info("External API has %s lyrics for %s", fmt.upper(), track_id)
                return FetchFound(
                    format=fmt,
                    content=content,
                    source="external",
                    translation=translation,
                    romaji=romaji,
                )

        logger.info(
            "No usable lyrics%s in external payload for %s",
            f" for format {format_hint}" if format_hint else "",
            track_id,
        )
        return FetchNotFound(format=format_hint)
