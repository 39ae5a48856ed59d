from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from lyric_atlas.errors import RequestTimeout, SourceError
from lyric_atlas.formats import LyricFormat

SourceName = Literal["repository", "external"]


@dataclass(frozen=True, slots=True)
class FetchFound:
    format: LyricFormat
    content: str
    source: SourceName
    translation: str | None = None
    romaji: str | None = None


@dataclass(frozen=True, slots=True)
class FetchNotFound:
    format: LyricFormat | None = None


@dataclass(frozen=True, slots=True)
class FetchFailed:
    error: SourceError
    format: LyricFormat | None = None

    @property
    def status_code(self) -> int | None:
        return self.error.status_code

    @property
    def timed_out(self) -> bool:
        return isinstance(self.error, RequestTimeout)


FetchOutcome = FetchFound | FetchNotFound | FetchFailed


@dataclass(frozen=True, slots=True)
class Availability:
    """Result of a cheap existence probe (no body)."""

    format: LyricFormat
    exists: bool
    error: SourceError | None = None


@dataclass(frozen=True, slots=True)
class ExternalPayload:
    lrc: str | None = None
    yrc: str | None = None
    tlyric: str | None = None
    romalrc: str | None = None

    @classmethod
    def from_json(cls, data: Any) -> "ExternalPayload":
        """Every member is optional; wrong shapes count as absent."""
        if not isinstance(data, dict):
            return cls()

        def _lyric(key: str) -> str | None:
            block = data.get(key)
            if not isinstance(block, dict):
                return None
            value = block.get("lyric")
            return value if isinstance(value, str) and value else None

        return cls(
            lrc=_lyric("lrc"),
            yrc=_lyric("yrc"),
            tlyric=_lyric("tlyric"),
            romalrc=_lyric("romalrc"),
        )


@dataclass(frozen=True, slots=True)
class RequestShape:
    id: str
    fixed_format: str | None = None
    fallback_order: str | None = None

    @property
    def cache_key(self) -> str:
        return f"search:{self.id}:{self.fixed_format or 'none'}:{self.fallback_order or 'none'}"


@dataclass(frozen=True, slots=True)
class LyricsFound:
    id: str
    format: LyricFormat
    source: SourceName
    content: str
    translation: str | None = None
    romaji: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "found": True,
            "id": self.id,
            "format": self.format,
            "source": self.source,
            "content": self.content,
        }
        if self.translation:
            out["translation"] = self.translation
        if self.romaji:
            out["romaji"] = self.romaji
        return out


@dataclass(frozen=True, slots=True)
class LyricsNotFound:
    id: str
    error: str
    status_code: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"found": False, "id": self.id, "error": self.error, "statusCode": self.status_code}


SearchResult = LyricsFound | LyricsNotFound


@dataclass(frozen=True, slots=True)
class MetadataFound:
    id: str
    available_formats: tuple[LyricFormat, ...]
    has_translation: bool = False
    has_romaji: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "found": True,
            "id": self.id,
            "availableFormats": list(self.available_formats),
            "hasTranslation": self.has_translation,
            "hasRomaji": self.has_romaji,
        }


@dataclass(frozen=True, slots=True)
class MetadataNotFound:
    id: str
    error: str
    status_code: int = 404

    def to_dict(self) -> dict[str, Any]:
        return {"found": False, "id": self.id, "error": self.error, "statusCode": self.status_code}


MetadataResult = MetadataFound | MetadataNotFound
