from __future__ import annotations

import logging
import re
from typing import Literal, cast

logger = logging.getLogger(__name__)

LyricFormat = Literal["ttml", "yrc", "lrc", "eslrc", "tlyric", "romalrc"]

ALLOWED_FORMATS: tuple[LyricFormat, ...] = ("ttml", "yrc", "lrc", "eslrc", "tlyric", "romalrc")
PRIMARY_FORMAT: LyricFormat = "ttml"
# formats the external API can serve as a primary lyric
EXTERNAL_FORMATS: tuple[LyricFormat, ...] = ("yrc", "lrc")

_DEFAULT_FALLBACK_ORDER: tuple[LyricFormat, ...] = ("yrc", "lrc", "eslrc")

# [mm:ss.xx] / [mm:ss.xxx] (lrc) or [start,duration] (yrc)
LYRIC_LINE_RE = re.compile(r"^\[(?:\d{2}:\d{2}\.\d{2,3}|\d+,\d+)\]")


def is_valid_format(value: str | None) -> bool:
    if not value:
        return False
    return value in ALLOWED_FORMATS


def normalize_format(value: str | None) -> LyricFormat | None:
    """Case-insensitive lookup; returns None for anything unknown."""
    if not value:
        return None
    candidate = value.strip().lower()
    if is_valid_format(candidate):
        return cast(LyricFormat, candidate)
    return None


def default_fallback_order() -> list[LyricFormat]:
    return list(_DEFAULT_FALLBACK_ORDER)


def parse_fallback_order(raw: str | None) -> list[LyricFormat]:
    """
    Parse a comma-separated fallback list, e.g. "lrc, YRC,bogus".

    Order is preserved, duplicates and `ttml` are dropped, unknown entries are
    skipped with a warning.
    """
    if not raw:
        return []
    out: list[LyricFormat] = []
    for part in raw.split(","):
        name = part.strip().lower()
        if not name:
            continue
        fmt = normalize_format(name)
        if fmt is None:
            logger.warning("Ignoring unknown fallback format '%s'", name)
            continue
        if fmt == PRIMARY_FORMAT or fmt in out:
            continue
        out.append(fmt)
    if not out:
        logger.warning("Fallback order '%s' contains no usable non-primary formats", raw)
    return out


def repository_candidates(fallback_raw: str | None) -> list[LyricFormat]:
    """`ttml` first, then the client's fallback order or the default one."""
    if fallback_raw is not None:
        tail = parse_fallback_order(fallback_raw)
    else:
        tail = default_fallback_order()
    return [PRIMARY_FORMAT, *tail]


def filter_lyric_lines(raw: str | None) -> str | None:
    """Keep only timestamped lines. None when nothing is left."""
    if not raw:
        return None
    kept = [ln for ln in raw.split("\n") if LYRIC_LINE_RE.match(ln.strip())]
    return "\n".join(kept) if kept else None
