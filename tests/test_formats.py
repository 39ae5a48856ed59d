from __future__ import annotations

import pytest

from lyric_atlas.formats import (
    ALLOWED_FORMATS,
    default_fallback_order,
    filter_lyric_lines,
    is_valid_format,
    normalize_format,
    parse_fallback_order,
    repository_candidates,
)


def test_allowed_formats():
    assert set(ALLOWED_FORMATS) == {"ttml", "yrc", "lrc", "eslrc", "tlyric", "romalrc"}
    assert is_valid_format("yrc")
    assert not is_valid_format("YRC")
    assert not is_valid_format("")
    assert not is_valid_format(None)


@pytest.mark.parametrize("raw, expected", [("TTML", "ttml"), (" lrc ", "lrc"), ("mp3", None), (None, None)])
def test_normalize_format(raw, expected):
    assert normalize_format(raw) == expected


def test_default_fallback_order_is_a_fresh_list():
    order = default_fallback_order()
    assert order == ["yrc", "lrc", "eslrc"]
    order.append("ttml")
    assert default_fallback_order() == ["yrc", "lrc", "eslrc"]


def test_parse_fallback_order_drops_junk(caplog):
    caplog.set_level("WARNING")
    assert parse_fallback_order("lrc, YRC,bogus,,ttml,lrc") == ["lrc", "yrc"]
    assert "bogus" in caplog.text


def test_parse_fallback_order_empty():
    assert parse_fallback_order(None) == []
    assert parse_fallback_order("ttml") == []


def test_repository_candidates():
    assert repository_candidates(None) == ["ttml", "yrc", "lrc", "eslrc"]
    assert repository_candidates("lrc") == ["ttml", "lrc"]
    # a supplied list with nothing usable leaves only the primary format
    assert repository_candidates("nope") == ["ttml"]


def test_filter_lyric_lines_keeps_lrc_and_yrc_lines():
    raw = "\n".join(
        [
            '{"t":0,"c":[{"tx":"credits"}]}',
            "[00:01.00]first",
            "[00:02.123]second",
            "[1000,2000](1000,500,0)word",
            "[ti:title]",
            "plain text",
        ]
    )
    assert filter_lyric_lines(raw) == "[00:01.00]first\n[00:02.123]second\n[1000,2000](1000,500,0)word"


@pytest.mark.parametrize("raw", [None, "", "no timestamps here\n[ar:someone]"])
def test_filter_lyric_lines_nothing_left(raw):
    assert filter_lyric_lines(raw) is None
