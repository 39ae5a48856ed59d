from __future__ import annotations

import json

import pytest

from lyric_atlas.errors import ConfigurationError, RequestTimeout, SourceError
from lyric_atlas.net.client import HttpResponse
from lyric_atlas.sources.base import ExternalSource
from lyric_atlas.sources.external import NeteaseApiSource, build_external_url
from lyric_atlas.sources.repository import GitHubRepositorySource, build_raw_url
from lyric_atlas.sources.types import ExternalPayload, FetchFailed, FetchFound, FetchNotFound


class FakeHttp:
    """Maps url -> HttpResponse or exception; records (method, url, kwargs)."""

    def __init__(self, routes=None):
        self.routes = routes or {}
        self.calls = []

    def _answer(self, method, url, kwargs):
        self.calls.append((method, url, kwargs))
        answer = self.routes.get(url, HttpResponse(404))
        if isinstance(answer, BaseException):
            raise answer
        return answer

    def get(self, url, **kwargs):
        return self._answer("GET", url, kwargs)

    def head(self, url, **kwargs):
        return self._answer("HEAD", url, kwargs)


BASE = "https://raw.example/ncm-lyrics"
API = "https://api.example/lyric"


def test_build_urls():
    assert build_raw_url(BASE + "/", "123", "ttml") == f"{BASE}/123.ttml"
    assert build_raw_url(BASE, "a/b", "lrc") == f"{BASE}/a%2Fb.lrc"
    assert build_external_url(API, "123") == f"{API}?id=123"


class TestRepository:
    def test_found(self):
        http = FakeHttp({f"{BASE}/1.ttml": HttpResponse(200, "<tt/>")})
        out = GitHubRepositorySource(http, base_url=BASE).fetch("1", "ttml")
        assert out == FetchFound(format="ttml", content="<tt/>", source="repository")
        assert http.calls[0][2]["timeout_s"] == 4.0

    def test_missing_file(self):
        out = GitHubRepositorySource(FakeHttp(), base_url=BASE).fetch("1", "yrc")
        assert out == FetchNotFound(format="yrc")

    def test_upstream_error_keeps_status(self):
        http = FakeHttp({f"{BASE}/1.lrc": HttpResponse(503, "busy")})
        out = GitHubRepositorySource(http, base_url=BASE).fetch("1", "lrc")
        assert isinstance(out, FetchFailed)
        assert out.status_code == 503

    def test_empty_body_is_a_failure(self):
        http = FakeHttp({f"{BASE}/1.lrc": HttpResponse(200, "  \n")})
        out = GitHubRepositorySource(http, base_url=BASE).fetch("1", "lrc")
        assert isinstance(out, FetchFailed)

    def test_transport_error(self):
        http = FakeHttp({f"{BASE}/1.yrc": RequestTimeout("slow")})
        out = GitHubRepositorySource(http, base_url=BASE).fetch("1", "yrc")
        assert isinstance(out, FetchFailed) and out.timed_out

    def test_exists(self):
        http = FakeHttp(
            {
                f"{BASE}/1.ttml": HttpResponse(200),
                f"{BASE}/1.lrc": HttpResponse(500),
                f"{BASE}/1.eslrc": SourceError("down"),
            }
        )
        repo = GitHubRepositorySource(http, base_url=BASE)
        assert repo.exists("1", "ttml").exists
        assert not repo.exists("1", "yrc").exists
        assert repo.exists("1", "yrc").error is None
        assert repo.exists("1", "lrc").error.status_code == 500
        assert repo.exists("1", "eslrc").error is not None
        assert {m for m, _u, _k in http.calls} == {"HEAD"}
        assert http.calls[0][2]["timeout_s"] == 2.0


def _api_body(**blocks):
    return json.dumps({k: {"lyric": v} for k, v in blocks.items()})


class TestExternal:
    def test_requires_base_url(self):
        with pytest.raises(ConfigurationError):
            NeteaseApiSource(FakeHttp(), base_url="")

    def test_payload_decoding(self):
        body = _api_body(yrc="[0,1](0,1,0)a", lrc="[00:00.00]a", tlyric="[00:00.00]t")
        http = FakeHttp({f"{API}?id=7": HttpResponse(200, body)})
        payload = NeteaseApiSource(http, base_url=API).load_payload("7")
        assert payload == ExternalPayload(lrc="[00:00.00]a", yrc="[0,1](0,1,0)a", tlyric="[00:00.00]t")

    def test_404_is_an_empty_payload(self):
        payload = NeteaseApiSource(FakeHttp(), base_url=API).load_payload("7")
        assert payload == ExternalPayload()

    def test_bad_status(self):
        http = FakeHttp({f"{API}?id=7": HttpResponse(500, "oops")})
        with pytest.raises(SourceError) as e:
            NeteaseApiSource(http, base_url=API).load_payload("7")
        assert e.value.status_code == 500

    def test_invalid_json(self):
        http = FakeHttp({f"{API}?id=7": HttpResponse(200, "<html>")})
        with pytest.raises(SourceError) as e:
            NeteaseApiSource(http, base_url=API).load_payload("7")
        assert e.value.status_code == 502

    def test_fetch_turns_errors_into_outcomes(self):
        http = FakeHttp({f"{API}?id=7": HttpResponse(503)})
        out = NeteaseApiSource(http, base_url=API).fetch("7")
        assert isinstance(out, FetchFailed) and out.status_code == 503

    def test_fetch_skips_formats_the_api_cannot_serve(self):
        http = FakeHttp()
        out = NeteaseApiSource(http, base_url=API).fetch("7", "ttml")
        assert out == FetchNotFound(format="ttml")
        assert http.calls == []


@pytest.mark.parametrize(
    "data",
    [None, [], {"lrc": "not a block"}, {"lrc": {"lyric": 5}}, {"lrc": {"lyric": ""}}],
)
def test_odd_payload_shapes_count_as_absent(data):
    assert ExternalPayload.from_json(data) == ExternalPayload()


class TestPick:
    def test_prefers_yrc(self):
        payload = ExternalPayload(yrc="[0,1](0,1,0)y", lrc="[00:00.00]l")
        out = ExternalSource.pick("1", payload)
        assert (out.format, out.content, out.source) == ("yrc", "[0,1](0,1,0)y", "external")

    def test_hint_restricts_format(self):
        payload = ExternalPayload(yrc="[0,1](0,1,0)y")
        assert ExternalSource.pick("1", payload, "lrc") == FetchNotFound(format="lrc")

    def test_unusable_yrc_falls_through_to_lrc(self):
        payload = ExternalPayload(yrc='{"t":0,"c":[]}', lrc="[00:00.00]l")
        assert ExternalSource.pick("1", payload).format == "lrc"

    def test_side_channels_are_filtered(self):
        payload = ExternalPayload(
            lrc="[00:00.00]l",
            tlyric="[by:translator]\n[00:00.00]translated",
            romalrc="no timestamps",
        )
        out = ExternalSource.pick("1", payload)
        assert out.translation == "[00:00.00]translated"
        assert out.romaji is None
