import pytest
from fastapi.testclient import TestClient

import app as app_module
from he_subtitles.extract import NoSubtitleEntry
from he_subtitles.fetch import CaptionAsset

VTT = b"WEBVTT\n\n00:00:01.000 --> 00:00:02.000\nhello\n"


class FakeService:
    def __init__(self, subtitles=None, asset=None, error=None):
        self.subtitles = subtitles or []
        self.asset = asset or CaptionAsset(VTT)
        self.error = error
        self.calls = []

    async def search_subtitles(self, media_type, raw_id):
        self.calls.append(("search", media_type, raw_id))
        if self.error:
            raise self.error
        return self.subtitles

    async def caption(self, src, tag=None, title=None):
        self.calls.append(("caption", src, tag, title))
        if self.error:
            raise self.error
        return self.asset

    async def episode_caption(self, post, tag, title, fallback):
        self.calls.append(("episode", post, tag, title, fallback))
        if self.error:
            raise self.error
        return self.asset


@pytest.fixture
def fake(monkeypatch):
    service = FakeService()
    monkeypatch.setattr(app_module, "get_service", lambda: service)
    return service


@pytest.fixture
def client():
    return TestClient(app_module.app)


def test_manifest(client):
    for path in ("/manifest.json", "/vidi/manifest.json"):
        data = client.get(path).json()
        assert data["id"] == "community.wizdom.subs"
        assert data["resources"] == ["subtitles"]
        assert data["types"] == ["movie", "series"]
        assert data["idPrefixes"] == ["tt"]
    assert client.get("/vidi/configure").json() == {"type": "configure", "args": []}


def test_health_endpoints(client):
    assert client.get("/health").json()["status"] == "OK"
    assert client.get("/healthz").json()["status"] == "ok"
    assert client.get("/metrics").status_code == 200


def test_request_id_is_echoed(client, fake):
    resp = client.get("/health", headers={"X-Request-ID": "abc123"})
    assert resp.headers["X-Request-ID"] == "abc123"
    assert len(client.get("/health").headers["X-Request-ID"]) == 16


def test_empty_result_is_200(client, fake):
    resp = client.get("/subtitles/movie/tt0000001.json")
    assert resp.status_code == 200
    assert resp.json() == {"subtitles": []}


@pytest.mark.parametrize(
    "path",
    [
        "/subtitles/series/tt1:1:2.json",
        "/subtitles/series/tt1:1:2",
        "/subtitles/series/tt1:1:2/videoHash=abc&videoSize=1.json",
        "/vidi/subtitles/series/tt1:1:2",
    ],
)
def test_subtitle_route_variants(client, fake, path):
    fake.subtitles = [{"id": "wizdom-0", "lang": "he", "name": "Wizdom • x", "url": "u", "mimeType": "text/vtt"}]
    resp = client.get(path)
    assert resp.status_code == 200
    assert resp.json()["subtitles"][0]["id"] == "wizdom-0"
    assert fake.calls[0][1] == "series"
    assert fake.calls[0][2].startswith("tt1:1:2")


def test_search_failure_is_500(client, fake):
    fake.error = RuntimeError("boom")
    resp = client.get("/subtitles/movie/tt1.json")
    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to fetch subtitles"}


def test_proxy_full_body(client, fake):
    resp = client.get("/proxy/vtt", params={"src": "https://wizdom.xyz/api/files/sub/42", "se": "S01E02", "title": "Show"})
    assert resp.status_code == 200
    assert resp.content == VTT
    assert resp.headers["content-type"] == "text/vtt; charset=utf-8"
    assert resp.headers["content-disposition"] == 'inline; filename="wizdom-42.vtt"'
    assert resp.headers["accept-ranges"] == "bytes"
    assert resp.headers["cache-control"] == "public, max-age=300"
    assert resp.headers["access-control-allow-origin"] == "*"
    assert fake.calls == [("caption", "https://wizdom.xyz/api/files/sub/42", "S01E02", "Show")]


def test_proxy_normalizes_header(client, fake):
    fake.asset = CaptionAsset(b"\xef\xbb\xbfWEBVTT FILE\r\n\r\n00:00:01.000 --> 00:00:02.000\r\nhello\r\n")
    resp = client.get("/proxy/vtt.vtt", params={"src": "https://wizdom.xyz/files/a.srt"})
    assert resp.content == VTT
    assert resp.headers["content-disposition"] == 'inline; filename="wizdom-subtitle.vtt"'


def test_proxy_range(client, fake):
    resp = client.get("/proxy/vtt", params={"src": "https://wizdom.xyz/files/a.srt"}, headers={"Range": "bytes=0-5"})
    assert resp.status_code == 206
    assert resp.content == VTT[:6]
    assert resp.headers["content-range"] == f"bytes 0-5/{len(VTT)}"

    resp = client.get("/proxy/vtt", params={"src": "https://wizdom.xyz/files/a.srt"}, headers={"Range": "bytes=8-"})
    assert resp.status_code == 206
    assert resp.content == VTT[8:]


@pytest.mark.parametrize("value", ["bytes=9999-", "bytes=5-2", "items=0-1"])
def test_proxy_unsatisfiable_range(client, fake, value):
    resp = client.get("/proxy/vtt", params={"src": "https://wizdom.xyz/files/a.srt"}, headers={"Range": value})
    assert resp.status_code == 416
    assert resp.headers["content-range"] == f"bytes */{len(VTT)}"


def test_proxy_head_has_length_without_body(client, fake):
    resp = client.head("/proxy/vtt", params={"src": "https://wizdom.xyz/api/files/sub/7"})
    assert resp.status_code == 200
    assert resp.content == b""
    assert resp.headers["content-length"] == str(len(VTT))
    assert resp.headers["content-type"] == "text/vtt; charset=utf-8"
    assert resp.headers["content-disposition"] == 'inline; filename="wizdom-7.vtt"'


def test_proxy_options(client, fake):
    resp = client.options("/proxy/vtt")
    assert resp.status_code == 200
    assert fake.calls == []


def test_proxy_missing_src(client, fake):
    resp = client.get("/proxy/vtt")
    assert resp.status_code == 400
    assert resp.text == "missing src"


def test_proxy_conversion_failure_is_500(client, fake):
    fake.error = NoSubtitleEntry("empty archive")
    resp = client.get("/proxy/vtt", params={"src": "https://wizdom.xyz/files/a.zip"})
    assert resp.status_code == 500
    assert resp.text == "failed to fetch/convert subtitles"


def test_episode_proxy(client, fake):
    params = {
        "post": "https://wizdom.xyz/series/tt1",
        "se": "S01E02",
        "title": "Show",
        "fallback": "https://wizdom.xyz/api/files/sub/9",
    }
    resp = client.get("/proxy/vtt-episode", params=params)
    assert resp.status_code == 200
    assert resp.content == VTT
    assert fake.calls == [("episode", params["post"], "S01E02", "Show", params["fallback"])]


def test_episode_proxy_requires_post_or_fallback(client, fake):
    assert client.get("/proxy/vtt-episode", params={"se": "S01E02"}).status_code == 400


@pytest.mark.parametrize(
    "src",
    ["https://evil.example/a.srt", "http://127.0.0.1:8080/admin", "file:///etc/passwd", "https://wizdom.xyz.evil.example/a.srt"],
)
def test_proxy_rejects_foreign_hosts(client, fake, src):
    resp = client.get("/proxy/vtt", params={"src": src})
    assert resp.status_code == 400
    assert resp.text == "src not allowed"
    assert fake.calls == []


def test_episode_proxy_rejects_foreign_fallback(client, fake):
    params = {"post": "https://wizdom.xyz/series/tt1", "se": "S01E02", "fallback": "https://evil.example/x.srt"}
    assert client.get("/proxy/vtt-episode", params=params).status_code == 400
    assert fake.calls == []


def test_proxy_accepts_subdomains(client, fake):
    assert client.get("/proxy/vtt", params={"src": "https://cdn.wizdom.xyz/files/a.srt"}).status_code == 200
