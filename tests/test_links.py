import asyncio

import httpx

from he_subtitles.cache import TTLCache
from he_subtitles.links import PageLinkExtractor
from he_subtitles.render import Anchor, ObservedResponse, RenderResult

BASE = "https://wizdom.xyz"


class FakeRenderer:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = 0

    async def render(self, url, ready_selector=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result

    async def render_and_interact(self, url, intent):
        return await self.render(url)


def _refuse(request):
    raise AssertionError(f"unexpected request {request.url}")


def _extract(url, handler=_refuse, renderer=None, cache=None):
    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            extractor = PageLinkExtractor(client, cache if cache is not None else TTLCache(), renderer, BASE)
            return await extractor.extract(url)

    return asyncio.run(run())


def test_rendered_detail_page_merges_and_dedupes():
    renderer = FakeRenderer(RenderResult(
        anchors=[
            Anchor(href=f"{BASE}/api/files/sub/10", text="Show.S01E01.WEB"),
            Anchor(href="/api/files/sub/11", text="Show.S01E02.WEB", kind="button"),
            Anchor(href=f"{BASE}/series/tt1", text="back"),
            Anchor(href=f"{BASE}/api/files/sub/10", text="duplicate"),
        ],
        observed_responses=[ObservedResponse(f"{BASE}/api/x", "application/json", '"/api/files/sub/12"')],
    ))
    links = _extract(f"{BASE}/series/tt1", renderer=renderer)
    assert [l.href for l in links] == [
        f"{BASE}/api/files/sub/10",
        f"{BASE}/api/files/sub/11",
        f"{BASE}/api/files/sub/12",
    ]
    assert links[0].label == "Show.S01E01.WEB"


def test_render_failure_falls_back_to_static_file_api_anchors():
    def handler(request):
        return httpx.Response(200, text='<a href="/api/files/sub/55">Movie.2020.1080p</a><a href="/x">x</a>')

    links = _extract(f"{BASE}/movie/tt2", handler, FakeRenderer(error=RuntimeError("browser crashed")))
    assert [(l.href, l.label) for l in links] == [(f"{BASE}/api/files/sub/55", "Movie.2020.1080p")]


def test_json_search_is_last_resort():
    def handler(request):
        if request.url.path == "/api/search":
            assert request.url.params["q"] == "tt2"
            return httpx.Response(200, json={
                "results": [
                    {"subtitles": [
                        {"download_link": "/api/files/sub/77", "release_name": "Movie.2020.WEB"},
                        {"release_name": "no link"},
                    ]},
                    {"subtitles": None},
                ]
            })
        return httpx.Response(200, text="<html>nothing here</html>")

    links = _extract(f"{BASE}/movie/tt2", handler)
    assert [(l.href, l.label) for l in links] == [(f"{BASE}/api/files/sub/77", "Movie.2020.WEB")]


def test_listing_page_keeps_subtitle_file_anchors():
    def handler(request):
        return httpx.Response(
            200,
            text='<a href="files/a.srt">A</a><a href="https://wizdom.xyz/b.zip?x=1"></a><a href="/page">p</a>',
        )

    links = _extract(f"{BASE}/list/", handler)
    assert [(l.href, l.label) for l in links] == [
        (f"{BASE}/list/files/a.srt", "A"),
        (f"{BASE}/b.zip?x=1", "Subtitle"),
    ]


def test_results_are_cached_but_empty_ones_are_not():
    renderer = FakeRenderer(RenderResult(anchors=[Anchor(href=f"{BASE}/api/files/sub/1", text="x")]))
    cache = TTLCache()
    _extract(f"{BASE}/movie/tt3", renderer=renderer, cache=cache)
    _extract(f"{BASE}/movie/tt3", renderer=renderer, cache=cache)
    assert renderer.calls == 1

    empty = FakeRenderer(RenderResult())
    _extract(f"{BASE}/movie/tt4", renderer=empty, cache=cache)
    _extract(f"{BASE}/movie/tt4", renderer=empty, cache=cache)
    assert empty.calls == 2


def test_json_search_skips_malformed_items():
    def handler(request):
        if request.url.path == "/api/search":
            return httpx.Response(200, json={
                "results": [
                    "oops",
                    None,
                    {"subtitles": "not-a-list"},
                    {"subtitles": [7, {"download_link": 12}, {"download_link": "/api/files/sub/5"}]},
                ]
            })
        return httpx.Response(200, text="<html></html>")

    links = _extract(f"{BASE}/series/tt9", handler)
    assert [l.href for l in links] == [f"{BASE}/api/files/sub/5"]


def test_json_search_with_non_list_results_is_empty():
    def handler(request):
        if request.url.path == "/api/search":
            return httpx.Response(200, json={"results": "none"})
        return httpx.Response(200, text="<html></html>")

    assert _extract(f"{BASE}/movie/tt8", handler) == []
