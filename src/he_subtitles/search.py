"""Candidate search against the subtitle source.

An ordered list of strategies is tried; the first one that returns anything
wins. Every strategy swallows (and logs) its own upstream failures, so an
empty list is the only "nothing found" signal.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence
from urllib.parse import quote, urlencode

import httpx
from bs4 import BeautifulSoup

from .common import HEADERS_HTML, absolutize, is_detail_page_url, is_subtitle_file_url, normalize_url
from .metrics import STRATEGY_HITS
from .ranking import PostCandidate, best_page_link
from .render import Renderer, discover_links

log = logging.getLogger("he_subtitles.search")


def _on_domain(href: Optional[str], domain: str) -> bool:
    return bool(href and domain.lower() in href.lower())


def _dedupe(posts: Sequence[PostCandidate]) -> List[PostCandidate]:
    seen = set()
    out: List[PostCandidate] = []
    for post in posts:
        if post.href in seen:
            continue
        seen.add(post.href)
        out.append(post)
    return out


class SearchStrategy:
    """One step of the cascade."""

    name = "base"

    async def attempt(self, queries: Sequence[str], imdb_id: Optional[str]) -> List[PostCandidate]:
        raise NotImplementedError


class DirectIdProbe(SearchStrategy):
    """Probe the canonical per-type detail page for the imdb id."""

    name = "direct"

    def __init__(self, client: httpx.AsyncClient, source_base: str) -> None:
        self.client = client
        self.source_base = source_base.rstrip("/")

    async def attempt(self, queries: Sequence[str], imdb_id: Optional[str]) -> List[PostCandidate]:
        if not imdb_id:
            return []
        for kind in ("movie", "series"):
            url = f"{self.source_base}/{kind}/{imdb_id}"
            try:
                resp = await self.client.head(url, headers=HEADERS_HTML)
            except httpx.HTTPError as exc:
                log.info("direct probe %s failed: %s", url, exc)
                continue
            if resp.is_success:
                log.info("direct probe hit %s", url)
                return [PostCandidate(href=url, text="Direct IMDB match")]
            log.info("direct probe %s -> %s", url, resp.status_code)
        return []


class RenderedSearch(SearchStrategy):
    """Search through a rendered results page.

    Direct subtitle-file links (DOM anchors or URLs seen in background API
    responses) are returned all together; otherwise the single best-scoring
    movie/series page is returned.
    """

    name = "rendered"

    def __init__(self, renderer: Optional[Renderer], source_base: str, source_domain: str) -> None:
        self.renderer = renderer
        self.source_base = source_base.rstrip("/")
        self.source_domain = source_domain

    async def attempt(self, queries: Sequence[str], imdb_id: Optional[str]) -> List[PostCandidate]:
        if self.renderer is None:
            return []
        for query in queries:
            url = f"{self.source_base}/?s={quote(query)}"
            try:
                result = await self.renderer.render(url)
            except Exception as exc:
                # Rendering engines raise their own error types; treat all as an upstream miss
                log.warning("rendered search %r failed: %s", query, exc)
                continue

            links = [PostCandidate(href=a.href, text=a.text) for a in result.anchors if a.href and a.text]
            for observed in result.observed_responses:
                links.extend(
                    PostCandidate(href=href, text="discovered")
                    for href in discover_links(observed.body, self.source_base)
                )
            links = [post for post in _dedupe(links) if _on_domain(post.href, self.source_domain)]
            log.info("rendered search %r: %d links", query, len(links))

            direct = [post for post in links if is_subtitle_file_url(post.href)]
            if direct:
                return direct
            best = best_page_link([post for post in links if is_detail_page_url(post.href)], query)
            if best is not None:
                log.info("rendered search best page %r -> %s", best.text, best.href)
                return [best]
        return []


class StaticHtmlSearch(SearchStrategy):
    """Fetch the search results page without script execution."""

    name = "static"

    def __init__(self, client: httpx.AsyncClient, search_bases: Sequence[str], source_domain: str) -> None:
        self.client = client
        self.search_bases = [base.rstrip("/") for base in search_bases]
        self.source_domain = source_domain

    def parse(self, html: str, base: str) -> List[PostCandidate]:
        soup = BeautifulSoup(html, "html.parser")
        posts: List[PostCandidate] = []
        for anchor in soup.find_all("a", href=True):
            href = absolutize(anchor["href"], base + "/")
            if _on_domain(href, self.source_domain):
                posts.append(PostCandidate(href=href, text=anchor.get_text(" ", strip=True)))
        return _dedupe(posts)

    async def attempt(self, queries: Sequence[str], imdb_id: Optional[str]) -> List[PostCandidate]:
        for base in self.search_bases:
            for query in queries:
                url = f"{base}/?s={quote(query)}"
                try:
                    resp = await self.client.get(url, headers=HEADERS_HTML)
                except httpx.HTTPError as exc:
                    log.info("static search %s failed: %s", url, exc)
                    continue
                if not resp.is_success:
                    log.info("static search %s -> %s", url, resp.status_code)
                    continue
                posts = self.parse(resp.text, base)
                if posts:
                    log.info("static search %r on %s: %d posts", query, base, len(posts))
                    return posts
        return []


class WebSearchFallback(SearchStrategy):
    """General web search restricted to the source domain."""

    name = "web"

    def __init__(self, client: httpx.AsyncClient, search_url: str, source_domain: str) -> None:
        self.client = client
        self.search_url = search_url
        self.source_domain = source_domain

    def parse(self, html: str) -> List[PostCandidate]:
        soup = BeautifulSoup(html, "html.parser")
        posts: List[PostCandidate] = []
        for anchor in soup.select("a.result__a"):
            href = normalize_url((anchor.get("href") or "").strip())
            if _on_domain(href, self.source_domain):
                posts.append(PostCandidate(href=href, text=anchor.get_text(" ", strip=True)))
        return posts

    async def attempt(self, queries: Sequence[str], imdb_id: Optional[str]) -> List[PostCandidate]:
        for query in queries:
            url = f"{self.search_url}?{urlencode({'q': f'site:{self.source_domain} {query}'})}"
            try:
                resp = await self.client.get(url, headers=HEADERS_HTML)
            except httpx.HTTPError as exc:
                log.info("web search failed: %s", exc)
                continue
            if not resp.is_success:
                log.info("web search status %s", resp.status_code)
                continue
            posts = self.parse(resp.text)
            if posts:
                log.info("web search %r: %d posts", query, len(posts))
                return posts
        return []


class CandidateSearch:
    def __init__(self, strategies: Sequence[SearchStrategy]) -> None:
        self.strategies = list(strategies)

    async def search(self, queries: Sequence[str], imdb_id: Optional[str]) -> List[PostCandidate]:
        for strategy in self.strategies:
            try:
                posts = await strategy.attempt(queries, imdb_id)
            except Exception:
                log.exception("search strategy %s crashed", strategy.name)
                continue
            if posts:
                STRATEGY_HITS.labels(strategy=strategy.name).inc()
                return posts
        log.info("no candidates for %s", imdb_id)
        return []


__all__ = [
    "CandidateSearch",
    "DirectIdProbe",
    "RenderedSearch",
    "SearchStrategy",
    "StaticHtmlSearch",
    "WebSearchFallback",
]
