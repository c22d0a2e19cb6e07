"""Turns a chosen detail/listing page into subtitle-file links."""

from __future__ import annotations

import logging
import re
from typing import List, Optional

import httpx
from bs4 import BeautifulSoup

from .cache import TTLCache, cache_key
from .common import HEADERS_PLAIN, absolutize, is_detail_page_url, is_file_api_url, is_subtitle_file_url
from .ranking import SubtitleLink
from .render import SUBTITLE_ANCHOR_SELECTOR, Renderer, discover_links

log = logging.getLogger("he_subtitles.links")

_PAGE_IMDB_RE = re.compile(r"/(?:movie|series)/(tt\d+)")


def _unique(links: List[SubtitleLink]) -> List[SubtitleLink]:
    seen = set()
    out: List[SubtitleLink] = []
    for link in links:
        if link.href in seen:
            continue
        seen.add(link.href)
        out.append(link)
    return out


class PageLinkExtractor:
    def __init__(
        self,
        client: httpx.AsyncClient,
        cache: TTLCache,
        renderer: Optional[Renderer],
        source_base: str,
    ) -> None:
        self.client = client
        self.cache = cache
        self.renderer = renderer
        self.source_base = source_base.rstrip("/")

    async def extract(self, page_url: str) -> List[SubtitleLink]:
        """Subtitle links found on ``page_url``; cached, except when empty."""
        return await self.cache.get_or_set(cache_key("page", page_url), lambda: self._extract(page_url))

    async def _extract(self, page_url: str) -> List[SubtitleLink]:
        log.info("extract page %s", page_url)
        if is_detail_page_url(page_url):
            return await self._from_detail_page(page_url)
        return await self._from_static_page(page_url)

    async def _from_static_page(self, page_url: str) -> List[SubtitleLink]:
        try:
            resp = await self.client.get(page_url, headers=HEADERS_PLAIN)
        except httpx.HTTPError as exc:
            log.info("page fetch failed: %s", exc)
            return []
        if not resp.is_success:
            log.info("page status %s", resp.status_code)
            return []
        soup = BeautifulSoup(resp.text, "html.parser")
        links: List[SubtitleLink] = []
        for anchor in soup.find_all("a", href=True):
            href = absolutize(anchor["href"], page_url)
            if href and is_subtitle_file_url(href):
                links.append(SubtitleLink(href=href, label=anchor.get_text(" ", strip=True) or "Subtitle"))
        links = _unique(links)
        log.info("found %d subtitle links", len(links))
        return links

    async def _from_detail_page(self, page_url: str) -> List[SubtitleLink]:
        if self.renderer is not None:
            try:
                result = await self.renderer.render(page_url, ready_selector=SUBTITLE_ANCHOR_SELECTOR)
            except Exception as exc:
                log.warning("render of %s failed, falling back to static fetch: %s", page_url, exc)
            else:
                links = [
                    SubtitleLink(href=href, label=anchor.text or "Subtitle")
                    for anchor in result.anchors
                    for href in [absolutize(anchor.href, page_url)]
                    if href and is_subtitle_file_url(href)
                ]
                for observed in result.observed_responses:
                    links.extend(SubtitleLink(href=h, label="discovered") for h in discover_links(observed.body, self.source_base))
                links = _unique(links)
                log.info("rendered page gave %d unique subtitle links", len(links))
                return links

        links = await self._static_file_api_links(page_url)
        if links:
            return links
        return await self._api_search(page_url)

    async def _static_file_api_links(self, page_url: str) -> List[SubtitleLink]:
        try:
            resp = await self.client.get(page_url, headers=HEADERS_PLAIN)
        except httpx.HTTPError as exc:
            log.info("static fallback failed: %s", exc)
            return []
        if not resp.is_success:
            return []
        soup = BeautifulSoup(resp.text, "html.parser")
        links = [
            SubtitleLink(href=href, label=a.get_text(strip=True) or "Download")
            for a in soup.select('a[href*="/api/files/sub/"]')
            for href in [absolutize(a["href"], self.source_base + "/")]
            if href and is_file_api_url(href)
        ]
        log.info("static fallback found %d subtitle links", len(links))
        return _unique(links)

    async def _api_search(self, page_url: str) -> List[SubtitleLink]:
        match = _PAGE_IMDB_RE.search(page_url)
        if not match:
            log.info("no imdb id in %s", page_url)
            return []
        url = f"{self.source_base}/api/search"
        try:
            resp = await self.client.get(url, params={"q": match.group(1)}, headers=HEADERS_PLAIN)
            if not resp.is_success:
                log.info("api search status %s", resp.status_code)
                return []
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            log.info("api search failed: %s", exc)
            return []

        links: List[SubtitleLink] = []
        results = data.get("results") if isinstance(data, dict) else None
        for result in results if isinstance(results, list) else []:
            if not isinstance(result, dict):
                continue
            subs = result.get("subtitles")
            for sub in subs if isinstance(subs, list) else []:
                if not isinstance(sub, dict):
                    continue
                download = sub.get("download_link")
                if not isinstance(download, str) or not download:
                    continue
                href = absolutize(download, self.source_base + "/")
                if href:
                    links.append(SubtitleLink(href=href, label=sub.get("release_name") or "Download"))
        log.info("api search found %d subtitle links", len(links))
        return _unique(links)


__all__ = ["PageLinkExtractor"]
