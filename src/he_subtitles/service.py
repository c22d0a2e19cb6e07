"""The resolution pipeline shared by every front-end."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional
from urllib.parse import urlencode

import httpx

from .cache import TTLCache
from .common import SE_TAG_RE, file_api_id, is_detail_page_url, is_file_api_url, is_subtitle_file_url, normalize_url, se_tag
from .convert import MIME_TYPE
from .extract import SubtitleExtractionError
from .fetch import CaptionAsset, ContentFetcher, UpstreamError
from .links import PageLinkExtractor
from .metadata import MediaRequest, TitleInfo, build_media_request, fetch_title_info
from .metrics import SEARCH_COUNT
from .queries import build_queries
from .ranking import SubtitleLink, pick_best_post
from .render import PlaywrightRenderer, Renderer
from .search import CandidateSearch, DirectIdProbe, RenderedSearch, StaticHtmlSearch, WebSearchFallback
from .settings import Settings
from .validate import validate_link

log = logging.getLogger("he_subtitles.service")

LANG = "he"
SOURCE_LABEL = "Wizdom"


def subtitle_label(link: SubtitleLink) -> str:
    sub_id = file_api_id(link.href)
    if sub_id:
        return f"Hebrew Subtitle {sub_id}"
    return link.label or "Subtitle"


class SubtitleService:
    """Owns the HTTP client, cache and renderer; one instance per process."""

    def __init__(
        self,
        settings: Settings,
        client: Optional[httpx.AsyncClient] = None,
        renderer: Optional[Renderer] = None,
        cache: Optional[TTLCache] = None,
    ) -> None:
        self.settings = settings
        self.client = client or httpx.AsyncClient(timeout=settings.request_timeout, follow_redirects=True)
        if renderer is None and settings.render_enabled:
            renderer = PlaywrightRenderer(
                settings.source_domain,
                timeout=settings.render_timeout,
                interact_timeout=settings.episode_render_timeout,
                settle_seconds=settings.render_settle_seconds,
                poll_attempts=settings.page_poll_attempts,
                poll_interval=settings.page_poll_interval,
            )
        self.renderer = renderer
        self.cache = cache if cache is not None else TTLCache(default_ttl=settings.cache_ttl, max_size=settings.cache_max_size)
        self.search = CandidateSearch(
            [
                DirectIdProbe(self.client, settings.source_base),
                RenderedSearch(self.renderer, settings.source_base, settings.source_domain),
                StaticHtmlSearch(self.client, settings.search_bases, settings.source_domain),
                WebSearchFallback(self.client, settings.web_search_url, settings.source_domain),
            ]
        )
        self.links = PageLinkExtractor(self.client, self.cache, self.renderer, settings.source_base)
        self.fetcher = ContentFetcher(self.client, self.cache)

    async def aclose(self) -> None:
        await self.client.aclose()

    # --- listing -------------------------------------------------------------
    async def title_info(self, request: MediaRequest) -> TitleInfo:
        return await fetch_title_info(
            self.client,
            "series" if request.media_type == "series" else "movie",
            request.imdb_id,
            self.settings.cinemeta_bases,
            self.settings.title_overrides,
        )

    async def find_links(self, request: MediaRequest, info: TitleInfo):
        """Return ``(chosen_url, validated_links)`` for a request."""
        queries = build_queries(info, request.season, request.episode)
        posts = await self.search.search(queries, request.imdb_id)
        if not posts:
            return None, []
        log.info("found %d posts", len(posts))

        chosen = normalize_url(pick_best_post(posts, info.title, request.season, request.episode))
        log.info("chosen: %s", chosen)
        if not chosen:
            return None, []

        if is_subtitle_file_url(chosen):
            result = await validate_link(self.client, chosen, info.title, request.season, request.episode)
            return chosen, [SubtitleLink(href=chosen, label="Direct")] if result else []

        validated: List[SubtitleLink] = []
        for link in await self.links.extract(chosen):
            if not is_subtitle_file_url(link.href):
                continue
            if await validate_link(self.client, link.href, info.title, request.season, request.episode):
                validated.append(link)
        return chosen, validated

    def entry_url(self, link: SubtitleLink, chosen: str, request: MediaRequest, title: str) -> str:
        if self.settings.direct_mode:
            return link.href
        origin = self.settings.proxy_origin
        tag = se_tag(request.season, request.episode)
        if request.is_series and is_detail_page_url(chosen):
            params = {"post": chosen}
            if tag:
                params["se"] = tag
            if title:
                params["title"] = title
            params["fallback"] = link.href
            return f"{origin}/proxy/vtt-episode?{urlencode(params)}"
        params = {"src": link.href}
        if tag:
            params["se"] = tag
        if title:
            params["title"] = title
        return f"{origin}/proxy/vtt?{urlencode(params)}"

    async def search_subtitles(self, media_type: str, raw_id: str) -> List[Dict[str, str]]:
        """Subtitle entries for a Stremio ``(type, id)``; empty when nothing validates."""
        request = build_media_request(media_type, raw_id)
        SEARCH_COUNT.labels(media_type=request.media_type).inc()
        info = await self.title_info(request)
        log.info(
            "id=%s title=%r year=%s s=%s e=%s",
            raw_id, info.title, info.year or "-", "-" if request.season is None else request.season,
            "-" if request.episode is None else request.episode,
        )
        chosen, links = await self.find_links(request, info)
        if not links:
            log.info("no validated subtitle links for %s", raw_id)
            return []
        return [
            {
                "id": f"wizdom-{idx}",
                "lang": LANG,
                "name": f"{SOURCE_LABEL} • {subtitle_label(link)}",
                "url": self.entry_url(link, chosen, request, info.title),
                "mimeType": MIME_TYPE,
            }
            for idx, link in enumerate(links)
        ]

    # --- serving ----------------------------------------------------------------
    async def caption(self, src: str, tag: Optional[str] = None, title: Optional[str] = None) -> CaptionAsset:
        return await self.fetcher.fetch(src, tag, title)

    async def episode_caption(
        self,
        post: Optional[str],
        tag: Optional[str],
        title: Optional[str],
        fallback: Optional[str],
    ) -> CaptionAsset:
        """Episode-specific caption from a series detail page, ``fallback`` otherwise.

        Raises ``ValueError`` when there is neither a usable page nor a fallback.
        """
        match = SE_TAG_RE.search(tag or "")
        if not post or not is_detail_page_url(post) or match is None or self.renderer is None:
            src = fallback or post
            if not src:
                raise ValueError("missing post/fallback")
            return await self.fetcher.fetch(src, tag, title)

        try:
            intent = f"episode:{int(match.group(2))}"
            result = await self.renderer.render_and_interact(post, intent)
            hrefs = [
                href
                for anchor in result.anchors
                for href in [normalize_url(anchor.href)]
                if href and is_subtitle_file_url(href)
            ]
            src = next((h for h in hrefs if is_file_api_url(h)), None) or (hrefs[0] if hrefs else None) or fallback
            log.info("episode page: %d candidates, picked %s", len(hrefs), src or "none")
            if not src:
                raise UpstreamError("no subtitle link found", status_code=404)
            return await self.fetcher.fetch(src, tag, title)
        except Exception as exc:
            # Rendering engines raise their own error types
            log.warning("episode page failed: %s", exc)
            if not fallback:
                if isinstance(exc, (SubtitleExtractionError, UpstreamError)):
                    raise
                raise UpstreamError(f"episode page failed: {exc}") from exc
            return await self.fetcher.fetch(fallback, tag, title)


__all__ = ["LANG", "SOURCE_LABEL", "SubtitleService", "subtitle_label"]
