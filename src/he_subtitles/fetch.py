"""Download a chosen subtitle resource and turn it into a WebVTT caption asset."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Mapping, Optional

import httpx

from .cache import TTLCache, cache_key
from .common import HEADERS_PLAIN, filename_from_response, is_file_api_url
from .convert import MIME_TYPE, ensure_header, looks_like_cues, to_caption_track
from .encoding import to_utf8
from .extract import SubtitleExtractionError, archive_kind, pick_entry

log = logging.getLogger("he_subtitles.fetch")

_SRT_NAME_RE = re.compile(r"\.srt(\?.*)?$", re.IGNORECASE)
_PLAIN_TYPE_RE = re.compile(r"text/(plain|srt|vtt)")


class UnsupportedFormat(SubtitleExtractionError):
    pass


class UpstreamError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class CaptionAsset:
    data: bytes
    mime_type: str = MIME_TYPE

    def __len__(self) -> int:
        return len(self.data)


def convert_payload(
    raw: bytes,
    url: str,
    headers: Optional[Mapping[str, str]] = None,
    tag: Optional[str] = None,
    title: Optional[str] = None,
) -> bytes:
    """Container detection and conversion of one downloaded payload.

    Raises :class:`UnsupportedFormat` for anything that is neither an archive,
    a plain subtitle nor text carrying cue timings.
    """
    ctype = ((headers or {}).get("content-type") or "").lower()
    name = filename_from_response(url, headers)
    kind = archive_kind(raw, name, ctype)
    if kind is None and re.search(r"\.zip(\?.*)?$", url, re.IGNORECASE):
        kind = "zip"
    srt_by_name = bool(_SRT_NAME_RE.search(name) or _SRT_NAME_RE.search(url))
    log.info("detect content-type=%r filename=%r archive=%s srt_by_name=%s", ctype, name, kind, srt_by_name)

    if kind:
        entry = pick_entry(raw, tag=tag, title=title, kind=kind)
        log.info("picked %s from %s archive (%d bytes)", entry.name, kind, entry.size)
        track = to_caption_track(to_utf8(entry.data))
    elif srt_by_name or _PLAIN_TYPE_RE.search(ctype) or is_file_api_url(url):
        track = to_caption_track(to_utf8(raw))
    elif "vtt" in ctype:
        track = to_utf8(raw)
    else:
        text = to_utf8(raw)
        if not looks_like_cues(text.decode("utf-8", errors="replace")):
            raise UnsupportedFormat("Unsupported subtitle format")
        track = to_caption_track(text)
    return ensure_header(track)


class ContentFetcher:
    def __init__(self, client: httpx.AsyncClient, cache: TTLCache) -> None:
        self.client = client
        self.cache = cache

    async def download(self, url: str) -> httpx.Response:
        try:
            resp = await self.client.get(url, headers=HEADERS_PLAIN)
        except httpx.HTTPError as exc:
            raise UpstreamError(f"subtitle fetch failed: {exc}") from exc
        if not resp.is_success:
            raise UpstreamError(f"subtitle fetch {resp.status_code}", status_code=resp.status_code)
        return resp

    async def fetch(self, url: str, tag: Optional[str] = None, title: Optional[str] = None) -> CaptionAsset:
        """Cached download + conversion of ``url`` for the wanted episode/title."""
        key = cache_key("vtt", url, tag or "", title or "")
        return await self.cache.get_or_set(key, lambda: self._fetch(url, tag, title))

    async def _fetch(self, url: str, tag: Optional[str], title: Optional[str]) -> CaptionAsset:
        log.info("fetch %s", url)
        resp = await self.download(url)
        data = convert_payload(resp.content, url, resp.headers, tag=tag, title=title)
        log.info("converted %s -> %d bytes", url, len(data))
        return CaptionAsset(data=data)


__all__ = ["CaptionAsset", "ContentFetcher", "UnsupportedFormat", "UpstreamError", "convert_payload"]
