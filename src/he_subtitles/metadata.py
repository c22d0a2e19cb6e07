from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence
from urllib.parse import unquote

import httpx

from .common import HEADERS_PLAIN

log = logging.getLogger("he_subtitles.metadata")

DEFAULT_CINEMETA_BASES = (
    "https://v3-cinemeta.strem.io",
    "https://cinemeta-live.strem.io",
)


@dataclass(frozen=True)
class StremioID:
    base: str
    season: Optional[int]
    episode: Optional[int]


@dataclass(frozen=True)
class TitleInfo:
    title: str
    year: Optional[int] = None


@dataclass(frozen=True)
class MediaRequest:
    media_type: str
    imdb_id: str
    season: Optional[int] = None
    episode: Optional[int] = None

    @property
    def is_series(self) -> bool:
        return self.season is not None and self.episode is not None


def parse_stremio_id(raw_id: str) -> StremioID:
    """Parse Stremio IDs that may be URL-encoded once or twice.

    Examples of incoming IDs:
    - tt0369179                   (movie)
    - tt0369179:1:2               (series S01E02)
    - tt0369179%3A1%3A2           (encoded once)
    - tt0369179%253A1%253A2       (encoded twice)
    - tt0369179/videoHash=...     (trailing segment, dropped)
    """
    s = raw_id or ""
    # Decode up to twice to handle cases like %253A -> %3A -> :
    for _ in range(2):
        decoded = unquote(s)
        if decoded == s:
            break
        s = decoded

    s = s.split("/", 1)[0]
    if s.endswith(".json"):
        s = s[: -len(".json")]
    parts = s.split(":")
    base = parts[0] if parts else s
    season_raw = parts[1] if len(parts) > 1 else ""
    episode_raw = parts[2] if len(parts) > 2 else ""
    if season_raw.isdigit() and episode_raw.isdigit():
        return StremioID(base=base, season=int(season_raw), episode=int(episode_raw))
    return StremioID(base=base, season=None, episode=None)


def build_media_request(media_type: str, raw_id: str) -> MediaRequest:
    """Season/episode survive only for series requests carrying both numbers."""
    tokens = parse_stremio_id(raw_id)
    if media_type != "series" or tokens.season is None:
        return MediaRequest(media_type=media_type, imdb_id=tokens.base)
    return MediaRequest(media_type="series", imdb_id=tokens.base, season=tokens.season, episode=tokens.episode)


def normalize_year(raw: object) -> Optional[int]:
    if not raw:
        return None
    match = re.search(r"(19|20)\d{2}", str(raw))
    return int(match.group(0)) if match else None


async def fetch_cinemeta_meta(
    client: httpx.AsyncClient,
    media_type: str,
    imdb_id: str,
    bases: Sequence[str] = DEFAULT_CINEMETA_BASES,
) -> Optional[dict]:
    last_exc: Optional[Exception] = None
    for base in bases:
        url = f"{base}/meta/{media_type}/{imdb_id}.json"
        try:
            resp = await client.get(url, headers=HEADERS_PLAIN)
            if resp.status_code == 404:
                # Try next base
                continue
            resp.raise_for_status()
            data = resp.json()
            meta = data.get("meta") if isinstance(data, dict) else None
            if isinstance(meta, dict):
                return meta
            last_exc = ValueError(f"unexpected metadata payload from {base}")
        except (httpx.HTTPError, ValueError) as exc:
            last_exc = exc
            continue
    if last_exc:
        log.warning("Failed to fetch Cinemeta metadata: %s", last_exc)
    else:
        log.warning("Failed to fetch Cinemeta metadata: all endpoints returned 404")
    return None


async def fetch_title_info(
    client: httpx.AsyncClient,
    media_type: str,
    imdb_id: str,
    bases: Sequence[str] = DEFAULT_CINEMETA_BASES,
    overrides: Optional[Mapping[str, str]] = None,
) -> TitleInfo:
    """Title and year for ``imdb_id``; falls back to the raw id as title."""
    override = (overrides or {}).get(imdb_id)
    meta = await fetch_cinemeta_meta(client, media_type, imdb_id, bases)
    if not meta:
        log.info("metadata fallback to imdb id %s", imdb_id)
        return TitleInfo(title=override or imdb_id)
    year = normalize_year(meta.get("year") or meta.get("releaseInfo") or meta.get("released"))
    return TitleInfo(title=override or meta.get("name") or imdb_id, year=year)
