from __future__ import annotations

from typing import List, Optional

from .common import se_tag
from .metadata import TitleInfo

SERIES_SUFFIXES = ("1080p", "WEB", "WEB-DL", "HDTV", "BluRay")


def build_queries(info: TitleInfo, season: Optional[int] = None, episode: Optional[int] = None) -> List[str]:
    """Search strings for one request, most specific first, without duplicates."""
    title = (info.title or "").strip()
    tag = se_tag(season, episode)
    queries: List[str] = []
    if tag:
        queries.append(f"{title} {tag}")
        queries.extend(f"{title} {tag} {suffix}" for suffix in SERIES_SUFFIXES)
        queries.append(f"{title} {tag[:3]} {tag[3:]}")
        queries.append(f"{title} {season} {episode}")
        queries.append(title)
    else:
        queries.append(f"{title} {info.year or ''}".strip())
        queries.append(title)
        queries.append(f"{title} 1080p")

    seen = set()
    ordered: List[str] = []
    for query in queries:
        query = query.strip()
        if query and query not in seen:
            seen.add(query)
            ordered.append(query)
    return ordered


__all__ = ["SERIES_SUFFIXES", "build_queries"]
