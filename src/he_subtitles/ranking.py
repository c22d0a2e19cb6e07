"""Relevance ordering of raw search candidates."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .common import is_subtitle_file_url, normalize_title, se_tag


@dataclass
class PostCandidate:
    href: str
    text: str = ""


@dataclass
class SubtitleLink:
    href: str
    label: str = "Subtitle"


def _haystacks(post: PostCandidate) -> Tuple[str, str]:
    return post.text.lower(), post.href.lower()


def _contains(post: PostCandidate, needle: str) -> bool:
    text, href = _haystacks(post)
    return needle in text or needle in href or needle in normalize_title(post.text) or needle in normalize_title(post.href)


def pick_best_post(
    posts: Sequence[PostCandidate],
    title: Optional[str],
    season: Optional[int] = None,
    episode: Optional[int] = None,
) -> Optional[str]:
    """Return the href of the most relevant candidate, or None for no candidates.

    A direct subtitle-file URL always wins; then tag and title, tag alone,
    title alone, and finally whatever came first.
    """
    if not posts:
        return None
    for post in posts:
        if is_subtitle_file_url(post.href):
            return post.href

    tag = (se_tag(season, episode) or "").lower()
    title_norm = normalize_title(title)

    if tag and title_norm:
        for post in posts:
            if _contains(post, tag) and _contains(post, title_norm):
                return post.href
    if tag:
        for post in posts:
            if _contains(post, tag):
                return post.href
    if title_norm:
        for post in posts:
            if _contains(post, title_norm):
                return post.href
    return posts[0].href


def score_page_link(post: PostCandidate, query: str) -> int:
    """Term overlap with the query (10 per term) plus 50 when the whole query appears."""
    text = post.text.lower()
    q = query.lower()
    score = sum(10 for term in q.split() if term in text)
    if q in text:
        score += 50
    return score


def best_page_link(posts: Sequence[PostCandidate], query: str) -> Optional[PostCandidate]:
    if not posts:
        return None
    scored: List[Tuple[int, int, PostCandidate]] = [
        (score_page_link(post, query), -idx, post) for idx, post in enumerate(posts)
    ]
    scored.sort(key=lambda item: (item[0], item[1]), reverse=True)
    return scored[0][2]


__all__ = ["PostCandidate", "SubtitleLink", "best_page_link", "pick_best_post", "score_page_link"]
