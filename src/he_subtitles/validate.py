"""Cheap validation of a candidate subtitle link before anything is downloaded.

Only headers are fetched: a HEAD probe first, then a one-byte ranged GET when
the probe is refused or carries no filename. The decision is made on the
filename; picking the right episode out of a season-wide archive is deferred
to the fetch stage.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

import httpx

from .common import HEADERS_PLAIN, filename_from_response, is_file_api_url, normalize_title, se_tag

log = logging.getLogger("he_subtitles.validate")

API_FILENAME_RE = re.compile(r"^\d+(\.(zip|srt))?$", re.IGNORECASE)


@dataclass
class ValidationResult:
    ok: bool
    filename: str = ""
    evidence: str = ""

    def __bool__(self) -> bool:
        return self.ok


def looks_like_match(
    filename: str,
    title: Optional[str],
    season: Optional[int] = None,
    episode: Optional[int] = None,
) -> ValidationResult:
    name = normalize_title(filename)
    title_norm = normalize_title(title)
    tag = se_tag(season, episode)

    if tag:
        # Series: the exact SxxEyy tag is mandatory
        if tag.lower() not in name:
            return ValidationResult(False, filename, f"missing {tag}")
        if len(title_norm) > 2 and title_norm not in name:
            return ValidationResult(False, filename, f"missing title {title_norm!r}")
        return ValidationResult(True, filename, f"{tag} + title" if len(title_norm) > 2 else tag)

    if API_FILENAME_RE.match(filename or ""):
        return ValidationResult(True, filename, "file api id")

    if len(title_norm) > 2 and title_norm in name:
        return ValidationResult(True, filename, f"title {title_norm!r}")
    return ValidationResult(False, filename, "no title match")


async def fetch_link_headers(client: httpx.AsyncClient, url: str) -> httpx.Headers:
    head = await client.head(url, headers=HEADERS_PLAIN)
    if head.is_success and head.headers.get("content-disposition"):
        return head.headers
    async with client.stream("GET", url, headers={**HEADERS_PLAIN, "Range": "bytes=0-0"}) as resp:
        return resp.headers


async def validate_link(
    client: httpx.AsyncClient,
    url: str,
    title: Optional[str],
    season: Optional[int] = None,
    episode: Optional[int] = None,
) -> ValidationResult:
    """Decide whether ``url`` plausibly is the wanted subtitle; never raises."""
    try:
        headers = await fetch_link_headers(client, url)
    except httpx.HTTPError as exc:
        log.info("validate %s failed: %s", url, exc)
        return ValidationResult(False, "", f"error: {exc}")

    filename = filename_from_response(url, headers)
    result = looks_like_match(filename, title, season, episode)

    if not result and se_tag(season, episode) and is_file_api_url(url):
        # May be a season-wide archive; the episode is picked from its content later
        result = ValidationResult(True, filename, "file api link, episode picked on fetch")

    log.info(
        "validate filename=%r title=%r s=%s e=%s -> %s (%s)",
        filename, title, season, episode, result.ok, result.evidence,
    )
    return result


__all__ = ["ValidationResult", "fetch_link_headers", "looks_like_match", "validate_link"]
