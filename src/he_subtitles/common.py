# -*- coding: utf-8 -*-
"""Common helper utilities shared across the pipeline stages.

Holds the logging setup (optional structured JSON output with a per-request
correlation id) and the small URL / filename / title heuristics every stage
relies on.
"""

from __future__ import annotations

import contextvars
import datetime
import json
import logging
import re
import sys
from typing import Mapping, Optional
from urllib.parse import parse_qs, unquote, urljoin, urlparse

# Per-request context for correlation
REQUEST_ID: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="")

logger = logging.getLogger("he_subtitles")

HEADERS_HTML = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml",
    "Accept-Language": "he-IL,he;q=0.9,en-US;q=0.8,en;q=0.7",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}
HEADERS_PLAIN = {"User-Agent": "Mozilla/5.0"}

FILE_API_RE = re.compile(r"/api/files/sub/(\d+)", re.IGNORECASE)
SUBTITLE_EXT_RE = re.compile(r"\.(srt|zip)(\?.*)?$", re.IGNORECASE)
DETAIL_PAGE_RE = re.compile(r"/(movie|series)/")
SE_TAG_RE = re.compile(r"S(\d{2})E(\d{2})", re.IGNORECASE)
_TITLE_SEPARATORS_RE = re.compile(r"[\W_]+")
_CD_FILENAME_RE = re.compile(r"filename\*=UTF-8''([^;]+)|filename=\"?([^\";]+)\"?", re.IGNORECASE)


# --- Logging setup -----------------------------------------------------------
class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload = {
            "ts": datetime.datetime.now(datetime.timezone.utc).isoformat(timespec="seconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        rid = REQUEST_ID.get("")
        if rid:
            payload["rid"] = rid
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


class _RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        rid = REQUEST_ID.get("")
        record.rid = f"[rid={rid}] " if rid else ""
        return True


def setup_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """Configure the root logger once; safe to call again (handlers are replaced)."""
    handler = logging.StreamHandler(sys.stdout)
    if json_logs:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] [%(name)s] %(rid)s%(message)s", datefmt="%H:%M:%S")
        )
    handler.addFilter(_RequestIdFilter())
    logging.basicConfig(level=level.upper(), handlers=[handler], force=True)
    logger.setLevel(level.upper())
    for noisy in ("httpx", "httpcore", "charset_normalizer"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# --- Heuristics ---------------------------------------------------------------
def se_tag(season: Optional[int], episode: Optional[int]) -> Optional[str]:
    """Zero-padded ``SxxEyy`` tag, or None unless both parts are given."""
    if season is None or episode is None:
        return None
    return f"S{int(season):02d}E{int(episode):02d}"


def normalize_title(text: Optional[str]) -> str:
    """Lower-case, drop apostrophes and collapse every other punctuation run to one space."""
    lowered = (text or "").lower().replace("'", "").replace("\u2019", "")
    return _TITLE_SEPARATORS_RE.sub(" ", lowered).strip()


def normalize_url(raw: Optional[str]) -> Optional[str]:
    """Return an absolute URL, unwrapping DuckDuckGo ``/l/?uddg=`` redirects."""
    if not raw:
        return None
    url = raw.strip()
    if url.startswith("//"):
        url = "https:" + url
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return None
    if "duckduckgo.com" in parsed.netloc and parsed.path.startswith("/l/"):
        target = parse_qs(parsed.query).get("uddg")
        if target:
            return normalize_url(unquote(target[0]))
    return parsed.geturl()


def absolutize(href: str, base: str) -> Optional[str]:
    href = (href or "").strip()
    if not href or href.startswith(("javascript:", "mailto:", "#")):
        return None
    return normalize_url(href if href.startswith("http") else urljoin(base, href))


def is_subtitle_file_url(href: Optional[str]) -> bool:
    if not href:
        return False
    return bool(SUBTITLE_EXT_RE.search(href) or FILE_API_RE.search(href))


def is_source_url(href: Optional[str], domain: str) -> bool:
    """True for http(s) URLs on ``domain`` or one of its subdomains."""
    parsed = urlparse(href or "")
    host = (parsed.hostname or "").lower()
    domain = domain.lower()
    return parsed.scheme in ("http", "https") and (host == domain or host.endswith("." + domain))


def is_file_api_url(href: Optional[str]) -> bool:
    return bool(href and FILE_API_RE.search(href))


def is_detail_page_url(href: Optional[str]) -> bool:
    return bool(href and DETAIL_PAGE_RE.search(href))


def file_api_id(href: Optional[str]) -> Optional[str]:
    match = FILE_API_RE.search(href or "")
    return match.group(1) if match else None


def filename_from_response(url: str, headers: Optional[Mapping[str, str]] = None) -> str:
    """Filename from ``Content-Disposition`` when present, else the last URL path segment."""
    disposition = headers.get("content-disposition") if headers else None
    if disposition:
        match = _CD_FILENAME_RE.search(disposition)
        if match:
            return unquote(match.group(1) or match.group(2) or "").strip()
    path = urlparse(url).path
    return unquote(path.rsplit("/", 1)[-1]) if path else ""
