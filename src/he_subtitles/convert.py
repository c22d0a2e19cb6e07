"""SubRip to WebVTT conversion and header normalization."""

from __future__ import annotations

import re
from typing import Iterable, Iterator, List

HEADER = "WEBVTT"
HEADER_BLOCK = f"{HEADER}\n\n"
MIME_TYPE = "text/vtt"

_HEADER_LINE_RE = re.compile(r"^\s*webvtt\b", re.IGNORECASE)
_HEADER_META_RE = re.compile(r"^[\w-]+\s*:")
_SRT_TIMING_RE = re.compile(
    r"^\s*(?P<sh>\d{1,2}):(?P<sm>\d{2}):(?P<ss>\d{2})[,.](?P<sms>\d{1,3})\s*-->\s*"
    r"(?P<eh>\d{1,2}):(?P<em>\d{2}):(?P<es>\d{2})[,.](?P<ems>\d{1,3})(?P<rest>.*)$"
)


def _timestamp(hours: str, minutes: str, seconds: str, millis: str) -> str:
    return f"{int(hours):02d}:{minutes}:{seconds}.{millis.ljust(3, '0')}"


def _vtt_timing(match: re.Match) -> str:
    start = _timestamp(match["sh"], match["sm"], match["ss"], match["sms"])
    end = _timestamp(match["eh"], match["em"], match["es"], match["ems"])
    rest = match["rest"].rstrip()
    return f"{start} --> {end}{rest}"


def iter_cue_lines(lines: Iterable[str]) -> Iterator[str]:
    """Rewrite SubRip lines into WebVTT cue lines, one line of lookahead.

    Timing commas become periods and a cue's numeric counter is dropped when
    the next line is its timing line. Everything else passes through.
    """
    pending = None
    for raw in lines:
        line = raw.rstrip("\r\n")
        timing = _SRT_TIMING_RE.match(line)
        if pending is not None:
            if timing is None:
                yield pending
            pending = None
        if timing is not None:
            yield _vtt_timing(timing)
            continue
        if line.strip().isdigit():
            pending = line
            continue
        yield line
    if pending is not None:
        yield pending


def _split_lines(text: str) -> List[str]:
    return text.replace("\r\n", "\n").replace("\r", "\n").split("\n")


def _strip_header(lines: List[str]) -> List[str]:
    """Drop a leading WebVTT header line (any casing or phrase), its metadata and blank lines."""
    idx = 0
    if lines and _HEADER_LINE_RE.match(lines[0]):
        idx = 1
        while idx < len(lines) and lines[idx].strip() and "-->" not in lines[idx] and _HEADER_META_RE.match(lines[idx]):
            idx += 1
    while idx < len(lines) and not lines[idx].strip():
        idx += 1
    return lines[idx:]


def _render(lines: List[str]) -> bytes:
    body = "\n".join(lines).rstrip("\n")
    if body:
        body += "\n"
    return (HEADER_BLOCK + body).encode("utf-8")


def ensure_header(data: bytes) -> bytes:
    """Guarantee ``WEBVTT\\n\\n`` exactly once at the top and ``\\n`` line endings."""
    text = data.decode("utf-8", errors="replace").lstrip("\ufeff")
    return _render(_strip_header(_split_lines(text)))


def to_caption_track(utf8_bytes: bytes) -> bytes:
    """Convert a UTF-8 SubRip (or loosely formed WebVTT) payload into a WebVTT track."""
    text = utf8_bytes.decode("utf-8", errors="replace").lstrip("\ufeff")
    lines = _strip_header(_split_lines(text))
    return ensure_header(_render(list(iter_cue_lines(lines))))


def looks_like_cues(text: str) -> bool:
    return "-->" in text


__all__ = ["HEADER", "HEADER_BLOCK", "MIME_TYPE", "ensure_header", "iter_cue_lines", "looks_like_cues", "to_caption_track"]
