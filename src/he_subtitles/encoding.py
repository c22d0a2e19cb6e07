"""Character-encoding recovery for subtitle payloads.

The source serves Hebrew subtitles in legacy single-byte code pages as often
as in UTF-8. Everything downstream works on UTF-8, so every payload passes
through :func:`to_utf8` first.
"""

from __future__ import annotations

import codecs
import logging
from typing import Iterable, Optional

from charset_normalizer import from_bytes

log = logging.getLogger("he_subtitles.encoding")

HEBREW_ENCODINGS = ("WINDOWS-1255", "ISO-8859-8", "ISO-8859-8-I", "CP1255")
_HEBREW_CODECS = {"cp1255", "iso8859-8"}


def _codec_name(encoding: Optional[str]) -> Optional[str]:
    """Canonical Python codec name, understanding the ``-I`` (implicit) Hebrew variant."""
    if not encoding:
        return None
    name = encoding.strip().lower().replace("_", "-")
    if name.endswith("-i") and name.startswith("iso"):
        name = name[:-2]
    try:
        return codecs.lookup(name).name
    except LookupError:
        return None


def is_hebrew_encoding(encoding: Optional[str]) -> bool:
    return _codec_name(encoding) in _HEBREW_CODECS


def _first_hebrew(candidates: Iterable[str]) -> Optional[str]:
    for candidate in candidates:
        codec = _codec_name(candidate)
        if codec in _HEBREW_CODECS:
            return codec
    return None


def detect_encoding(raw: bytes) -> Optional[str]:
    """Best statistical guess for ``raw``; Hebrew code pages win when plausible."""
    try:
        raw.decode("utf-8")
        return "utf-8"
    except UnicodeDecodeError:
        pass
    best = from_bytes(raw).best()
    if best is None:
        return None
    hebrew = _first_hebrew([best.encoding, *best.could_be_from_charset])
    return hebrew or _codec_name(best.encoding)


def to_utf8(raw: bytes) -> bytes:
    """Return ``raw`` re-encoded as UTF-8.

    UTF-8 input is returned unchanged. Legacy Hebrew code pages are decoded
    explicitly; any other detected encoding is a best effort. Never raises:
    on failure the original bytes come back untouched.
    """
    if not raw:
        return raw
    try:
        encoding = detect_encoding(raw)
    except Exception as exc:  # noqa: BLE001
        log.info("charset detection failed: %s", exc)
        return raw
    if encoding is None or encoding == "utf-8":
        return raw
    try:
        text = raw.decode(encoding)
    except (LookupError, UnicodeDecodeError) as exc:
        log.info("decode as %s failed, keeping original bytes: %s", encoding, exc)
        return raw
    if encoding in _HEBREW_CODECS:
        log.debug("decoded legacy Hebrew payload (%s, %d bytes)", encoding, len(raw))
    return text.encode("utf-8")


__all__ = ["HEBREW_ENCODINGS", "detect_encoding", "is_hebrew_encoding", "to_utf8"]
