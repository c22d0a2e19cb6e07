from __future__ import annotations

import io
import logging
import os
import re
import tempfile
import zipfile
from dataclasses import dataclass
from typing import List, Optional

import py7zr
import rarfile
from rarfile import Error as RarError, RarCannotExec

from .encoding import to_utf8

SUBTITLE_EXTENSIONS = {".srt", ".vtt"}
ZIP_MAGIC = (b"PK\x03\x04", b"PK\x05\x06")
RAR_MAGIC = b"Rar!\x1a\x07"
SEVEN_ZIP_MAGIC = b"7z\xbc\xaf\x27\x1c"

_COMPACT_RE = re.compile(r"[\s._\-]+")
log = logging.getLogger("he_subtitles.extract")


class SubtitleExtractionError(RuntimeError):
    """Raised when a downloaded payload cannot be turned into a subtitle."""


class NoSubtitleEntry(SubtitleExtractionError):
    """Raised when an archive holds no text subtitle entries."""


@dataclass
class ArchiveEntry:
    name: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def _is_subtitle(name: str) -> bool:
    return os.path.splitext(name)[1].lower() in SUBTITLE_EXTENSIONS


def _compact(text: Optional[str]) -> str:
    return _COMPACT_RE.sub("", (text or "").lower())


def archive_kind(data: bytes, name: str = "", content_type: str = "") -> Optional[str]:
    """Detect ``zip``/``rar``/``7z`` by magic bytes first, declared type or filename second."""
    head = data[:8]
    if head.startswith(ZIP_MAGIC):
        return "zip"
    if head.startswith(RAR_MAGIC):
        return "rar"
    if head.startswith(SEVEN_ZIP_MAGIC):
        return "7z"
    ctype = (content_type or "").lower()
    lowered = (name or "").lower()
    if "zip" in ctype or lowered.endswith(".zip"):
        return "zip"
    if "rar" in ctype or lowered.endswith(".rar"):
        return "rar"
    if "7z" in ctype or lowered.endswith(".7z"):
        return "7z"
    return None


def _zip_entries(data: bytes) -> List[ArchiveEntry]:
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        return [
            ArchiveEntry(info.filename, archive.read(info.filename))
            for info in archive.infolist()
            if not info.is_dir() and _is_subtitle(info.filename)
        ]


def _rar_entries(data: bytes) -> List[ArchiveEntry]:
    try:
        with rarfile.RarFile(io.BytesIO(data)) as archive:
            return [
                ArchiveEntry(info.filename, archive.read(info.filename))
                for info in archive.infolist()
                if not info.isdir() and _is_subtitle(info.filename)
            ]
    except (RarError, RarCannotExec) as exc:
        raise SubtitleExtractionError(
            "RAR archive extraction failed. Install 'unrar', 'unar', or 'bsdtar' on the host."
        ) from exc


def _7z_entries(data: bytes) -> List[ArchiveEntry]:
    entries: List[ArchiveEntry] = []
    with tempfile.TemporaryDirectory() as tmp:
        with py7zr.SevenZipFile(io.BytesIO(data)) as archive:
            names = [name for name in archive.getnames() if _is_subtitle(name)]
            if not names:
                return entries
            archive.extract(path=tmp, targets=names)
        for name in names:
            path = os.path.join(tmp, name)
            if os.path.isfile(path):
                with open(path, "rb") as fh:
                    entries.append(ArchiveEntry(name, fh.read()))
    return entries


def list_subtitle_entries(data: bytes, kind: str) -> List[ArchiveEntry]:
    try:
        if kind == "zip":
            return _zip_entries(data)
        if kind == "rar":
            return _rar_entries(data)
        if kind == "7z":
            return _7z_entries(data)
    except (zipfile.BadZipFile, py7zr.Bad7zFile) as exc:
        raise SubtitleExtractionError(f"Corrupt {kind} archive: {exc}") from exc
    raise SubtitleExtractionError(f"Unsupported archive container: {kind}")


def choose_entry(entries: List[ArchiveEntry], tag: Optional[str] = None, title: Optional[str] = None) -> ArchiveEntry:
    """Pick the entry for the wanted episode.

    Name containing the tag, then tag and title on separator-free names, then
    the tag inside the decoded text, and finally the largest entry.
    """
    if not entries:
        raise NoSubtitleEntry("Archive does not contain subtitle files")
    wanted = (tag or "").lower()
    if wanted:
        for entry in entries:
            if wanted in entry.name.lower():
                log.info("archive pick by name: %s", entry.name)
                return entry
        title_key = _compact(title)
        if title_key:
            for entry in entries:
                name_key = _compact(entry.name)
                if wanted in name_key and title_key in name_key:
                    log.info("archive pick by tag+title: %s", entry.name)
                    return entry
        for entry in entries:
            text = to_utf8(entry.data).decode("utf-8", errors="ignore").lower()
            if wanted in text:
                log.info("archive pick by content: %s", entry.name)
                return entry
    chosen = max(entries, key=lambda e: e.size)
    log.info("archive pick by size: %s (%d bytes)", chosen.name, chosen.size)
    return chosen


def pick_entry(
    data: bytes,
    tag: Optional[str] = None,
    title: Optional[str] = None,
    kind: Optional[str] = None,
) -> ArchiveEntry:
    kind = kind or archive_kind(data)
    if kind is None:
        raise SubtitleExtractionError("Payload is not a recognised archive")
    entries = list_subtitle_entries(data, kind)
    return choose_entry(entries, tag=tag, title=title)


__all__ = [
    "ArchiveEntry",
    "NoSubtitleEntry",
    "SubtitleExtractionError",
    "archive_kind",
    "choose_entry",
    "list_subtitle_entries",
    "pick_entry",
]
