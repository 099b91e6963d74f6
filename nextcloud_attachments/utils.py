"""Utility helpers shared across modules."""

from __future__ import annotations

import hashlib
from datetime import UTC, datetime
from pathlib import Path
from urllib.parse import quote

SIZE_UNITS = ("", "k", "M", "G", "T")


def utc_now_iso() -> str:
    return datetime.now(tz=UTC).isoformat()


def format_size(size: int | float) -> str:
    """Human readable size, dividing by 1024 while the value exceeds 800."""
    value = float(size)
    index = 0
    while value > 800 and index < len(SIZE_UNITS) - 1:
        value /= 1024
        index += 1
    return f"{value:.1f}{SIZE_UNITS[index]}"


def file_digest(path: Path, algorithm: str = "sha256", chunk_size: int = 1 << 16) -> str:
    """Hex digest of a file's exact bytes."""
    digest = hashlib.new(algorithm)
    with open(path, "rb") as handle:
        for chunk in iter(lambda: handle.read(chunk_size), b""):
            digest.update(chunk)
    # shake_* digests need an explicit length
    if digest.name.startswith("shake_"):
        return digest.hexdigest(digest.digest_size or 32)
    return digest.hexdigest()


def quote_path(path: str) -> str:
    """Percent-encode each segment of a DAV path (spaces become %20)."""
    return "/".join(quote(segment, safe="") for segment in path.split("/") if segment)


def numbered_name(filename: str, counter: int) -> str:
    """Insert `` <counter>`` before the last extension: ``a.txt`` -> ``a 1.txt``."""
    stem, dot, ext = filename.rpartition(".")
    if not dot or not stem:
        return f"{filename} {counter}"
    return f"{stem} {counter}.{ext}"


def mime_icon(icon_dir: Path | None, mime_type: str) -> bytes:
    """Icon bytes for a MIME type: exact match, then generic category, then ``unknown``."""
    if icon_dir is None:
        return b""
    exact = mime_type.replace("/", "-")
    generic = f"{mime_type.split('/', 1)[0]}-x-generic"
    for name in (exact, generic, "unknown"):
        candidate = icon_dir / f"{name}.png"
        if candidate.is_file():
            return candidate.read_bytes()
    return b""
