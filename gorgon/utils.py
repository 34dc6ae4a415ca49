"""Utility functions for Gorgon.

This module contains small helpers used throughout the Gorgon codebase:
string processing, source file classification, date extraction, and the
atomic file writes the build relies on.

Key functions:
    slugify: Convert filenames or titles to URL slugs.
    titleize: Convert filenames to human-readable titles.
    extract_date_from_name: Extract date from filename prefix.
    first_paragraph: Plain-text summary of a document body.
    is_markdown / is_template / is_html: Classify content sources.
    atomic_write_bytes: Write a file via a temporary sibling and rename.
    remove_tree / prune_empty_dirs: Directory housekeeping.
    digest: Stable short hash of a value's repr.
"""

from __future__ import annotations

import hashlib
import os
import re
import shutil
import tempfile
from datetime import date, datetime, timezone
from pathlib import Path


def slugify(name: str) -> str:
    """Convert a filename stem or title to a slug, dropping any date prefix.

    Args:
        name: Filename stem or free text.

    Returns:
        URL-friendly slug.
    """
    cleaned = name
    if "-" in cleaned:
        parts = cleaned.split("-")
        if len(parts) >= 4 and all(p.isdigit() for p in parts[:3]):
            cleaned = "-".join(parts[3:])
    cleaned = re.sub(r"[^a-zA-Z0-9]+", "-", cleaned)
    cleaned = cleaned.strip("-").lower()
    return cleaned or "index"


def titleize(filename: str) -> str:
    """Convert a filename to a human-readable title.

    Removes date prefixes (YYYY-MM-DD), replaces hyphens and underscores
    with spaces, and capitalizes each word.

    Examples:
        >>> titleize("2024-01-15-hello-world.md")
        'Hello World'
    """
    base = source_stem(filename)
    if "-" in base:
        parts = base.split("-")
        if len(parts) >= 4 and all(p.isdigit() for p in parts[:3]):
            base = "-".join(parts[3:])
    words = re.split(r"[\s\-_]+", base)
    return " ".join(word.capitalize() for word in words if word) or "Untitled"


def source_stem(filename: str) -> str:
    """Return a filename without its content suffixes.

    ``post.html.jinja`` becomes ``post``, ``notes.md`` becomes ``notes``.
    """
    name = Path(filename).name
    for suffix in (".html.jinja", ".jinja", ".html", ".md"):
        if name.lower().endswith(suffix):
            return name[: -len(suffix)]
    return Path(name).stem


def extract_date_from_name(name: str) -> datetime | None:
    """Extract a date from a filename with YYYY-MM-DD prefix.

    Args:
        name: Filename stem (without extension).

    Returns:
        datetime if a valid date prefix is found, None otherwise.
    """
    parts = name.split("-")
    if len(parts) >= 3 and all(p.isdigit() for p in parts[:3]):
        try:
            return datetime(int(parts[0]), int(parts[1]), int(parts[2]))
        except ValueError:
            return None
    return None


def coerce_datetime(value: object) -> datetime | None:
    """Normalise a front-matter date value to a naive UTC datetime.

    YAML hands back ``date`` or ``datetime`` objects for unquoted dates; quoted
    ISO strings are accepted too. Anything else yields None.
    """
    if isinstance(value, datetime):
        return _naive_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
        return _naive_utc(parsed)
    return None


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def first_paragraph(text: str, limit: int = 160) -> str:
    """Extract and clean the first paragraph from text.

    Strips leading # (headers), HTML tags, and Jinja syntax.
    Collapses whitespace and truncates to the specified limit.
    """
    paragraphs = [p.strip() for p in text.split("\n\n") if p.strip()]
    for para in paragraphs:
        if para.startswith(("#", "```", "![")):
            continue
        para = re.sub(r"<[^>]+>", "", para)
        para = re.sub(r"\{[%#{].*?[%#}]\}", "", para, flags=re.DOTALL)
        collapsed = " ".join(para.split())
        if collapsed:
            return collapsed[:limit]
    return ""


def is_markdown(path: Path) -> bool:
    """Check if a path is a Markdown file."""
    return path.suffix.lower() == ".md"


def is_template(path: Path) -> bool:
    """Check if a path is a Jinja template file (.jinja or .html.jinja)."""
    return path.suffixes[-2:] == [".html", ".jinja"] or path.suffix == ".jinja"


def is_html(path: Path) -> bool:
    """Check if a path is a plain HTML file (not a Jinja template)."""
    return path.suffix.lower() == ".html" and not is_template(path)


def is_content_file(path: Path) -> bool:
    """Check if a path is any kind of renderable content source."""
    return is_markdown(path) or is_template(path) or is_html(path)


def atomic_write_bytes(target: Path, content: bytes) -> None:
    """Write bytes to ``target`` so readers never observe a partial file.

    The content goes to a temporary file in the destination directory, which
    is then renamed over the target.

    Args:
        target: Destination file path.
        content: Bytes to write.
    """
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{target.name}.", suffix=".tmp", dir=str(target.parent)
    )
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(content)
        os.replace(tmp_name, target)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def remove_tree(path: Path) -> bool:
    """Remove a directory tree if present.

    Returns:
        True if something was removed.
    """
    if not path.exists():
        return False
    shutil.rmtree(str(path))
    return True


def prune_empty_dirs(start: Path, stop: Path) -> None:
    """Remove empty directories from ``start`` upwards, never touching ``stop``."""
    current = start
    while current != stop and stop in current.parents:
        try:
            current.rmdir()
        except OSError:
            return
        current = current.parent


def digest(value: object) -> str:
    """Return a stable hex digest of ``repr(value)``.

    Only use with values whose repr is deterministic (tuples of strings,
    numbers, datetimes and None).
    """
    return hashlib.sha256(repr(value).encode("utf-8")).hexdigest()[:16]
