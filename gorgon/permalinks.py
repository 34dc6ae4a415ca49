"""Permalink resolution for Gorgon.

A permalink pattern is a URL template with ``{placeholder}`` fields::

    /{year}/{month}/{day}/{slug}/
    /{collection}/{slug}/
    /notes/{title}.html

Supported placeholders: ``year``, ``month``, ``day`` (zero padded, from the
entity date), ``slug``, ``collection``, ``title`` (slugified title), ``path``
(source folder relative to the content root) and, for listing pages only,
``page``.

URLs ending in ``/`` are written as ``<url>index.html``; URLs with a file
extension are written as-is; any other URL gets a trailing slash.
"""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import PurePosixPath

from .config import PLACEHOLDER_RE
from .errors import InvalidPermalinkError
from .utils import slugify

_DATE_FIELDS = ("year", "month", "day")
_SLASHES_RE = re.compile(r"/{2,}")


@dataclass(frozen=True)
class PermalinkValues:
    """Values available to a permalink pattern."""

    slug: str
    title: str
    collection: str = ""
    path: str = ""
    date: datetime | None = None
    page: int | None = None

    def lookup(self, name: str, source_path: str) -> str:
        if name in _DATE_FIELDS:
            if self.date is None:
                raise InvalidPermalinkError(
                    f"permalink uses {{{name}}} but the document has no date",
                    source_path=source_path,
                )
            if name == "year":
                return f"{self.date.year:04d}"
            if name == "month":
                return f"{self.date.month:02d}"
            return f"{self.date.day:02d}"
        if name == "title":
            return slugify(self.title)
        if name == "page":
            return str(self.page or 1)
        return str(getattr(self, name))


class PermalinkResolver:
    """Turns patterns and source paths into normalised URLs and output paths."""

    def expand(self, pattern: str, values: PermalinkValues, source_path: str) -> str:
        """Substitute placeholders in ``pattern`` and normalise the result.

        Raises:
            InvalidPermalinkError: A placeholder cannot be filled or the URL
                escapes the output tree.
        """

        def repl(match: re.Match) -> str:
            return values.lookup(match.group(1), source_path)

        return self.normalize(PLACEHOLDER_RE.sub(repl, pattern), source_path)

    def normalize(self, url: str, source_path: str) -> str:
        """Normalise a URL: leading slash, single slashes, trailing slash for
        extensionless paths.

        Raises:
            InvalidPermalinkError: The URL contains ``.`` or ``..`` segments.
        """
        url = url.strip()
        if not url.startswith("/"):
            url = f"/{url}"
        url = _SLASHES_RE.sub("/", url)
        segments = [s for s in url.split("/") if s]
        if any(s in (".", "..") for s in segments):
            raise InvalidPermalinkError(
                f"permalink {url!r} must not contain '.' or '..' segments",
                source_path=source_path,
            )
        if not segments:
            return "/"
        if url.endswith("/") or "." not in segments[-1]:
            return "/" + "/".join(segments) + "/"
        return "/" + "/".join(segments)

    def derive_page_url(self, inner_path: str, slug: str) -> str:
        """Derive the URL of a page that is not part of a collection.

        ``about.md`` -> ``/about/``, ``index.md`` -> ``/``,
        ``docs/index.md`` -> ``/docs/``, ``docs/setup.md`` -> ``/docs/setup/``.

        Args:
            inner_path: Path relative to the content root.
            slug: Page slug.
        """
        parent = PurePosixPath(inner_path).parent
        segments = [p for p in parent.parts if p not in ("", ".")]
        if slug != "index":
            segments.append(slug)
        path = "/".join(segments)
        return f"/{path}/" if path else "/"

    @staticmethod
    def output_path(url: str) -> str:
        """Map a normalised URL to a path relative to the output directory."""
        if url.endswith("/"):
            return posixpath.join(url.strip("/"), "index.html").lstrip("/")
        return url.lstrip("/")


__all__ = ["PermalinkResolver", "PermalinkValues"]
