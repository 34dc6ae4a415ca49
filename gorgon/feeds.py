"""Feed generation for Gorgon.

Feeds (sitemap.xml, RSS) are build artifacts like rendered pages: each one
reports the inputs it was generated from, so incremental builds regenerate a
feed only when those inputs change.

Feeds are only produced when site data defines ``url``; absolute links need
a base. Output is deterministic: entries come in graph order and the RSS
``lastBuildDate`` is the newest entry's date, never the wall clock.

Classes:
    FeedGenerator: Base class for feed generators.
    SitemapGenerator: Generates sitemap.xml.
    RSSGenerator: Generates rss.xml for the feed collection.
    FeedRegistry: Runs every registered generator.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from markupsafe import escape

from .config import SiteConfig
from .graph import PAGES_KEY, ContentGraph, collection_key

FEED_KEY_PREFIX = "@feed/"

_RFC822 = "%a, %d %b %Y %H:%M:%S +0000"


@dataclass(frozen=True)
class FeedResult:
    """One generated feed.

    Attributes:
        key: Artifact key (``@feed/<filename>``).
        output_path: Path relative to the output directory.
        content: Encoded feed document.
        dependencies: Inputs the feed was generated from.
    """

    key: str
    output_path: str
    content: bytes
    dependencies: frozenset[str]


def base_url(graph: ContentGraph) -> str:
    return str(graph.site.values.get("url") or "").rstrip("/")


class FeedGenerator(ABC):
    """Base class for feed generators."""

    @property
    @abstractmethod
    def filename(self) -> str:
        """Return the output filename, such as 'sitemap.xml'."""
        ...

    @property
    def key(self) -> str:
        return f"{FEED_KEY_PREFIX}{self.filename}"

    @abstractmethod
    def generate(self, graph: ContentGraph, config: SiteConfig) -> FeedResult | None:
        """Generate the feed, or return None when it cannot be generated."""
        ...

    def _site_dependencies(self, graph: ContentGraph, *keys: str) -> set[str]:
        sources = graph.site.sources
        return {sources[key] for key in keys if key in sources}


class SitemapGenerator(FeedGenerator):
    """Generates sitemap.xml listing every page and post."""

    @property
    def filename(self) -> str:
        return "sitemap.xml"

    def generate(self, graph: ContentGraph, config: SiteConfig) -> FeedResult | None:
        root = base_url(graph)
        if not root:
            return None

        lines = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
        ]
        for entity in graph.documents():
            loc = escape(f"{root}{entity.url}")
            if entity.date is not None:
                lastmod = entity.date.strftime("%Y-%m-%d")
                lines.append(f"  <url><loc>{loc}</loc><lastmod>{lastmod}</lastmod></url>")
            else:
                lines.append(f"  <url><loc>{loc}</loc></url>")
        lines.append("</urlset>")

        dependencies = {PAGES_KEY} | self._site_dependencies(graph, "url")
        return FeedResult(
            key=self.key,
            output_path=self.filename,
            content=("\n".join(lines) + "\n").encode("utf-8"),
            dependencies=frozenset(dependencies),
        )


class RSSGenerator(FeedGenerator):
    """Generates an RSS 2.0 feed of the feed collection, newest first."""

    @property
    def filename(self) -> str:
        return "rss.xml"

    def generate(self, graph: ContentGraph, config: SiteConfig) -> FeedResult | None:
        root = base_url(graph)
        if not root:
            return None

        title = graph.site.values.get("title") or "Gorgon Feed"
        members = graph.members(config.feed_collection)
        dependencies = {collection_key(config.feed_collection)}
        dependencies |= self._site_dependencies(graph, "url", "title")

        rss = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<rss version="2.0"><channel>',
            f"<title>{escape(title)}</title>",
            f"<link>{escape(root)}/</link>",
        ]
        dated = [entity.date for entity in members if entity.date is not None]
        if dated:
            rss.append(f"<lastBuildDate>{max(dated).strftime(_RFC822)}</lastBuildDate>")
        for entity in members:
            # Descriptions come from each member's own source.
            if entity.source_path:
                dependencies.add(entity.source_path)
            link = escape(f"{root}{entity.url}")
            parts = [
                f"<title>{escape(entity.title)}</title>",
                f"<link>{link}</link>",
                f"<guid>{link}</guid>",
                f"<description>{escape(entity.description or entity.title)}</description>",
            ]
            if entity.date is not None:
                parts.append(f"<pubDate>{entity.date.strftime(_RFC822)}</pubDate>")
            rss.append(f"<item>{''.join(parts)}</item>")
        rss.append("</channel></rss>")

        return FeedResult(
            key=self.key,
            output_path=self.filename,
            content=("\n".join(rss) + "\n").encode("utf-8"),
            dependencies=frozenset(dependencies),
        )


class FeedRegistry:
    """Registry of feed generators run during every build."""

    def __init__(self) -> None:
        self._generators: list[FeedGenerator] = []

    def register(self, generator: FeedGenerator) -> None:
        self._generators.append(generator)

    @property
    def generators(self) -> list[FeedGenerator]:
        return list(self._generators)

    def reserved_outputs(self, graph_site_url: str) -> dict[str, str]:
        """Output paths claimed by feeds when a base URL is configured."""
        if not graph_site_url:
            return {}
        return {g.filename: g.key for g in self._generators}

    def generate_all(self, graph: ContentGraph, config: SiteConfig) -> list[FeedResult]:
        results = []
        for generator in self._generators:
            result = generator.generate(graph, config)
            if result is not None:
                results.append(result)
        return results


def create_default_feed_registry() -> FeedRegistry:
    """Create a registry with the sitemap and RSS generators."""
    registry = FeedRegistry()
    registry.register(SitemapGenerator())
    registry.register(RSSGenerator())
    return registry
