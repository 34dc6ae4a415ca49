from helpers import post

from gorgon.config import load_config
from gorgon.feeds import (
    RSSGenerator,
    SitemapGenerator,
    create_default_feed_registry,
)
from gorgon.graph import build_graph
from gorgon.store import ContentStore


def _graph(root):
    config = load_config(root)
    store = ContentStore(config)
    documents, _ = store.documents()
    return build_graph(documents, config, (), site=store.site_data()).graph, config


def _site(make_project, url="https://example.com/"):
    config = {"data": {"url": url, "title": "Notes & Things"}} if url else None
    return make_project(
        {
            "site/posts/2025-01-01-a.md": post("A", "2025-01-01", "First & post."),
            "site/posts/2025-02-01-b.md": post("B", "2025-02-01", "Second post."),
            "site/about.md": "About",
        },
        config=config,
    )


def test_feeds_need_a_site_url(make_project):
    graph, config = _graph(_site(make_project, url=None))
    registry = create_default_feed_registry()
    assert registry.generate_all(graph, config) == []
    assert registry.reserved_outputs("") == {}


def test_sitemap_lists_documents_with_lastmod(make_project):
    graph, config = _graph(_site(make_project))
    result = SitemapGenerator().generate(graph, config)
    text = result.content.decode("utf-8")
    assert result.key == "@feed/sitemap.xml"
    assert result.output_path == "sitemap.xml"
    assert "<url><loc>https://example.com/about/</loc></url>" in text
    assert (
        "<url><loc>https://example.com/posts/a/</loc><lastmod>2025-01-01</lastmod></url>" in text
    )
    assert result.dependencies == {"@pages", "gorgon.yaml"}


def test_rss_is_newest_first_and_escaped(make_project):
    graph, config = _graph(_site(make_project))
    result = RSSGenerator().generate(graph, config)
    text = result.content.decode("utf-8")
    assert "<title>Notes &amp; Things</title>" in text
    assert "<lastBuildDate>Sat, 01 Feb 2025 00:00:00 +0000</lastBuildDate>" in text
    assert text.index("<title>B</title>") < text.index("<title>A</title>")
    assert "<description>First &amp; post.</description>" in text
    assert "about" not in text
    assert result.dependencies == {
        "@collection/posts",
        "gorgon.yaml",
        "site/posts/2025-01-01-a.md",
        "site/posts/2025-02-01-b.md",
    }


def test_feed_output_is_deterministic(make_project):
    root = _site(make_project)
    first = [r.content for r in create_default_feed_registry().generate_all(*_graph(root))]
    second = [r.content for r in create_default_feed_registry().generate_all(*_graph(root))]
    assert first == second
    assert create_default_feed_registry().reserved_outputs("https://example.com") == {
        "sitemap.xml": "@feed/sitemap.xml",
        "rss.xml": "@feed/rss.xml",
    }
