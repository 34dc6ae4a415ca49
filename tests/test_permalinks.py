from datetime import datetime

import pytest

from gorgon.errors import InvalidPermalinkError
from gorgon.permalinks import PermalinkResolver, PermalinkValues


@pytest.fixture
def resolver():
    return PermalinkResolver()


def test_expand_date_and_slug(resolver):
    values = PermalinkValues(
        slug="hello", title="Hello World", collection="posts", date=datetime(2025, 3, 7)
    )
    assert resolver.expand("/{year}/{month}/{day}/{slug}/", values, "x.md") == "/2025/03/07/hello/"
    assert resolver.expand("/{collection}/{title}", values, "x.md") == "/posts/hello-world/"
    assert resolver.expand("/feeds/{slug}.xml", values, "x.md") == "/feeds/hello.xml"


def test_date_placeholder_without_date_is_invalid(resolver):
    with pytest.raises(InvalidPermalinkError):
        resolver.expand("/{year}/{slug}/", PermalinkValues(slug="a", title="A"), "x.md")


@pytest.mark.parametrize(
    "url, expected",
    [
        ("about", "/about/"),
        ("//docs///setup/", "/docs/setup/"),
        ("/", "/"),
        ("/feed.xml", "/feed.xml"),
    ],
)
def test_normalize(resolver, url, expected):
    assert resolver.normalize(url, "x.md") == expected


def test_normalize_rejects_parent_segments(resolver):
    with pytest.raises(InvalidPermalinkError):
        resolver.normalize("/../etc/", "x.md")


@pytest.mark.parametrize(
    "inner, slug, expected",
    [
        ("about.md", "about", "/about/"),
        ("index.md", "index", "/"),
        ("docs/index.md", "index", "/docs/"),
        ("docs/setup.md", "setup", "/docs/setup/"),
    ],
)
def test_derive_page_url(resolver, inner, slug, expected):
    assert resolver.derive_page_url(inner, slug) == expected


def test_output_path():
    assert PermalinkResolver.output_path("/") == "index.html"
    assert PermalinkResolver.output_path("/posts/a/") == "posts/a/index.html"
    assert PermalinkResolver.output_path("/feed.xml") == "feed.xml"
