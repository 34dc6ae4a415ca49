import pytest
from helpers import post

from gorgon.config import load_config
from gorgon.errors import ErrorKind, TemplateRenderError
from gorgon.graph import build_graph
from gorgon.layouts import LayoutRegistry
from gorgon.store import ContentStore
from gorgon.templates import TemplateRenderer


def _renderer(root):
    config = load_config(root)
    store = ContentStore(config)
    documents, _ = store.documents()
    layouts = LayoutRegistry.load(store)
    layouts.validate()
    graph = build_graph(documents, config, layouts.names, site=store.site_data()).graph
    return TemplateRenderer(store, layouts, graph, {d.path: d for d in documents}), graph


def _render(root, key):
    renderer, graph = _renderer(root)
    return renderer.render(graph.entity(key))


def test_markdown_through_layout_chain(make_project):
    root = make_project(
        {
            "site/_layouts/base.html": "<html>{{ page_content }}</html>",
            "site/_layouts/default.html": "---\nlayout: base\n---\n<main>{{ page_content }}</main>",
            "site/about.md": "Hello *world*.",
        }
    )
    result = _render(root, "site/about.md")
    assert result.html == "<html><main><p>Hello <em>world</em>.</p>\n</main></html>"
    assert {
        "site/about.md",
        "site/_layouts/default.html",
        "site/_layouts/base.html",
    } <= result.dependencies


def test_post_links_to_neighbors(blog):
    result = _render(blog, "site/posts/2025-02-01-b.md")
    assert '<a rel="prev" href="/posts/a/">A</a>' in result.html
    assert 'rel="next"' not in result.html
    assert "@neighbors/site/posts/2025-02-01-b.md" in result.dependencies
    # Neighbour title and url are summary fields.
    assert "site/posts/2025-01-01-a.md" not in result.dependencies


def test_partial_closure_is_recorded(make_project):
    root = make_project(
        {
            "site/_layouts/default.html": '{% include "header.html" %}{{ page_content }}',
            "site/_partials/header.html": '<header>{% include "logo.html" %}</header>',
            "site/_partials/logo.html": "<img>",
            "site/_partials/footer.html": "<footer>",
            "site/about.md": "About",
        }
    )
    result = _render(root, "site/about.md")
    assert result.html.startswith("<header><img></header>")
    assert "site/_partials/header.html" in result.dependencies
    assert "site/_partials/logo.html" in result.dependencies
    assert "site/_partials/footer.html" not in result.dependencies


def test_missing_optional_partial_records_its_path(make_project):
    root = make_project(
        {
            "site/_layouts/default.html": (
                '{% include "banner.html" ignore missing %}{{ page_content }}'
            ),
            "site/about.md": "About",
        }
    )
    result = _render(root, "site/about.md")
    assert result.html == "<p>About</p>\n"
    assert "site/_partials/banner.html" in result.dependencies


def test_dynamic_include_depends_on_every_partial(make_project):
    root = make_project(
        {
            "site/_layouts/default.html": (
                '{% set name = "a.html" %}{% include name %}{{ page_content }}'
            ),
            "site/_partials/a.html": "A",
            "site/_partials/b.html": "B",
            "site/about.md": "About",
        }
    )
    deps = _render(root, "site/about.md").dependencies
    assert {"site/_partials/a.html", "site/_partials/b.html"} <= deps


def test_site_data_reads_record_their_source(make_project):
    root = make_project(
        {
            "site/_layouts/default.html": "{{ site.title }}|{{ page_content }}",
            "data/site.yaml": "title: My Site\n",
            "data/nav.yaml": "- home\n",
            "site/about.md": "About",
        }
    )
    result = _render(root, "site/about.md")
    assert result.html.startswith("My Site|")
    assert "data/site.yaml" in result.dependencies
    assert "data/nav.yaml" not in result.dependencies


def test_missing_site_key_depends_on_all_data(make_project):
    root = make_project(
        {
            "site/_layouts/default.html": "{% if site.missing %}x{% endif %}{{ page_content }}",
            "data/site.yaml": "title: My Site\n",
            "data/nav.yaml": "- home\n",
            "site/about.md": "About",
        }
    )
    deps = _render(root, "site/about.md").dependencies
    assert {"data/site.yaml", "data/nav.yaml"} <= deps


def test_collection_iteration_records_membership(blog):
    (blog / "site/index.html.jinja").write_text(
        "---\nlayout: none\n---\n"
        "{% for p in collections.posts %}{{ p.title }};{% endfor %}",
        encoding="utf-8",
    )
    result = _render(blog, "site/index.html.jinja")
    assert result.html == "B;A;"
    assert "@collection/posts" in result.dependencies
    assert "site/posts/2025-01-01-a.md" not in result.dependencies


def test_reading_other_entity_details_records_its_source(blog):
    (blog / "site/index.html.jinja").write_text(
        "---\nlayout: none\n---\n"
        "{% for p in collections.posts.latest(1) %}{{ p.description }}{% endfor %}",
        encoding="utf-8",
    )
    result = _render(blog, "site/index.html.jinja")
    assert result.html == "Second post."
    assert "site/posts/2025-02-01-b.md" in result.dependencies
    assert "site/posts/2025-01-01-a.md" not in result.dependencies


def test_tags_and_pages_views(make_project):
    root = make_project(
        {
            "site/posts/a.md": post("A", "2025-01-01", tags="[linux]"),
            "site/posts/b.md": post("B", "2025-01-02", tags="[go]"),
            "site/index.html.jinja": (
                "---\nlayout: none\n---\n"
                "{% for name in tags %}{{ name }}={{ tags[name]|length }};{% endfor %}"
                "{{ pages|length }}"
            ),
        }
    )
    result = _render(root, "site/index.html.jinja")
    assert result.html == "go=1;linux=1;3"
    assert {"@index/tags", "@collection/tags/go", "@pages"} <= result.dependencies


def test_used_metadata_keys_and_escaping(make_project):
    root = make_project(
        {
            "site/_layouts/default.html": "<h1>{{ page.subtitle }}</h1>{{ page_content }}",
            "site/about.md": "---\nsubtitle: <b>bold</b>\nunused: 1\n---\n<i>raw</i>",
        }
    )
    result = _render(root, "site/about.md")
    assert "<h1>&lt;b&gt;bold&lt;/b&gt;</h1>" in result.html
    assert "<i>raw</i>" in result.html
    assert result.used_keys == {"subtitle"}


def test_url_for_prefixes_root_url(make_project):
    root = make_project(
        {
            "site/_layouts/default.html": "{{ url_for(page) }} {{ url_for('feed.xml') }}",
            "site/about.md": "About",
        },
        config={"data": {"root_url": "https://example.com/blog/"}},
    )
    html = _render(root, "site/about.md").html
    assert html == "https://example.com/blog/about/ https://example.com/blog/feed.xml"


def test_syntax_error_is_reported_against_the_document(make_project):
    root = make_project({"site/broken.html.jinja": "---\nlayout: none\n---\n{% if %}"})
    with pytest.raises(TemplateRenderError) as excinfo:
        _render(root, "site/broken.html.jinja")
    assert excinfo.value.kind is ErrorKind.TEMPLATE_SYNTAX
    assert excinfo.value.source_path == "site/broken.html.jinja"


def test_runtime_error_is_template_runtime(make_project):
    root = make_project(
        {"site/broken.html.jinja": "---\nlayout: none\n---\n{{ page.title.nope() }}"}
    )
    with pytest.raises(TemplateRenderError) as excinfo:
        _render(root, "site/broken.html.jinja")
    assert excinfo.value.kind is ErrorKind.TEMPLATE_RUNTIME
    assert not excinfo.value.fatal
