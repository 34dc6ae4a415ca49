from gorgon.protocols import BodyRenderer, Renderer
from gorgon.renderers import (
    HTMLRenderer,
    JinjaContentRenderer,
    MarkdownRenderer,
    RendererRegistry,
)
from gorgon.templates import TemplateRenderer


def test_markdown_renderer():
    """Test MarkdownRenderer renders markdown to HTML."""
    renderer = MarkdownRenderer()
    assert renderer.source_type == "markdown"
    html = renderer.render("# Hello World\n\n## Hello World\n\nText")
    assert '<h1 id="hello-world">Hello World</h1>' in html
    assert '<h2 id="hello-world-1">Hello World</h2>' in html


def test_markdown_highlights_known_languages():
    renderer = MarkdownRenderer()
    html = renderer.render("```python\nx = 1\n```\n")
    assert 'class="highlight"' in html
    plain = renderer.render("```nosuchlang\na < b\n```\n")
    assert '<pre><code class="language-nosuchlang">a &lt; b' in plain


def test_html_and_jinja_bodies_pass_through():
    assert HTMLRenderer().render("<p>Test</p>") == "<p>Test</p>"
    assert JinjaContentRenderer().render("{{ var }}") == "{{ var }}"


def test_renderer_registry():
    """Test RendererRegistry finds renderers by source type."""
    registry = RendererRegistry()
    assert registry.for_source_type("markdown").source_type == "markdown"
    assert registry.for_source_type("jinja").source_type == "jinja"
    assert registry.for_source_type("html").source_type == "html"
    assert registry.for_source_type("listing") is None


def test_registered_renderer_takes_a_new_source_type():
    class ShoutRenderer:
        source_type = "shout"

        def render(self, content):
            return content.upper()

    registry = RendererRegistry()
    registry.register(ShoutRenderer())
    assert registry.for_source_type("shout").render("hi") == "HI"


def test_renderers_satisfy_protocols(blog, store_for):
    from gorgon.graph import ContentGraph
    from gorgon.layouts import LayoutRegistry

    for renderer in (MarkdownRenderer(), HTMLRenderer(), JinjaContentRenderer()):
        assert isinstance(renderer, BodyRenderer)
    store = store_for(blog)
    template_renderer = TemplateRenderer(store, LayoutRegistry.load(store), ContentGraph({}, {}))
    assert isinstance(template_renderer, Renderer)
