"""Body renderers for Gorgon.

This module contains implementations of the BodyRenderer protocol for the
content types Gorgon understands. Each renderer turns the body of one kind
of document into HTML:

- MarkdownRenderer: Markdown -> HTML with heading anchors and Pygments
  highlighting for fenced code.
- HTMLRenderer: Passes HTML through unchanged.
- JinjaContentRenderer: Passes Jinja source through; the template renderer
  evaluates it with the page context.

Renderers are stateless, so one registry can serve every worker thread.
"""

from __future__ import annotations

import re

import mistune
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound


def _generate_heading_id(text: str) -> str:
    """Generate a URL-friendly ID from heading text."""
    slug = re.sub(r"<[^>]+>", "", text).lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[-\s]+", "-", slug)
    return slug.strip("-")


class _HighlightRenderer(mistune.HTMLRenderer):
    """Markdown renderer with heading anchors and syntax highlighting."""

    def __init__(self):
        super().__init__(escape=False)
        self._heading_id_counts: dict[str, int] = {}

    def heading(self, text: str, level: int, **attrs) -> str:
        """Render a heading with an auto-generated, de-duplicated ID."""
        base_id = _generate_heading_id(text) or "section"
        if base_id in self._heading_id_counts:
            self._heading_id_counts[base_id] += 1
            heading_id = f"{base_id}-{self._heading_id_counts[base_id]}"
        else:
            self._heading_id_counts[base_id] = 0
            heading_id = base_id
        return f'<h{level} id="{heading_id}">{text}</h{level}>\n'

    def block_code(self, code: str, info: str | None = None) -> str:
        """Render a code block, highlighted when the language is known."""
        language = info.split()[0] if info else None
        if language:
            try:
                lexer = get_lexer_by_name(language, stripall=True)
            except ClassNotFound:
                lexer = None
            if lexer is not None:
                formatter = HtmlFormatter(nowrap=False, cssclass="highlight")
                return highlight(code, lexer, formatter)
        escaped = code.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
        lang_class = f' class="language-{language}"' if language else ""
        return f"<pre><code{lang_class}>{escaped}</code></pre>\n"


class MarkdownRenderer:
    """Renders Markdown bodies to HTML."""

    @property
    def source_type(self) -> str:
        return "markdown"

    def render(self, content: str) -> str:
        markdown = mistune.create_markdown(
            renderer=_HighlightRenderer(),
            plugins=["strikethrough", "footnotes", "table", "url"],
        )
        return markdown(content)


class HTMLRenderer:
    """Passes HTML bodies through unchanged."""

    @property
    def source_type(self) -> str:
        return "html"

    def render(self, content: str) -> str:
        return content


class JinjaContentRenderer:
    """Identifies Jinja bodies.

    The source is returned unchanged; TemplateRenderer compiles and renders
    it with the page context so it can track partials and data access.
    """

    @property
    def source_type(self) -> str:
        return "jinja"

    def render(self, content: str) -> str:
        return content


class RendererRegistry:
    """Registry for body renderers.

    New content types can be added by registering another renderer.
    """

    def __init__(self):
        self._renderers: list = []
        self.register(MarkdownRenderer())
        self.register(JinjaContentRenderer())
        self.register(HTMLRenderer())

    def register(self, renderer) -> None:
        self._renderers.append(renderer)

    def for_source_type(self, source_type: str):
        for renderer in self._renderers:
            if renderer.source_type == source_type:
                return renderer
        return None


# Stateless, safe to share across builds and threads.
default_renderer_registry = RendererRegistry()
