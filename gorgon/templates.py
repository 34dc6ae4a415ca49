"""Template rendering engine for Gorgon.

This module uses Jinja2 to render content entities through their layout
chains. A ``TemplateRenderer`` is created for every build run and owns its
own Jinja environment, so nothing leaks between builds.

While rendering, it records every input the output was derived from:

- the entity's source file and every layout in its chain;
- the transitive closure of partials each template includes, found by
  static analysis of the template source (a dynamic include depends on all
  partials);
- data files whose keys the templates read through ``site``;
- graph-derived inputs (collections, neighbours, tag indexes) reached
  through the views in ``gorgon.collections``.

Key class:
- TemplateRenderer: Renders entities and reports their dependencies.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from jinja2 import (
    ChoiceLoader,
    DictLoader,
    Environment,
    FileSystemLoader,
    TemplateError,
    TemplateSyntaxError,
    meta,
    select_autoescape,
)
from markupsafe import Markup

from .collections import (
    AccessRecorder,
    CollectionsView,
    EntityView,
    GroupView,
    PaginatorView,
    TrackedData,
    pages_view,
)
from .errors import ErrorKind, GorgonError, TemplateRenderError
from .graph import ContentEntity, ContentGraph, EntityKind, neighbors_key
from .layouts import Layout, LayoutRegistry
from .logging import get_logger
from .renderers import RendererRegistry, default_renderer_registry
from .store import ContentStore, Document

logger = get_logger("templates")

__all__ = ["RenderResult", "TemplateRenderer"]


@dataclass(frozen=True)
class RenderResult:
    """Output of rendering one entity.

    Attributes:
        html: Final HTML after the whole layout chain.
        dependencies: Every dependency key observed while rendering.
        used_keys: Metadata keys of the entity that templates read.
    """

    html: str
    dependencies: frozenset[str]
    used_keys: frozenset[str]


class TemplateRenderer:
    """Renders content entities with Jinja2 layouts.

    Attributes:
        store: Content store used to read partial sources.
        layouts: Validated layout registry for this build.
        graph: Content graph for this build.
        env: Jinja2 environment. Layouts are registered under their file
            path; partials load from the partials directory.
    """

    def __init__(
        self,
        store: ContentStore,
        layouts: LayoutRegistry,
        graph: ContentGraph,
        documents: Mapping[str, Document] | None = None,
        body_renderers: RendererRegistry | None = None,
    ):
        self.store = store
        self.layouts = layouts
        self.graph = graph
        self.documents = documents or {}
        self.body_renderers = body_renderers or default_renderer_registry

        self._partials_prefix = store.config.relative(store.config.partials_path) + "/"
        self._partials: dict[str, str] = {
            path[len(self._partials_prefix) :]: path for path in store.partial_paths()
        }
        self._direct_refs: dict[str, tuple[str | None, ...]] = {}
        self._layout_refs: dict[str, frozenset[str]] = {}

        self.env = Environment(
            loader=ChoiceLoader(
                [
                    DictLoader({layout.path: layout.source for layout in layouts.layouts()}),
                    FileSystemLoader(store.config.partials_path),
                ]
            ),
            autoescape=select_autoescape(["html", "xml"]),
            enable_async=False,
        )

    # -- rendering -----------------------------------------------------

    def render(self, entity: ContentEntity) -> RenderResult:
        """Render ``entity`` through its body renderer and layout chain.

        Raises:
            TemplateRenderError: A template failed to compile or render.
            MissingLayoutError: The layout chain names a missing layout.
            CircularLayoutError: The layout chain loops.
        """
        recorder = AccessRecorder()
        recorder.depend(entity.source_path)
        if entity.kind is EntityKind.POST and entity.collection:
            recorder.depend(neighbors_key(entity.key))

        context = self._context(entity, recorder)
        failure_path = entity.source_path or entity.key
        try:
            body_html = self._render_body(entity, context, recorder)
            html = self._apply_layouts(entity, body_html, context, recorder)
        except GorgonError:
            raise
        except TemplateSyntaxError as exc:
            raise TemplateRenderError(
                _describe(exc),
                source_path=failure_path,
                original_error=exc,
                kind=ErrorKind.TEMPLATE_SYNTAX,
            ) from exc
        except (TemplateError, TypeError, ValueError, LookupError, AttributeError) as exc:
            raise TemplateRenderError(
                _describe(exc),
                source_path=failure_path,
                original_error=exc,
                kind=ErrorKind.TEMPLATE_RUNTIME,
            ) from exc

        return RenderResult(
            html=html,
            dependencies=frozenset(recorder.dependencies),
            used_keys=frozenset(recorder.used_keys),
        )

    def _context(self, entity: ContentEntity, recorder: AccessRecorder) -> dict[str, Any]:
        site = TrackedData(self.graph.site, recorder)

        def url_for(target: Any) -> str:
            """Return the URL for an entity view or a site path."""
            path = target.url if isinstance(target, EntityView) else str(target)
            if path.startswith(("http://", "https://", "//")):
                return path
            if not path.startswith("/"):
                path = f"/{path}"
            base = site.get("root_url") or ""
            return f"{str(base).rstrip('/')}{path}" if base else path

        return {
            "page": EntityView(entity, self.graph, recorder, current=True),
            "site": site,
            "collections": CollectionsView(self.graph, recorder),
            "pages": pages_view(self.graph, recorder),
            "tags": GroupView(self.graph, recorder, "tags"),
            "categories": GroupView(self.graph, recorder, "categories"),
            "paginator": (
                PaginatorView(entity.paginator, self.graph, recorder)
                if entity.paginator is not None
                else None
            ),
            "url_for": url_for,
        }

    def _render_body(
        self, entity: ContentEntity, context: dict[str, Any], recorder: AccessRecorder
    ) -> str:
        if entity.source_path is None:
            return ""
        document = self.documents.get(entity.source_path)
        if document is None:
            document = self.store.read_document(entity.source_path)
        if entity.source_type == "jinja":
            template = self.env.from_string(document.body)
            recorder.dependencies.update(self._closure(self._references(document.body)))
            return template.render(context)
        body_renderer = self.body_renderers.for_source_type(entity.source_type)
        if body_renderer is None:
            return document.body
        return body_renderer.render(document.body)

    def _apply_layouts(
        self,
        entity: ContentEntity,
        body_html: str,
        context: dict[str, Any],
        recorder: AccessRecorder,
    ) -> str:
        if entity.layout is None:
            return body_html
        html = body_html
        for layout in self.layouts.chain(entity.layout):
            recorder.depend(layout.path)
            recorder.dependencies.update(self._layout_closure(layout))
            template = self.env.get_template(layout.path)
            html = template.render(context, page_content=Markup(html))
        return html

    # -- partial analysis ----------------------------------------------

    def _references(self, source: str, name: str | None = None) -> tuple[str | None, ...]:
        """Templates referenced by ``source``; None marks a dynamic reference."""
        ast = self.env.parse(source, name=name)
        return tuple(meta.find_referenced_templates(ast))

    def _layout_closure(self, layout: Layout) -> frozenset[str]:
        cached = self._layout_refs.get(layout.name)
        if cached is None:
            cached = self._closure(self._references(layout.source, layout.path))
            self._layout_refs[layout.name] = cached
        return cached

    def _partial_refs(self, name: str) -> tuple[str | None, ...]:
        refs = self._direct_refs.get(name)
        if refs is None:
            refs = self._references(self.store.read_text(self._partials[name]), name)
            self._direct_refs[name] = refs
        return refs

    def _closure(self, references: Iterable[str | None]) -> frozenset[str]:
        """Project paths of every partial reachable from ``references``.

        A referenced partial that does not exist yet contributes the path it
        would have, so creating it later re-renders the includer.
        """
        seen: set[str] = set()
        missing: set[str] = set()
        pending = list(references)
        while pending:
            name = pending.pop()
            if name is None:
                pending.extend(n for n in self._partials if n not in seen)
                continue
            if name in seen:
                continue
            if name not in self._partials:
                missing.add(self._partials_prefix + name)
                continue
            seen.add(name)
            pending.extend(self._partial_refs(name))
        return frozenset(self._partials[name] for name in seen) | missing


def _describe(exc: Exception) -> str:
    if isinstance(exc, TemplateSyntaxError):
        where = exc.filename or exc.name or "<string>"
        return f"{where}:{exc.lineno}: {exc.message}"
    return f"{type(exc).__name__}: {exc}"
