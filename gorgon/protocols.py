"""Protocol definitions for Gorgon.

These interfaces decouple the build orchestrator from concrete renderers, so
tests and extensions can plug in their own implementations:

- BodyRenderer: turns one kind of document body into HTML.
- Renderer: renders a whole content entity and reports its inputs.
- RendererFactory: creates a Renderer for one build run.
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Mapping
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .graph import ContentEntity, ContentGraph
    from .layouts import LayoutRegistry
    from .store import ContentStore, Document
    from .templates import RenderResult


@runtime_checkable
class BodyRenderer(Protocol):
    """Protocol for rendering document bodies.

    Implementations handle one content type (Markdown, HTML, Jinja).
    """

    @abstractmethod
    def render(self, content: str) -> str:
        """Render a document body to HTML."""
        ...

    @property
    @abstractmethod
    def source_type(self) -> str:
        """Return the source type identifier (e.g., 'markdown', 'html', 'jinja')."""
        ...


@runtime_checkable
class Renderer(Protocol):
    """Protocol for rendering content entities.

    A renderer is created once per build run and may be called from several
    worker threads at once, so ``render`` must not mutate shared state.
    """

    @abstractmethod
    def render(self, entity: ContentEntity) -> RenderResult:
        """Render ``entity`` through its body renderer and layout chain.

        Returns:
            RenderResult with the HTML and every input the render read.

        Raises:
            EntityError: The entity cannot be rendered.
            CircularLayoutError: The entity's layout chain loops.
        """
        ...


class RendererFactory(Protocol):
    """Callable creating a Renderer for one build run."""

    def __call__(
        self,
        store: ContentStore,
        layouts: LayoutRegistry,
        graph: ContentGraph,
        documents: Mapping[str, Document],
    ) -> Renderer: ...
