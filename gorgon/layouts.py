"""Layout registry for Gorgon.

Layouts live in ``<source>/_layouts``. A layout is a Jinja2 template that
receives the rendered inner content as ``page_content``. It may name its own
parent layout in front matter::

    ---
    layout: base
    ---
    <article>{{ page_content }}</article>

Inheritance forms a chain from the innermost layout outwards. Chains are
resolved by walking parent references with a visited set, so a cycle is a
reported error rather than unbounded recursion. The whole registry is
validated before any rendering starts.
"""

from __future__ import annotations

from dataclasses import dataclass

from .errors import CircularLayoutError, FrontMatterError, MissingLayoutError
from .frontmatter import parse_front_matter
from .logging import get_logger
from .store import ContentStore
from .utils import source_stem

logger = get_logger("layouts")

_SUFFIX_PRIORITY = (".html.jinja", ".jinja", ".html")


@dataclass(frozen=True)
class Layout:
    """A named layout template.

    Attributes:
        name: Layout name (path under the layouts dir without suffix).
        path: Project-relative path of the template file.
        parent: Name of the enclosing layout, if any.
        source: Template source with front matter removed.
        error: Front-matter error that makes this layout unusable.
    """

    name: str
    path: str
    parent: str | None
    source: str
    error: FrontMatterError | None = None


class LayoutRegistry:
    """All layouts of one build run, keyed by name."""

    def __init__(self, layouts: dict[str, Layout] | None = None):
        self._layouts: dict[str, Layout] = dict(sorted((layouts or {}).items()))

    @classmethod
    def load(cls, store: ContentStore) -> LayoutRegistry:
        """Read every layout file known to ``store``."""
        layouts_prefix = store.config.relative(store.config.layouts_path) + "/"
        layouts: dict[str, Layout] = {}
        ranked = sorted(store.layout_paths(), key=lambda p: (_suffix_rank(p), p))
        for rel_path in ranked:
            inner = rel_path[len(layouts_prefix) :]
            folder, _, filename = inner.rpartition("/")
            name = f"{folder}/{source_stem(filename)}" if folder else source_stem(filename)
            if name in layouts:
                logger.warning(
                    "Layout %s shadowed by %s; ignoring it", rel_path, layouts[name].path
                )
                continue
            layouts[name] = _read_layout(store, name, rel_path)
        return cls(layouts)

    @property
    def names(self) -> frozenset[str]:
        return frozenset(self._layouts)

    def __contains__(self, name: object) -> bool:
        return name in self._layouts

    def __len__(self) -> int:
        return len(self._layouts)

    def get(self, name: str) -> Layout | None:
        return self._layouts.get(name)

    def layouts(self) -> list[Layout]:
        return list(self._layouts.values())

    def validate(self) -> None:
        """Reject any inheritance cycle before rendering begins.

        Raises:
            CircularLayoutError: With the cycle path, e.g. ``a -> b -> a``.
        """
        settled: set[str] = set()
        for name in self._layouts:
            trail: list[str] = []
            current: str | None = name
            while current is not None and current in self._layouts and current not in settled:
                if current in trail:
                    cycle = trail[trail.index(current) :] + [current]
                    raise CircularLayoutError(cycle, source_path=self._layouts[current].path)
                trail.append(current)
                current = self._layouts[current].parent
            settled.update(trail)

    def chain(self, name: str) -> list[Layout]:
        """Resolve the chain for ``name``, innermost first.

        Raises:
            MissingLayoutError: ``name`` or one of its ancestors does not exist.
            CircularLayoutError: The chain loops.
            FrontMatterError: A layout in the chain has invalid front matter.
        """
        chain: list[Layout] = []
        visited: set[str] = set()
        current: str | None = name
        child: Layout | None = None
        while current is not None:
            if current in visited:
                names = [layout.name for layout in chain]
                cycle = names[names.index(current) :] + [current]
                raise CircularLayoutError(cycle, source_path=self._layouts[current].path)
            layout = self._layouts.get(current)
            if layout is None:
                if child is None:
                    raise MissingLayoutError(f"layout {current!r} does not exist")
                raise MissingLayoutError(
                    f"layout {child.name!r} extends missing layout {current!r}",
                    source_path=child.path,
                )
            if layout.error is not None:
                raise layout.error
            visited.add(current)
            chain.append(layout)
            child = layout
            current = layout.parent
        return chain


def _suffix_rank(rel_path: str) -> int:
    for rank, suffix in enumerate(_SUFFIX_PRIORITY):
        if rel_path.endswith(suffix):
            return rank
    return len(_SUFFIX_PRIORITY)


def _read_layout(store: ContentStore, name: str, rel_path: str) -> Layout:
    text = store.read_text(rel_path)
    try:
        metadata, source = parse_front_matter(text, source_path=rel_path)
    except FrontMatterError as exc:
        return Layout(name=name, path=rel_path, parent=None, source="", error=exc)
    parent = metadata.get("layout")
    if parent is not None and not isinstance(parent, str):
        parent = str(parent)
    return Layout(name=name, path=rel_path, parent=parent or None, source=source)
