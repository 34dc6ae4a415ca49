"""Template-facing views over the content graph.

Templates never see graph objects directly. They get lightweight views that
behave like plain sequences and mappings and, as a side effect, tell an
``AccessRecorder`` which graph-derived inputs the render consumed:

- iterating ``pages`` records ``@pages``;
- ``collections.posts`` records ``@collection/posts``;
- ``tags["linux"]`` records ``@collection/tags/linux``, iterating ``tags``
  records ``@index/tags``;
- reading ``site.nav`` records the data file that defined ``nav``;
- reading another entity's metadata or description records that entity's
  source file.

The recorder belongs to exactly one render, so concurrent renders never
share state.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from datetime import datetime
from typing import Any

from .graph import (
    CATEGORIES_INDEX_KEY,
    PAGES_KEY,
    TAGS_INDEX_KEY,
    ContentEntity,
    ContentGraph,
    Paginator,
    collection_key,
)
from .store import SiteData


class AccessRecorder:
    """Collects the inputs observed during one render.

    Attributes:
        dependencies: Dependency keys (file paths and virtual keys).
        used_keys: Metadata keys of the rendered entity that templates read.
    """

    def __init__(self):
        self.dependencies: set[str] = set()
        self.used_keys: set[str] = set()

    def depend(self, key: str | None) -> None:
        if key:
            self.dependencies.add(key)


class EntityView:
    """Read-only view of a ContentEntity for templates.

    Summary fields (key, url, title, date, slug) are free to read. Other
    fields of a non-current entity record a dependency on its source file.
    """

    __slots__ = ("_entity", "_graph", "_recorder", "_current")

    def __init__(
        self,
        entity: ContentEntity,
        graph: ContentGraph,
        recorder: AccessRecorder,
        current: bool = False,
    ):
        self._entity = entity
        self._graph = graph
        self._recorder = recorder
        self._current = current

    def _touch(self) -> None:
        if not self._current:
            self._recorder.depend(self._entity.source_path)

    @property
    def key(self) -> str:
        return self._entity.key

    @property
    def url(self) -> str:
        return self._entity.url

    @property
    def title(self) -> str:
        return self._entity.title

    @property
    def date(self):
        return self._entity.date

    @property
    def slug(self) -> str:
        return self._entity.slug

    @property
    def kind(self) -> str:
        return self._entity.kind.value

    @property
    def collection(self) -> str | None:
        return self._entity.collection

    @property
    def source_path(self) -> str | None:
        return self._entity.source_path

    @property
    def tags(self) -> list[str]:
        self._touch()
        return list(self._entity.tags)

    @property
    def categories(self) -> list[str]:
        self._touch()
        return list(self._entity.categories)

    @property
    def description(self) -> str:
        self._touch()
        return self._entity.description

    @property
    def meta(self) -> MetadataView:
        self._touch()
        return MetadataView(self._entity.metadata, self._recorder if self._current else None)

    @property
    def previous(self) -> EntityView | None:
        return self._neighbor(self._entity.previous)

    @property
    def next(self) -> EntityView | None:
        return self._neighbor(self._entity.next)

    def _neighbor(self, key: str | None) -> EntityView | None:
        entity = self._graph.get(key)
        if entity is None:
            return None
        return EntityView(entity, self._graph, self._recorder)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        metadata = self._entity.metadata
        if name not in metadata:
            raise AttributeError(name)
        self._touch()
        if self._current:
            self._recorder.used_keys.add(name)
        return metadata[name]

    def __eq__(self, other: object) -> bool:
        if isinstance(other, EntityView):
            return self._entity.key == other._entity.key
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._entity.key)

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"EntityView({self._entity.key!r})"


class MetadataView(Mapping[str, Any]):
    """Metadata mapping that records which keys the current page reads."""

    def __init__(self, metadata: Mapping[str, Any], recorder: AccessRecorder | None):
        self._metadata = metadata
        self._recorder = recorder

    def __getitem__(self, key: str) -> Any:
        value = self._metadata[key]
        if self._recorder is not None:
            self._recorder.used_keys.add(key)
        return value

    def __iter__(self) -> Iterator[str]:
        if self._recorder is not None:
            self._recorder.used_keys.update(self._metadata)
        return iter(self._metadata)

    def __len__(self) -> int:
        return len(self._metadata)


class EntityCollection(Sequence[EntityView]):
    """Sequence of entity views in collection order (newest first).

    The dependency key is recorded the first time the sequence is read.
    """

    def __init__(
        self,
        keys: Iterable[str],
        graph: ContentGraph,
        recorder: AccessRecorder,
        dependency: str | None = None,
    ):
        self._keys = list(keys)
        self._graph = graph
        self._recorder = recorder
        self._dependency = dependency

    def _touch(self) -> None:
        self._recorder.depend(self._dependency)

    def _view(self, key: str) -> EntityView:
        return EntityView(self._graph.entity(key), self._graph, self._recorder)

    def __iter__(self) -> Iterator[EntityView]:
        self._touch()
        return (self._view(key) for key in self._keys)

    def __len__(self) -> int:
        self._touch()
        return len(self._keys)

    def __getitem__(self, item):
        self._touch()
        if isinstance(item, slice):
            return EntityCollection(self._keys[item], self._graph, self._recorder, self._dependency)
        return self._view(self._keys[item])

    def latest(self, count: int = 5) -> EntityCollection:
        return self[:count]

    def oldest_first(self) -> EntityCollection:
        self._touch()
        return EntityCollection(
            list(reversed(self._keys)), self._graph, self._recorder, self._dependency
        )

    def with_tag(self, tag: str) -> EntityCollection:
        self._touch()
        # Membership in a tag is part of each entity's own metadata.
        keys = []
        for key in self._keys:
            entity = self._graph.entity(key)
            self._recorder.depend(entity.source_path)
            if tag in entity.tags:
                keys.append(key)
        return EntityCollection(keys, self._graph, self._recorder, self._dependency)

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"EntityCollection({len(self._keys)} entities)"


class CollectionsView(Mapping[str, EntityCollection]):
    """Every collection by name (``posts``, ``tags/linux``, ...)."""

    def __init__(self, graph: ContentGraph, recorder: AccessRecorder):
        self._graph = graph
        self._recorder = recorder

    def __getitem__(self, name: str) -> EntityCollection:
        collection = self._graph.collection(name)
        if collection is None:
            raise KeyError(name)
        return EntityCollection(collection.keys, self._graph, self._recorder, collection_key(name))

    def __iter__(self) -> Iterator[str]:
        self._recorder.depend(TAGS_INDEX_KEY)
        self._recorder.depend(CATEGORIES_INDEX_KEY)
        return iter(self._graph.collections)

    def __len__(self) -> int:
        self._recorder.depend(TAGS_INDEX_KEY)
        self._recorder.depend(CATEGORIES_INDEX_KEY)
        return len(self._graph.collections)


class GroupView(Mapping[str, EntityCollection]):
    """Tag or category name -> EntityCollection."""

    def __init__(self, graph: ContentGraph, recorder: AccessRecorder, prefix: str):
        self._graph = graph
        self._recorder = recorder
        self._prefix = prefix
        self._index_key = TAGS_INDEX_KEY if prefix == "tags" else CATEGORIES_INDEX_KEY

    def __getitem__(self, name: str) -> EntityCollection:
        full_name = f"{self._prefix}/{name}"
        collection = self._graph.collection(full_name)
        if collection is None:
            self._recorder.depend(self._index_key)
            raise KeyError(name)
        return EntityCollection(
            collection.keys, self._graph, self._recorder, collection_key(full_name)
        )

    def __iter__(self) -> Iterator[str]:
        self._recorder.depend(self._index_key)
        return iter(self._graph.group_names(self._prefix))

    def __len__(self) -> int:
        self._recorder.depend(self._index_key)
        return len(self._graph.group_names(self._prefix))


class TrackedData(Mapping[str, Any]):
    """Global site data that records which data file each read came from."""

    def __init__(self, site: SiteData, recorder: AccessRecorder):
        self._site = site
        self._recorder = recorder

    def __getitem__(self, key: str) -> Any:
        if key not in self._site.values:
            # Any data file could start defining the key.
            for source in self._site.sources.values():
                self._recorder.depend(source)
            raise KeyError(key)
        self._recorder.depend(self._site.sources.get(key))
        return self._site.values[key]

    def __iter__(self) -> Iterator[str]:
        for source in self._site.sources.values():
            self._recorder.depend(source)
        return iter(self._site.values)

    def __len__(self) -> int:
        return len(self._site.values)


class PaginatorView:
    """Listing-page state for templates."""

    def __init__(self, paginator: Paginator, graph: ContentGraph, recorder: AccessRecorder):
        self._paginator = paginator
        self.collection = paginator.collection
        self.number = paginator.number
        self.total_pages = paginator.total_pages
        self.urls = list(paginator.urls)
        self.previous_url = paginator.previous_url
        self.next_url = paginator.next_url
        self.items = EntityCollection(
            paginator.items, graph, recorder, collection_key(paginator.collection)
        )
        recorder.depend(collection_key(paginator.collection))


def pages_view(graph: ContentGraph, recorder: AccessRecorder) -> EntityCollection:
    """Every non-listing entity, newest first, as a sequence for templates."""
    entities = sorted(graph.documents(), key=lambda e: e.key)
    ordered = sorted(entities, key=lambda e: e.date or datetime.min, reverse=True)
    return EntityCollection([e.key for e in ordered], graph, recorder, PAGES_KEY)
