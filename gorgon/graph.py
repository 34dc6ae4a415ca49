"""Content graph for Gorgon.

The graph turns parsed documents into content entities and the relations
between them: collection membership, ordering, previous/next neighbours and
listing (pagination) pages. It is built single-threaded, once per build, and
is immutable afterwards so render workers can share it freely.

Ordering rule for every collection: newest first; equal (or missing) dates
fall back to source path order, ascending. ``previous`` is the next-older
entry, ``next`` the next-newer one.

The graph also answers ``signature(virtual_key)``: a digest of the
graph-derived inputs a render can observe (a collection's membership, an
entity's neighbours, ...). Incremental builds compare these digests between
two graphs to find artifacts affected indirectly, e.g. the previously newest
post gaining a ``next`` link when a newer post appears.

Key classes:
- ContentEntity: One renderable page, post or listing page.
- Collection: Named, ordered sequence of entity keys.
- ContentGraph: Immutable snapshot handed to the renderer.
- GraphBuilder: Documents -> ContentGraph.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from .config import SiteConfig
from .errors import (
    BuildWarning,
    DuplicatePermalinkError,
    EntityError,
    InvalidPermalinkError,
    UnknownLayoutError,
)
from .frontmatter import Metadata
from .logging import get_logger
from .permalinks import PermalinkResolver, PermalinkValues
from .store import Document, SiteData
from .utils import (
    coerce_datetime,
    digest,
    extract_date_from_name,
    first_paragraph,
    slugify,
    source_stem,
    titleize,
)

logger = get_logger("graph")

RESERVED_KEYS = frozenset(
    {
        "title",
        "date",
        "layout",
        "permalink",
        "tags",
        "categories",
        "published",
        "slug",
        "draft",
        "description",
        "collection",
    }
)

PAGES_KEY = "@pages"
TAGS_INDEX_KEY = "@index/tags"
CATEGORIES_INDEX_KEY = "@index/categories"
LISTING_PREFIX = "@list/"

_H1_RE = re.compile(r"^#\s+(.+?)\s*#*\s*$")


def collection_key(name: str) -> str:
    """Virtual dependency key for a collection's membership and order."""
    return f"@collection/{name}"


def neighbors_key(entity_key: str) -> str:
    """Virtual dependency key for an entity's previous/next links."""
    return f"@neighbors/{entity_key}"


def is_virtual(key: str) -> bool:
    return key.startswith("@")


class EntityKind(str, Enum):
    PAGE = "page"
    POST = "post"
    LISTING = "listing"


@dataclass(frozen=True)
class Paginator:
    """One page of a paginated collection listing.

    Attributes:
        collection: Collection being listed.
        number: 1-based page number.
        total_pages: Number of listing pages.
        items: Entity keys shown on this page, in collection order.
        urls: URL of every listing page, in order.
    """

    collection: str
    number: int
    total_pages: int
    items: tuple[str, ...]
    urls: tuple[str, ...]

    @property
    def previous_url(self) -> str | None:
        return self.urls[self.number - 2] if self.number > 1 else None

    @property
    def next_url(self) -> str | None:
        return self.urls[self.number] if self.number < self.total_pages else None


@dataclass(frozen=True)
class ContentEntity:
    """A renderable unit derived from one document (or a listing page).

    Attributes:
        key: Unique artifact key (the source path, or ``@list/<name>/<n>``).
        kind: Page, post or listing.
        title: Display title.
        url: Resolved permalink.
        output_path: Path relative to the output directory.
        slug: URL slug.
        date: Publication date, if known.
        layout: Innermost layout name, or None to emit the body as-is.
        source_path: Document path; None for listing pages.
        source_type: ``markdown``, ``html``, ``jinja`` or ``listing``.
        collection: Defined collection this entity belongs to.
        tags: Tag names.
        categories: Category names.
        description: Short plain-text summary.
        metadata: Full front matter, reserved keys included.
        previous: Key of the next-older collection member.
        next: Key of the next-newer collection member.
        paginator: Listing-page state.
    """

    key: str
    kind: EntityKind
    title: str
    url: str
    output_path: str
    slug: str
    date: datetime | None = None
    layout: str | None = None
    source_path: str | None = None
    source_type: str = "markdown"
    collection: str | None = None
    tags: tuple[str, ...] = ()
    categories: tuple[str, ...] = ()
    description: str = ""
    metadata: Metadata = field(default_factory=dict)
    previous: str | None = None
    next: str | None = None
    paginator: Paginator | None = None

    @property
    def custom_keys(self) -> list[str]:
        """Metadata keys with no built-in meaning."""
        return sorted(k for k in self.metadata if k not in RESERVED_KEYS)


@dataclass(frozen=True)
class Collection:
    """A named, ordered sequence of entity keys (newest first)."""

    name: str
    keys: tuple[str, ...]

    def __len__(self) -> int:
        return len(self.keys)

    def __contains__(self, key: object) -> bool:
        return key in self.keys


class ContentGraph:
    """Immutable snapshot of the site's content.

    Attributes:
        entities: Mapping of key -> ContentEntity (read-only).
        collections: Mapping of name -> Collection (read-only). Names are the
            defined collections plus ``tags/<tag>`` and ``categories/<name>``.
        site: Global data available to templates.
    """

    def __init__(
        self,
        entities: Mapping[str, ContentEntity],
        collections: Mapping[str, Collection],
        site: SiteData | None = None,
    ):
        self.entities: Mapping[str, ContentEntity] = MappingProxyType(dict(sorted(entities.items())))
        self.collections: Mapping[str, Collection] = MappingProxyType(
            dict(sorted(collections.items()))
        )
        self.site = site or SiteData()

    def __len__(self) -> int:
        return len(self.entities)

    def __contains__(self, key: object) -> bool:
        return key in self.entities

    def entity(self, key: str) -> ContentEntity:
        return self.entities[key]

    def get(self, key: str | None) -> ContentEntity | None:
        if key is None:
            return None
        return self.entities.get(key)

    def collection(self, name: str) -> Collection | None:
        return self.collections.get(name)

    def members(self, name: str) -> list[ContentEntity]:
        """Entities of collection ``name`` in collection order."""
        collection = self.collections.get(name)
        if collection is None:
            return []
        return [self.entities[key] for key in collection.keys]

    def documents(self) -> list[ContentEntity]:
        """Every non-listing entity, by key."""
        return [e for e in self.entities.values() if e.kind is not EntityKind.LISTING]

    def group_names(self, prefix: str) -> list[str]:
        """Names of ``tags/...`` or ``categories/...`` collections, prefix removed."""
        marker = f"{prefix}/"
        return [name[len(marker) :] for name in self.collections if name.startswith(marker)]

    def output_paths(self) -> dict[str, str]:
        return {entity.output_path: key for key, entity in self.entities.items()}

    def signature(self, virtual_key: str) -> str | None:
        """Digest of the graph-derived input named by ``virtual_key``.

        Returns:
            A short hex digest, or None when the key no longer exists.
        """
        if virtual_key == PAGES_KEY:
            return digest(tuple(_summary(e) for e in self.documents()))
        if virtual_key == TAGS_INDEX_KEY:
            return digest(self._group_summary("tags"))
        if virtual_key == CATEGORIES_INDEX_KEY:
            return digest(self._group_summary("categories"))
        if virtual_key.startswith("@collection/"):
            name = virtual_key[len("@collection/") :]
            if name not in self.collections:
                return None
            return digest(tuple(_summary(e) for e in self.members(name)))
        if virtual_key.startswith("@neighbors/"):
            entity = self.get(virtual_key[len("@neighbors/") :])
            if entity is None:
                return None
            return digest(
                (
                    entity.collection,
                    _summary(self.get(entity.previous)),
                    _summary(self.get(entity.next)),
                )
            )
        return None

    def _group_summary(self, prefix: str) -> tuple:
        return tuple(
            (name, tuple(_summary(e) for e in self.members(f"{prefix}/{name}")))
            for name in self.group_names(prefix)
        )


def _summary(entity: ContentEntity | None) -> tuple | None:
    if entity is None:
        return None
    return (
        entity.key,
        entity.url,
        entity.title,
        entity.date.isoformat() if entity.date else None,
    )


@dataclass
class GraphResult:
    """Outcome of building a graph.

    Attributes:
        graph: The content graph.
        failures: Entity-scoped errors; affected documents are left out.
        warnings: Skipped drafts and similar notices.
    """

    graph: ContentGraph
    failures: list[EntityError] = field(default_factory=list)
    warnings: list[BuildWarning] = field(default_factory=list)


class GraphBuilder:
    """Builds a ContentGraph from documents.

    Attributes:
        config: Site configuration.
        layout_names: Names of every available layout.
        include_drafts: Whether ``draft: true`` documents are built.
        reserved_outputs: Output paths already claimed by non-entity artifacts
            (static files, feeds), mapped to their source.
    """

    def __init__(
        self,
        config: SiteConfig,
        layout_names: Iterable[str],
        include_drafts: bool = False,
        reserved_outputs: Mapping[str, str] | None = None,
        site: SiteData | None = None,
    ):
        self.config = config
        self.layout_names = frozenset(layout_names)
        self.include_drafts = include_drafts
        self.reserved_outputs = dict(reserved_outputs or {})
        self.site = site or SiteData()
        self.permalinks = PermalinkResolver()

    def build(self, documents: Iterable[Document]) -> GraphResult:
        """Convert documents into an immutable content graph.

        Documents are processed in path order so the result never depends
        on filesystem iteration order.

        Raises:
            DuplicatePermalinkError: Two outputs share a path.
        """
        failures: list[EntityError] = []
        warnings: list[BuildWarning] = []
        entities: dict[str, ContentEntity] = {}
        claimed: dict[str, str] = dict(self.reserved_outputs)

        for document in sorted(documents, key=lambda d: d.path):
            if document.metadata.get("published") is False:
                warnings.append(BuildWarning(document.path, "skipped unpublished document"))
                continue
            if document.metadata.get("draft") is True and not self.include_drafts:
                warnings.append(BuildWarning(document.path, "skipped draft"))
                continue
            try:
                entity = self._make_entity(document, warnings)
            except EntityError as exc:
                failures.append(exc)
                continue
            self._claim(claimed, entity.output_path, document.path)
            entities[entity.key] = entity

        collections = self._collect(entities)
        entities = self._link_neighbors(entities, collections)

        for listing in self._listing_pages(entities, collections, failures):
            self._claim(claimed, listing.output_path, listing.key)
            entities[listing.key] = listing

        graph = ContentGraph(entities, collections, self.site)
        logger.debug(
            "Built content graph: %d entities, %d collections", len(graph), len(collections)
        )
        return GraphResult(graph=graph, failures=failures, warnings=warnings)

    @staticmethod
    def _claim(claimed: dict[str, str], output_path: str, source: str) -> None:
        if output_path in claimed:
            raise DuplicatePermalinkError(output_path, claimed[output_path], source)
        claimed[output_path] = source

    # -- entities ------------------------------------------------------

    def _make_entity(self, document: Document, warnings: list[BuildWarning]) -> ContentEntity:
        metadata = document.metadata
        source_prefix = f"{self.config.source_dir}/"
        inner = (
            document.path[len(source_prefix) :]
            if document.path.startswith(source_prefix)
            else document.path
        )
        stem = source_stem(document.name)
        source_type = _source_type(document.name)
        collection = self._collection_of(document, warnings)

        title = metadata.get("title")
        if not isinstance(title, str) or not title.strip():
            title = _heading_title(document.body) if source_type == "markdown" else None
            title = title or titleize(document.name)

        date = None
        if "date" in metadata:
            date = coerce_datetime(metadata["date"])
            if date is None:
                warnings.append(
                    BuildWarning(document.path, f"ignoring unparseable date {metadata['date']!r}")
                )
        if date is None:
            date = extract_date_from_name(stem)

        raw_slug = metadata.get("slug")
        slug = slugify(str(raw_slug)) if raw_slug not in (None, "") else slugify(stem)

        layout = self._layout_for(document, collection)
        folder = inner.rpartition("/")[0]
        values = PermalinkValues(
            slug=slug,
            title=title,
            collection=collection or "",
            path=folder,
            date=date,
        )
        explicit = metadata.get("permalink")
        if explicit is not None:
            if not isinstance(explicit, str) or not explicit.strip():
                raise InvalidPermalinkError(
                    "permalink must be a non-empty string", source_path=document.path
                )
            url = self.permalinks.expand(explicit, values, document.path)
        elif collection is not None:
            collection_config = self.config.collection(collection)
            pattern = (
                collection_config.permalink if collection_config else None
            ) or self.config.permalink
            url = self.permalinks.expand(pattern, values, document.path)
        else:
            url = self.permalinks.normalize(
                self.permalinks.derive_page_url(inner, slug), document.path
            )

        description = metadata.get("description")
        if not isinstance(description, str):
            description = first_paragraph(document.body)

        return ContentEntity(
            key=document.path,
            kind=EntityKind.POST if collection else EntityKind.PAGE,
            title=title,
            url=url,
            output_path=self.permalinks.output_path(url),
            slug=slug,
            date=date,
            layout=layout,
            source_path=document.path,
            source_type=source_type,
            collection=collection,
            tags=_names(metadata.get("tags")),
            categories=_names(metadata.get("categories")),
            description=description,
            metadata=metadata,
        )

    def _collection_of(self, document: Document, warnings: list[BuildWarning]) -> str | None:
        override = document.metadata.get("collection")
        if isinstance(override, str) and override:
            if self.config.collection(override) is not None:
                return override
            warnings.append(
                BuildWarning(document.path, f"ignoring unknown collection {override!r}")
            )
        return document.collection

    def _layout_for(self, document: Document, collection: str | None) -> str | None:
        metadata = document.metadata
        if "layout" in metadata:
            requested = metadata["layout"]
            if requested in (None, False) or str(requested).lower() == "none":
                return None
            name = str(requested)
            if name not in self.layout_names:
                raise UnknownLayoutError(
                    f"layout {name!r} does not exist", source_path=document.path
                )
            return name
        collection_config = self.config.collection(collection) if collection else None
        if collection_config and collection_config.layout:
            if collection_config.layout not in self.layout_names:
                raise UnknownLayoutError(
                    f"collection layout {collection_config.layout!r} does not exist",
                    source_path=document.path,
                )
            return collection_config.layout
        if "default" in self.layout_names:
            return "default"
        return None

    # -- relations -----------------------------------------------------

    def _collect(self, entities: Mapping[str, ContentEntity]) -> dict[str, Collection]:
        grouped: dict[str, list[ContentEntity]] = {c.name: [] for c in self.config.collections}
        for entity in entities.values():
            if entity.collection is not None:
                grouped.setdefault(entity.collection, []).append(entity)
            for tag in entity.tags:
                grouped.setdefault(f"tags/{tag}", []).append(entity)
            for category in entity.categories:
                grouped.setdefault(f"categories/{category}", []).append(entity)
        return {name: Collection(name, _ordered(members)) for name, members in grouped.items()}

    def _link_neighbors(
        self,
        entities: dict[str, ContentEntity],
        collections: Mapping[str, Collection],
    ) -> dict[str, ContentEntity]:
        linked = dict(entities)
        for collection_config in self.config.collections:
            keys = collections[collection_config.name].keys
            for index, key in enumerate(keys):
                newer = keys[index - 1] if index > 0 else None
                older = keys[index + 1] if index + 1 < len(keys) else None
                linked[key] = replace(linked[key], previous=older, next=newer)
        return linked

    def _listing_pages(
        self,
        entities: Mapping[str, ContentEntity],
        collections: Mapping[str, Collection],
        failures: list[EntityError],
    ) -> list[ContentEntity]:
        listings: list[ContentEntity] = []
        for collection_config in self.config.collections:
            if not collection_config.paginate:
                continue
            name = collection_config.name
            key_prefix = f"{LISTING_PREFIX}{name}/"
            if collection_config.list_layout not in self.layout_names:
                failures.append(
                    UnknownLayoutError(
                        f"listing layout {collection_config.list_layout!r} does not exist",
                        source_path=f"{key_prefix}1",
                    )
                )
                continue
            keys = collections[name].keys
            size = collection_config.paginate
            chunks = [keys[i : i + size] for i in range(0, len(keys), size)] or [()]
            urls = []
            for number in range(1, len(chunks) + 1):
                pattern = (
                    collection_config.list_permalink
                    if number == 1
                    else collection_config.paged_permalink
                )
                values = PermalinkValues(slug=name, title=name, collection=name, page=number)
                urls.append(self.permalinks.expand(pattern, values, f"{key_prefix}{number}"))
            for number, chunk in enumerate(chunks, start=1):
                paginator = Paginator(
                    collection=name,
                    number=number,
                    total_pages=len(chunks),
                    items=tuple(chunk),
                    urls=tuple(urls),
                )
                title = name.replace("-", " ").replace("_", " ").title()
                if number > 1:
                    title = f"{title} (page {number})"
                listings.append(
                    ContentEntity(
                        key=f"{key_prefix}{number}",
                        kind=EntityKind.LISTING,
                        title=title,
                        url=urls[number - 1],
                        output_path=self.permalinks.output_path(urls[number - 1]),
                        slug=name,
                        layout=collection_config.list_layout,
                        source_type="listing",
                        collection=name,
                        paginator=paginator,
                    )
                )
        return listings


def build_graph(
    documents: Iterable[Document],
    config: SiteConfig,
    layout_names: Iterable[str],
    include_drafts: bool = False,
    reserved_outputs: Mapping[str, str] | None = None,
    site: SiteData | None = None,
) -> GraphResult:
    """Convenience wrapper around ``GraphBuilder``."""
    return GraphBuilder(
        config,
        layout_names,
        include_drafts=include_drafts,
        reserved_outputs=reserved_outputs,
        site=site,
    ).build(documents)


def _ordered(members: Iterable[ContentEntity]) -> tuple[str, ...]:
    by_path = sorted(members, key=lambda e: e.key)
    # Stable: equal dates keep ascending path order.
    by_date = sorted(by_path, key=lambda e: e.date or datetime.min, reverse=True)
    return tuple(e.key for e in by_date)


def _names(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        items = [part.strip() for part in value.split(",")]
    elif isinstance(value, list):
        items = [str(item).strip() for item in value if item is not None]
    else:
        items = [str(value).strip()]
    seen: list[str] = []
    for item in items:
        if item and item not in seen:
            seen.append(item)
    return tuple(seen)


def _source_type(filename: str) -> str:
    lowered = filename.lower()
    if lowered.endswith(".md"):
        return "markdown"
    if lowered.endswith(".jinja"):
        return "jinja"
    return "html"


def _heading_title(body: str) -> str | None:
    for line in body.splitlines():
        match = _H1_RE.match(line.strip())
        if match:
            return match.group(1)
    return None
