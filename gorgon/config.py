"""Site configuration for Gorgon (gorgon.yaml).

The configuration file is optional; every key has a default. It enumerates
where sources live, where output goes, how permalinks are formed, which
collections exist, and global data available to every template.

Example::

    source_dir: site
    output_dir: output
    permalink: /{year}/{month}/{day}/{slug}/
    collections:
      posts:
        layout: post
        paginate: 10
    data:
      title: My Blog
      url: https://example.com
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError

CONFIG_FILENAME = "gorgon.yaml"

PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")
ENTITY_PLACEHOLDERS = frozenset({"year", "month", "day", "slug", "collection", "title", "path"})
LISTING_PLACEHOLDERS = frozenset({"collection", "page"})

DEFAULT_PERMALINK = "/{collection}/{slug}/"
DEFAULT_LIST_PERMALINK = "/{collection}/"
DEFAULT_PAGED_PERMALINK = "/{collection}/page/{page}/"


@dataclass(frozen=True)
class CollectionConfig:
    """Definition of a named collection.

    Attributes:
        name: Collection name, available to permalinks as ``{collection}``.
        source: Folder under the content root whose documents belong to it.
        permalink: Permalink pattern for members (None uses the site pattern).
        layout: Default layout for members.
        paginate: Page size for listing pages; None disables listing pages.
        list_layout: Layout used to render listing pages.
        list_permalink: URL of the first listing page.
        paged_permalink: URL pattern of listing pages after the first.
    """

    name: str
    source: str
    permalink: str | None = None
    layout: str | None = None
    paginate: int | None = None
    list_layout: str = "list"
    list_permalink: str = DEFAULT_LIST_PERMALINK
    paged_permalink: str = DEFAULT_PAGED_PERMALINK


@dataclass(frozen=True)
class SiteConfig:
    """Resolved site configuration.

    Paths are kept relative to the project root; use the ``*_path`` helpers
    to get absolute locations.
    """

    project_root: Path
    source_dir: str = "site"
    output_dir: str = "output"
    layouts_dir: str = "_layouts"
    partials_dir: str = "_partials"
    data_dir: str = "data"
    static_dir: str = "static"
    cache_dir: str = ".gorgon"
    permalink: str = DEFAULT_PERMALINK
    collections: tuple[CollectionConfig, ...] = (CollectionConfig(name="posts", source="posts"),)
    data: dict[str, Any] = field(default_factory=dict)
    port: int = 4000
    ws_port: int | None = None
    workers: int = field(default_factory=lambda: min(8, os.cpu_count() or 1))
    build_timeout: float = 60.0
    debounce: float = 0.15
    full_rebuild_threshold: float = 0.5
    feed_collection: str = "posts"

    @property
    def config_path(self) -> Path:
        return self.project_root / CONFIG_FILENAME

    @property
    def source_path(self) -> Path:
        return self.project_root / self.source_dir

    @property
    def output_path(self) -> Path:
        return self.project_root / self.output_dir

    @property
    def layouts_path(self) -> Path:
        return self.source_path / self.layouts_dir

    @property
    def partials_path(self) -> Path:
        return self.source_path / self.partials_dir

    @property
    def data_path(self) -> Path:
        return self.project_root / self.data_dir

    @property
    def static_path(self) -> Path:
        return self.project_root / self.static_dir

    @property
    def cache_path(self) -> Path:
        return self.project_root / self.cache_dir

    def collection(self, name: str) -> CollectionConfig | None:
        for collection in self.collections:
            if collection.name == name:
                return collection
        return None

    def relative(self, path: Path) -> str:
        """Return ``path`` relative to the project root, as a POSIX string."""
        return path.relative_to(self.project_root).as_posix()


def load_config(project_root: Path) -> SiteConfig:
    """Load site configuration from gorgon.yaml.

    Args:
        project_root: Root directory of the project.

    Returns:
        SiteConfig with defaults applied.

    Raises:
        ConfigError: The file is unreadable, not a mapping, or invalid.
    """
    project_root = Path(project_root)
    config_path = project_root / CONFIG_FILENAME
    if not config_path.exists():
        return SiteConfig(project_root=project_root)
    try:
        with open(config_path, encoding="utf-8") as f:
            loaded = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(
            f"cannot read configuration: {exc}",
            source_path=CONFIG_FILENAME,
            original_error=exc,
        ) from exc
    if loaded is None:
        return SiteConfig(project_root=project_root)
    if not isinstance(loaded, dict):
        raise ConfigError("configuration must be a mapping", source_path=CONFIG_FILENAME)
    return config_from_mapping(project_root, loaded)


def config_from_mapping(project_root: Path, raw: dict[str, Any]) -> SiteConfig:
    """Build a SiteConfig from an already-parsed mapping."""
    known = {
        "source_dir",
        "output_dir",
        "layouts_dir",
        "partials_dir",
        "data_dir",
        "static_dir",
        "cache_dir",
        "permalink",
        "collections",
        "data",
        "port",
        "ws_port",
        "workers",
        "build_timeout",
        "debounce",
        "full_rebuild_threshold",
        "feed_collection",
    }
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigError(
            f"unknown configuration keys: {', '.join(unknown)}", source_path=CONFIG_FILENAME
        )

    values: dict[str, Any] = {}
    for key in (
        "source_dir",
        "output_dir",
        "layouts_dir",
        "partials_dir",
        "data_dir",
        "static_dir",
        "cache_dir",
        "feed_collection",
    ):
        if key in raw:
            values[key] = _require_str(raw, key)

    permalink = raw.get("permalink", DEFAULT_PERMALINK)
    validate_pattern(permalink, ENTITY_PLACEHOLDERS, "permalink")
    values["permalink"] = permalink

    if "collections" in raw:
        values["collections"] = _parse_collections(raw["collections"])

    data = raw.get("data", {}) or {}
    if not isinstance(data, dict):
        raise ConfigError("'data' must be a mapping", source_path=CONFIG_FILENAME)
    values["data"] = data

    for key in ("port", "workers"):
        if key in raw:
            values[key] = _require_positive_int(raw, key)
    if raw.get("ws_port") is not None:
        values["ws_port"] = _require_positive_int(raw, "ws_port")
    for key in ("build_timeout", "debounce"):
        if key in raw:
            values[key] = _require_number(raw, key, minimum=0.0)
    if "full_rebuild_threshold" in raw:
        threshold = _require_number(raw, "full_rebuild_threshold", minimum=0.0)
        if threshold > 1.0:
            raise ConfigError(
                "'full_rebuild_threshold' must be between 0 and 1", source_path=CONFIG_FILENAME
            )
        values["full_rebuild_threshold"] = threshold

    return SiteConfig(project_root=project_root, **values)


def validate_pattern(pattern: Any, allowed: frozenset[str], label: str) -> None:
    """Check that a permalink pattern only uses supported placeholders.

    Raises:
        ConfigError: The pattern is not a string or has unknown placeholders.
    """
    if not isinstance(pattern, str) or not pattern.strip():
        raise ConfigError(f"'{label}' must be a non-empty string", source_path=CONFIG_FILENAME)
    unknown = sorted(set(PLACEHOLDER_RE.findall(pattern)) - allowed)
    if unknown:
        raise ConfigError(
            f"'{label}' uses unknown placeholder(s): {', '.join(unknown)}",
            source_path=CONFIG_FILENAME,
        )


def _parse_collections(raw: Any) -> tuple[CollectionConfig, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, dict):
        raise ConfigError("'collections' must be a mapping", source_path=CONFIG_FILENAME)
    collections = []
    sources: dict[str, str] = {}
    for name in sorted(raw):
        options = raw[name] or {}
        if not isinstance(name, str) or "/" in name or not name:
            raise ConfigError(f"invalid collection name {name!r}", source_path=CONFIG_FILENAME)
        if not isinstance(options, dict):
            raise ConfigError(
                f"collection {name!r} must be a mapping", source_path=CONFIG_FILENAME
            )
        label = f"collections.{name}"
        source = str(options.get("source", name)).strip("/")
        if source in sources:
            raise ConfigError(
                f"collections {sources[source]!r} and {name!r} share source {source!r}",
                source_path=CONFIG_FILENAME,
            )
        sources[source] = name
        permalink = options.get("permalink")
        if permalink is not None:
            validate_pattern(permalink, ENTITY_PLACEHOLDERS, f"{label}.permalink")
        list_permalink = options.get("list_permalink", DEFAULT_LIST_PERMALINK)
        validate_pattern(list_permalink, LISTING_PLACEHOLDERS, f"{label}.list_permalink")
        paged_permalink = options.get("paged_permalink", DEFAULT_PAGED_PERMALINK)
        validate_pattern(paged_permalink, LISTING_PLACEHOLDERS, f"{label}.paged_permalink")
        if "{page}" not in paged_permalink:
            raise ConfigError(
                f"'{label}.paged_permalink' must contain {{page}}", source_path=CONFIG_FILENAME
            )
        paginate = options.get("paginate")
        if paginate is not None and (
            isinstance(paginate, bool) or not isinstance(paginate, int) or paginate < 1
        ):
            raise ConfigError(
                f"'{label}.paginate' must be a positive integer", source_path=CONFIG_FILENAME
            )
        collections.append(
            CollectionConfig(
                name=name,
                source=source,
                permalink=permalink,
                layout=options.get("layout"),
                paginate=paginate,
                list_layout=str(options.get("list_layout", "list")),
                list_permalink=list_permalink,
                paged_permalink=paged_permalink,
            )
        )
    return tuple(collections)


def _require_str(raw: dict[str, Any], key: str) -> str:
    value = raw[key]
    if not isinstance(value, str) or not value:
        raise ConfigError(f"'{key}' must be a non-empty string", source_path=CONFIG_FILENAME)
    return value


def _require_positive_int(raw: dict[str, Any], key: str) -> int:
    value = raw[key]
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigError(f"'{key}' must be a positive integer", source_path=CONFIG_FILENAME)
    return value


def _require_number(raw: dict[str, Any], key: str, minimum: float) -> float:
    value = raw[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < minimum:
        raise ConfigError(f"'{key}' must be a number >= {minimum:g}", source_path=CONFIG_FILENAME)
    return float(value)
