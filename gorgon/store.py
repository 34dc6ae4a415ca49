"""Content store for Gorgon.

The store is the only part of the build that touches the source tree. It
discovers content documents, layouts, partials, data files and static
assets, parses documents into ``Document`` records, and takes fingerprint
snapshots so incremental builds can tell what changed.

All paths handed out by the store are project-relative POSIX strings. They
double as document identities and as dependency keys.

Key classes:
- Document: Immutable parsed source unit.
- ContentStore: File-tree backed discovery and reading.
- SiteData: Merged global data plus the file each key came from.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .config import CONFIG_FILENAME, SiteConfig
from .errors import ConfigError, FrontMatterError, SourceRootError
from .frontmatter import Metadata, parse_front_matter
from .logging import get_logger
from .utils import is_content_file

logger = get_logger("store")

Fingerprint = tuple[int, int]


class DocumentKind(str, Enum):
    """What a source document turns into."""

    PAGE = "page"
    POST = "post"
    DATA = "data"


@dataclass(frozen=True)
class Document:
    """A parsed source unit.

    Attributes:
        path: Project-relative POSIX path, unique per document.
        kind: Page, post (member of a defined collection) or data file.
        metadata: Parsed front matter (or the payload of a data file).
        body: Text after the front matter.
        collection: Defined collection owning the document, if any.
        fingerprint: (mtime_ns, size) at read time.
    """

    path: str
    kind: DocumentKind
    metadata: Metadata
    body: str
    collection: str | None = None
    fingerprint: Fingerprint = (0, 0)

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]


@dataclass(frozen=True)
class DocumentFailure:
    """A document that could not be parsed."""

    path: str
    error: FrontMatterError


@dataclass
class SiteData:
    """Global template data.

    Attributes:
        values: Merged mapping exposed to templates as ``site``.
        sources: Top-level key -> project-relative file that defined it.
    """

    values: dict[str, Any] = field(default_factory=dict)
    sources: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class SnapshotDiff:
    """Difference between two source snapshots."""

    added: frozenset[str]
    removed: frozenset[str]
    modified: frozenset[str]

    @property
    def changed(self) -> frozenset[str]:
        return self.added | self.removed | self.modified

    def __bool__(self) -> bool:
        return bool(self.added or self.removed or self.modified)


class ContentStore:
    """Reads sources for one site.

    Attributes:
        config: Site configuration.
        root: Project root directory.
    """

    def __init__(self, config: SiteConfig):
        self.config = config
        self.root = config.project_root

    # -- discovery -----------------------------------------------------

    def content_paths(self) -> list[str]:
        """List content documents under the source directory.

        Directories starting with ``_`` (layouts, partials, private folders)
        are skipped.

        Raises:
            SourceRootError: The source directory is missing or unreadable.
        """
        source = self.config.source_path
        if not source.is_dir():
            raise SourceRootError(
                f"content root {self.config.source_dir!r} does not exist or is not a directory",
                source_path=self.config.source_dir,
            )
        try:
            candidates = sorted(source.rglob("*"))
        except OSError as exc:
            raise SourceRootError(
                f"content root is unreadable: {exc}",
                source_path=self.config.source_dir,
                original_error=exc,
            ) from exc
        paths: list[str] = []
        for path in candidates:
            if path.is_dir():
                continue
            rel = path.relative_to(source)
            if any(part.startswith("_") for part in rel.parts[:-1]):
                continue
            if is_content_file(path):
                paths.append(self.config.relative(path))
        return paths

    def layout_paths(self) -> list[str]:
        return self._files_under(self.config.layouts_path)

    def partial_paths(self) -> list[str]:
        return self._files_under(self.config.partials_path)

    def data_paths(self) -> list[str]:
        return [
            p
            for p in self._files_under(self.config.data_path, recursive=False)
            if p.endswith((".yaml", ".yml"))
        ]

    def static_paths(self) -> list[str]:
        return self._files_under(self.config.static_path)

    def _files_under(self, directory: Path, recursive: bool = True) -> list[str]:
        if not directory.is_dir():
            return []
        iterator = directory.rglob("*") if recursive else directory.glob("*")
        return sorted(self.config.relative(p) for p in iterator if p.is_file())

    # -- reading -------------------------------------------------------

    def absolute(self, rel_path: str) -> Path:
        return self.root / rel_path

    def read_text(self, rel_path: str) -> str:
        return self.absolute(rel_path).read_text(encoding="utf-8")

    def read_bytes(self, rel_path: str) -> bytes:
        return self.absolute(rel_path).read_bytes()

    def fingerprint(self, rel_path: str) -> Fingerprint:
        stat = self.absolute(rel_path).stat()
        return (stat.st_mtime_ns, stat.st_size)

    def collection_for(self, rel_path: str) -> str | None:
        """Return the defined collection whose source folder holds ``rel_path``."""
        prefix = f"{self.config.source_dir}/"
        inner = rel_path[len(prefix) :] if rel_path.startswith(prefix) else rel_path
        for collection in self.config.collections:
            if inner.startswith(f"{collection.source}/"):
                return collection.name
        return None

    def read_document(self, rel_path: str) -> Document:
        """Read and parse one content document.

        Raises:
            FrontMatterError: The front matter is malformed or invalid.
        """
        fingerprint = self.fingerprint(rel_path)
        metadata, body = parse_front_matter(self.read_text(rel_path), source_path=rel_path)
        collection = self.collection_for(rel_path)
        return Document(
            path=rel_path,
            kind=DocumentKind.POST if collection else DocumentKind.PAGE,
            metadata=metadata,
            body=body,
            collection=collection,
            fingerprint=fingerprint,
        )

    def documents(self) -> tuple[list[Document], list[DocumentFailure]]:
        """Read every content document.

        Returns:
            Tuple of (parsed documents, per-document failures).
        """
        documents: list[Document] = []
        failures: list[DocumentFailure] = []
        for rel_path in self.content_paths():
            try:
                documents.append(self.read_document(rel_path))
            except FrontMatterError as exc:
                failures.append(DocumentFailure(rel_path, exc))
            except FileNotFoundError:
                # Deleted between discovery and reading.
                continue
        logger.debug("Read %d documents, %d failed", len(documents), len(failures))
        return documents, failures

    def data_documents(self) -> list[Document]:
        """Read YAML data files as data documents.

        Raises:
            ConfigError: A data file is not valid YAML.
        """
        documents = []
        for rel_path in self.data_paths():
            try:
                payload = yaml.safe_load(self.read_text(rel_path))
            except yaml.YAMLError as exc:
                raise ConfigError(
                    f"data file is not valid YAML: {exc}",
                    source_path=rel_path,
                    original_error=exc,
                ) from exc
            documents.append(
                Document(
                    path=rel_path,
                    kind=DocumentKind.DATA,
                    metadata={"payload": payload},
                    body="",
                    fingerprint=self.fingerprint(rel_path),
                )
            )
        return documents

    def site_data(self) -> SiteData:
        """Merge config ``data`` with the data directory.

        ``site.yaml`` (or ``site.yml``) contributes top-level keys; every
        other file is exposed under its stem.

        Raises:
            ConfigError: A data file is invalid or site.yaml is not a mapping.
        """
        data = SiteData()
        for key, value in self.config.data.items():
            data.values[key] = value
            data.sources[key] = CONFIG_FILENAME
        for document in self.data_documents():
            payload = document.metadata["payload"]
            stem = Path(document.path).stem
            if stem == "site":
                if payload is None:
                    continue
                if not isinstance(payload, dict):
                    raise ConfigError("site data must be a mapping", source_path=document.path)
                for key, value in payload.items():
                    data.values[str(key)] = value
                    data.sources[str(key)] = document.path
            else:
                data.values[stem] = payload
                data.sources[stem] = document.path
        return data

    # -- change detection ----------------------------------------------

    def snapshot(self) -> dict[str, Fingerprint]:
        """Fingerprint every input the build reads.

        Covers the config file, the whole source tree (content, layouts,
        partials), data files and static files.
        """
        entries: dict[str, Fingerprint] = {}
        if self.config.config_path.exists():
            entries[CONFIG_FILENAME] = self.fingerprint(CONFIG_FILENAME)
        ignored = (self.config.output_path, self.config.cache_path)
        for directory in (
            self.config.source_path,
            self.config.data_path,
            self.config.static_path,
        ):
            if not directory.is_dir():
                continue
            for path in directory.rglob("*"):
                if any(path == d or d in path.parents for d in ignored):
                    continue
                try:
                    if not path.is_file():
                        continue
                    stat = path.stat()
                except OSError:
                    continue
                entries[self.config.relative(path)] = (stat.st_mtime_ns, stat.st_size)
        return dict(sorted(entries.items()))


def diff_snapshots(
    old: dict[str, Fingerprint], new: dict[str, Fingerprint]
) -> SnapshotDiff:
    """Compare two snapshots taken by ``ContentStore.snapshot``."""
    old_keys = set(old)
    new_keys = set(new)
    modified = {path for path in old_keys & new_keys if tuple(old[path]) != tuple(new[path])}
    return SnapshotDiff(
        added=frozenset(new_keys - old_keys),
        removed=frozenset(old_keys - new_keys),
        modified=frozenset(modified),
    )
