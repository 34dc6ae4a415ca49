"""Site building functionality for Gorgon.

This module orchestrates a build: it discovers sources, parses documents,
builds the content graph, renders affected entities on a worker pool and
writes the results atomically into the output directory.

Two entry points share one pipeline:

- ``SiteBuilder.full_build``: every artifact is rendered and written; files
  in the output directory that no artifact claims are removed.
- ``SiteBuilder.incremental_build``: only artifacts whose inputs changed
  since the previous build are rendered. Outputs of removed entities, and old
  outputs of entities whose permalink moved, are deleted. The build escalates
  to a full one when the configuration changed, when there is no previous
  state, or when a single change feeds too much of the site.

Fatal errors (unreadable source root, duplicate permalinks, layout cycles,
timeouts, bad configuration) abort before anything is written. Failures
scoped to one entity are collected in the report; the entity's previous
artifact, if any, is left as it was.

Key classes:
- BuildPhase: Pipeline phases, observable through a listener.
- BuildReport: Outcome of one build.
- SiteBuilder: Owns the document cache and dependency tracker.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .config import CONFIG_FILENAME, SiteConfig, load_config
from .dependencies import STATE_FILENAME, AffectedSet, DependencyTracker
from .errors import (
    BuildFailure,
    BuildTimeoutError,
    BuildWarning,
    EntityError,
    GorgonError,
    WriteError,
)
from .feeds import FeedRegistry, create_default_feed_registry
from .graph import ContentEntity, ContentGraph, GraphBuilder
from .layouts import LayoutRegistry
from .logging import get_logger
from .protocols import RendererFactory
from .store import ContentStore, Document, DocumentFailure, Fingerprint, diff_snapshots
from .templates import TemplateRenderer
from .utils import atomic_write_bytes, prune_empty_dirs, remove_tree

logger = get_logger("build")

__all__ = [
    "BuildArtifact",
    "BuildMode",
    "BuildPhase",
    "BuildReport",
    "SiteBuilder",
    "build_site",
    "clean_site",
]


class BuildPhase(str, Enum):
    """Phases of the build pipeline, in order."""

    IDLE = "idle"
    DISCOVERING = "discovering"
    PARSING = "parsing"
    GRAPH_BUILDING = "graph_building"
    RENDERING = "rendering"
    WRITING = "writing"


class BuildMode(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"


@dataclass(frozen=True)
class BuildArtifact:
    """A rendered output ready to be written.

    Attributes:
        key: Artifact key (entity key, static source path or feed key).
        output_path: Path relative to the output directory.
        content: Bytes to write.
        dependencies: Inputs the content was derived from.
    """

    key: str
    output_path: str
    content: bytes
    dependencies: frozenset[str]


@dataclass
class BuildReport:
    """Outcome of one build.

    Attributes:
        mode: Full or incremental (after any escalation).
        rendered: Keys of the artifacts produced by this build.
        written: Output paths whose bytes changed on disk.
        removed: Output paths deleted from the output directory.
        skipped: Artifacts produced with bytes identical to the existing file.
        failures: Entity-scoped failures.
        warnings: Non-blocking notices.
        duration: Wall time in seconds.
        reason: Why an incremental build escalated to a full one.
    """

    mode: BuildMode
    rendered: list[str] = field(default_factory=list)
    written: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    skipped: int = 0
    failures: list[BuildFailure] = field(default_factory=list)
    warnings: list[BuildWarning] = field(default_factory=list)
    duration: float = 0.0
    reason: str = ""

    @property
    def ok(self) -> bool:
        return not self.failures

    def summary(self) -> str:
        return f"Built {len(self.rendered)} artifacts ({len(self.failures)} failures)"


PhaseListener = Callable[[BuildPhase], None]


class SiteBuilder:
    """Builds one project, fully or incrementally.

    A builder keeps state between builds: the parsed-document cache (keyed by
    file fingerprint) and the dependency tracker, which is also persisted to
    ``<cache_dir>/deps.json``. Builds on one builder never overlap.

    Attributes:
        project_root: Project directory holding gorgon.yaml.
        include_drafts: Whether ``draft: true`` documents are built.
        config: Site configuration.
        store: Content store for the project.
        tracker: Dependency tracker.
        phase: Current pipeline phase.
    """

    def __init__(
        self,
        project_root: Path,
        include_drafts: bool = False,
        config: SiteConfig | None = None,
        renderer_factory: RendererFactory | None = None,
        phase_listener: PhaseListener | None = None,
        feeds: FeedRegistry | None = None,
    ):
        self.project_root = Path(project_root)
        self.include_drafts = include_drafts
        self.config = config or load_config(self.project_root)
        self.store = ContentStore(self.config)
        self.renderer_factory = renderer_factory or TemplateRenderer
        self.phase_listener = phase_listener
        self.feeds = feeds or create_default_feed_registry()
        self.tracker = DependencyTracker.load(
            self.state_path, threshold=self.config.full_rebuild_threshold
        )
        self.phase = BuildPhase.IDLE
        self.graph: ContentGraph | None = None
        self._documents: dict[str, Document] = {}
        self._lock = threading.Lock()

    @property
    def state_path(self) -> Path:
        return self.config.cache_path / STATE_FILENAME

    # -- public API ----------------------------------------------------

    def full_build(self) -> BuildReport:
        """Render and write every artifact.

        Raises:
            GorgonError: A fatal error; nothing was written.
        """
        with self._lock:
            self._documents.clear()
            return self._guarded(BuildMode.FULL, ())

    def incremental_build(self, changed_paths: Iterable[str | Path] | None = None) -> BuildReport:
        """Rebuild only what changed since the previous build.

        Args:
            changed_paths: Paths known to have changed (absolute or
                project-relative). They are merged with the changes found
                by comparing source snapshots.

        Raises:
            GorgonError: A fatal error; nothing was written.
        """
        with self._lock:
            return self._guarded(BuildMode.INCREMENTAL, changed_paths or ())

    # -- pipeline ------------------------------------------------------

    def _guarded(self, mode: BuildMode, changed_paths: Iterable[str | Path]) -> BuildReport:
        try:
            return self._run(mode, changed_paths)
        except GorgonError as exc:
            logger.error("Build aborted: %s", exc)
            raise
        finally:
            self._set_phase(BuildPhase.IDLE)

    def _run(self, mode: BuildMode, changed_paths: Iterable[str | Path]) -> BuildReport:
        started = time.monotonic()
        deadline = started + self.config.build_timeout
        report = BuildReport(mode=mode)

        self._set_phase(BuildPhase.DISCOVERING)
        snapshot = self.store.snapshot()
        changed: set[str] = set()
        structural = ""
        if mode is BuildMode.INCREMENTAL:
            diff = diff_snapshots(self.tracker.snapshot, snapshot)
            changed = set(diff.changed) | self._normalize(changed_paths)
            structural = self._structural_change(diff.added | diff.removed)
            if CONFIG_FILENAME in changed:
                self._reload_config()
                snapshot = self.store.snapshot()
        content_paths = self.store.content_paths()
        static_paths = self.store.static_paths()
        self._check_deadline(deadline)

        self._set_phase(BuildPhase.PARSING)
        documents, parse_failures = self._parse(content_paths, snapshot, changed)
        site = self.store.site_data()
        layouts = LayoutRegistry.load(self.store)
        layouts.validate()
        self._check_deadline(deadline)

        self._set_phase(BuildPhase.GRAPH_BUILDING)
        static_outputs = {self._static_output(path): path for path in static_paths}
        reserved = dict(static_outputs)
        reserved.update(self.feeds.reserved_outputs(str(site.values.get("url") or "")))
        result = GraphBuilder(
            self.config,
            layouts.names,
            include_drafts=self.include_drafts,
            reserved_outputs=reserved,
            site=site,
        ).build(documents)
        graph = result.graph
        feeds = {feed.key: feed for feed in self.feeds.generate_all(graph, self.config)}
        for warning in result.warnings:
            logger.warning("%s", warning)
        report.warnings.extend(result.warnings)

        failed_keys: set[str] = set()
        for failure in parse_failures:
            self._fail(report, failed_keys, failure.path, failure.error)
        for error in result.failures:
            self._fail(report, failed_keys, error.source_path or "", error)

        current_keys = set(graph.entities) | set(static_outputs.values()) | set(feeds)
        targets = current_keys
        if mode is BuildMode.INCREMENTAL:
            affected = self.tracker.affected_artifacts(changed, graph)
            if structural and not affected.full_rebuild:
                affected = AffectedSet(full_rebuild=True, reason=structural)
            if affected.full_rebuild:
                mode = report.mode = BuildMode.FULL
                report.reason = affected.reason
                logger.info("Escalating to a full build: %s", affected.reason)
            else:
                known = set(self.tracker.artifacts())
                targets = (set(affected.keys) | (current_keys - known)) & current_keys
        self._check_deadline(deadline)

        self._set_phase(BuildPhase.RENDERING)
        renderer = self.renderer_factory(self.store, layouts, graph, self._documents)
        artifacts: list[BuildArtifact] = []
        jobs: dict[Future, str] = {}
        static_by_key = {path: output for output, path in static_outputs.items()}
        with _Pool(self.config.workers) as pool:
            for key in sorted(targets):
                if key in graph.entities:
                    jobs[pool.submit(self._render_entity, renderer, graph.entity(key))] = key
                elif key in static_by_key:
                    jobs[pool.submit(self._copy_static, key, static_by_key[key])] = key
                else:
                    feed = feeds[key]
                    artifacts.append(
                        BuildArtifact(feed.key, feed.output_path, feed.content, feed.dependencies)
                    )
            for key, future in self._completed(jobs, deadline, pool):
                try:
                    artifact, unused = future.result()
                except EntityError as exc:
                    self._fail(report, failed_keys, key, exc)
                    continue
                artifacts.append(artifact)
                for name in unused:
                    warning = BuildWarning(key, f"metadata key {name!r} is not used by any template")
                    logger.warning("%s", warning)
                    report.warnings.append(warning)
            artifacts.sort(key=lambda a: a.key)

            self._set_phase(BuildPhase.WRITING)
            output_root = self.config.output_path
            write_jobs = {pool.submit(self._write, output_root, a): a for a in artifacts}
            by_key = {a.key: a for a in artifacts}
            for key, future in self._completed(
                {f: a.key for f, a in write_jobs.items()}, deadline, pool
            ):
                artifact = by_key[key]
                try:
                    changed_on_disk = future.result()
                except OSError as exc:
                    error = WriteError(
                        f"cannot write {artifact.output_path}: {exc}",
                        source_path=key,
                        original_error=exc,
                    )
                    self._fail(report, failed_keys, key, error)
                    continue
                report.rendered.append(key)
                if changed_on_disk:
                    report.written.append(artifact.output_path)
                else:
                    report.skipped += 1

        rendered = set(report.rendered)
        succeeded = {a.key: a for a in artifacts if a.key in rendered}
        claimed = set(graph.output_paths()) | set(static_outputs) | {
            feed.output_path for feed in feeds.values()
        }
        report.removed = self._remove_stale(
            mode, output_root, current_keys, failed_keys, succeeded, claimed
        )
        for key, artifact in succeeded.items():
            self.tracker.record(key, artifact.output_path, artifact.dependencies)
        for key in failed_keys:
            self.tracker.mark_failed(key)
        for key in self.tracker.failed() - failed_keys - current_keys:
            self.tracker.forget(key)
        self.tracker.remember_signatures(graph)
        self.tracker.snapshot = snapshot
        self.tracker.save(self.state_path)
        self.graph = graph

        report.rendered.sort()
        report.written.sort()
        report.removed.sort()
        report.duration = time.monotonic() - started
        logger.info(
            "%s build: %d rendered, %d written, %d unchanged, %d removed, %d failures in %.2fs",
            report.mode.value.capitalize(),
            len(report.rendered),
            len(report.written),
            report.skipped,
            len(report.removed),
            len(report.failures),
            report.duration,
        )
        return report

    # -- phases --------------------------------------------------------

    def _parse(
        self,
        content_paths: list[str],
        snapshot: dict[str, Fingerprint],
        changed: set[str],
    ) -> tuple[list[Document], list[DocumentFailure]]:
        """Parse documents, reusing cached ones whose fingerprint is unchanged."""
        if not self._documents:
            documents, failures = self.store.documents()
            self._documents = {document.path: document for document in documents}
            return documents, failures
        documents: list[Document] = []
        failures: list[DocumentFailure] = []
        cache: dict[str, Document] = {}
        reused = 0
        for path in content_paths:
            cached = self._documents.get(path)
            if (
                cached is not None
                and path not in changed
                and tuple(cached.fingerprint) == tuple(snapshot.get(path, ()))
            ):
                cache[path] = cached
                documents.append(cached)
                reused += 1
                continue
            try:
                document = self.store.read_document(path)
            except EntityError as exc:
                failures.append(DocumentFailure(path, exc))
                continue
            except FileNotFoundError:
                # Deleted between discovery and reading.
                continue
            cache[path] = document
            documents.append(document)
        self._documents = cache
        logger.debug("Parsed %d documents (%d cached)", len(documents) - reused, reused)
        return documents, failures

    def _render_entity(
        self, renderer, entity: ContentEntity
    ) -> tuple[BuildArtifact, list[str]]:
        result = renderer.render(entity)
        unused = [key for key in entity.custom_keys if key not in result.used_keys]
        artifact = BuildArtifact(
            key=entity.key,
            output_path=entity.output_path,
            content=result.html.encode("utf-8"),
            dependencies=result.dependencies,
        )
        return artifact, unused

    def _copy_static(self, source: str, output_path: str) -> tuple[BuildArtifact, list[str]]:
        artifact = BuildArtifact(
            key=source,
            output_path=output_path,
            content=self.store.read_bytes(source),
            dependencies=frozenset({source}),
        )
        return artifact, []

    @staticmethod
    def _write(output_root: Path, artifact: BuildArtifact) -> bool:
        """Write one artifact; returns False when the file already matches."""
        target = output_root / artifact.output_path
        if target.is_file() and target.read_bytes() == artifact.content:
            return False
        atomic_write_bytes(target, artifact.content)
        return True

    def _remove_stale(
        self,
        mode: BuildMode,
        output_root: Path,
        current_keys: set[str],
        failed_keys: set[str],
        succeeded: dict[str, BuildArtifact],
        claimed: set[str],
    ) -> list[str]:
        previous = self.tracker.outputs()
        stale: set[str] = set()
        for key, output_path in previous.items():
            if key in failed_keys:
                continue
            if key not in current_keys:
                self.tracker.forget(key)
                stale.add(output_path)
            elif key in succeeded and succeeded[key].output_path != output_path:
                stale.add(output_path)
        if mode is BuildMode.FULL and output_root.is_dir():
            keep = claimed | {previous[k] for k in failed_keys if k in previous}
            for path in output_root.rglob("*"):
                if path.is_file():
                    rel = path.relative_to(output_root).as_posix()
                    if rel not in keep:
                        stale.add(rel)
        removed = []
        for rel in sorted(stale - claimed):
            target = output_root / rel
            if target.is_file():
                target.unlink()
                prune_empty_dirs(target.parent, output_root)
                removed.append(rel)
        return removed

    # -- helpers -------------------------------------------------------

    def _set_phase(self, phase: BuildPhase) -> None:
        if phase is self.phase:
            return
        logger.debug("Phase %s -> %s", self.phase.value, phase.value)
        self.phase = phase
        if self.phase_listener is not None:
            self.phase_listener(phase)

    def _check_deadline(self, deadline: float) -> None:
        if time.monotonic() > deadline:
            raise BuildTimeoutError(self.config.build_timeout)

    def _completed(
        self, jobs: dict[Future, str], deadline: float, pool: _Pool
    ) -> Iterator[tuple[str, Future]]:
        remaining = max(0.0, deadline - time.monotonic())
        try:
            for future in as_completed(jobs, timeout=remaining):
                yield jobs[future], future
        except FuturesTimeoutError as exc:
            pool.abandon()
            raise BuildTimeoutError(self.config.build_timeout) from exc

    def _fail(self, report: BuildReport, failed_keys: set[str], key: str, error: GorgonError):
        failure = BuildFailure.from_error(error, fallback_path=key)
        logger.error("%s", failure)
        report.failures.append(failure)
        failed_keys.add(key)

    def _normalize(self, paths: Iterable[str | Path]) -> set[str]:
        normalized = set()
        for path in paths:
            candidate = Path(path)
            if candidate.is_absolute():
                try:
                    candidate = candidate.relative_to(self.project_root)
                except ValueError:
                    continue
            normalized.add(candidate.as_posix())
        return normalized

    def _structural_change(self, added_or_removed: Iterable[str]) -> str:
        """Reason for a full rebuild when files that decide lookups come or go.

        Which data keys exist, which layout a page falls back to and which
        partials an include resolves to are not recorded per artifact.
        """
        prefixes = {
            f"{self.config.data_dir}/": "data files added or removed",
            f"{self.config.relative(self.config.layouts_path)}/": "layouts added or removed",
            f"{self.config.relative(self.config.partials_path)}/": "partials added or removed",
        }
        for path in sorted(added_or_removed):
            for prefix, reason in prefixes.items():
                if path.startswith(prefix):
                    return reason
        return ""

    def _reload_config(self) -> None:
        self.config = load_config(self.project_root)
        self.store = ContentStore(self.config)
        self.tracker.threshold = self.config.full_rebuild_threshold
        self._documents.clear()
        logger.info("Reloaded %s", CONFIG_FILENAME)

    def _static_output(self, source: str) -> str:
        prefix = f"{self.config.relative(self.config.static_path)}/"
        return source[len(prefix) :]


class _Pool:
    """ThreadPoolExecutor that can be abandoned when a build times out."""

    def __init__(self, workers: int):
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="gorgon")
        self._abandoned = False

    def submit(self, fn, *args) -> Future:
        return self._executor.submit(fn, *args)

    def abandon(self) -> None:
        self._abandoned = True
        self._executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> _Pool:
        return self

    def __exit__(self, *exc_info) -> None:
        if not self._abandoned:
            self._executor.shutdown(wait=True)


def build_site(project_root: Path, include_drafts: bool = False) -> BuildReport:
    """Build the entire site once.

    Args:
        project_root: Root directory of the project.
        include_drafts: Whether to include draft documents.

    Returns:
        BuildReport for the full build.
    """
    return SiteBuilder(project_root, include_drafts=include_drafts).full_build()


def clean_site(project_root: Path) -> list[Path]:
    """Remove the output directory and the build cache.

    Returns:
        The directories that existed and were removed.
    """
    config = load_config(Path(project_root))
    removed = []
    for directory in (config.output_path, config.cache_path):
        if remove_tree(directory):
            removed.append(directory)
    return removed
