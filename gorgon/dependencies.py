"""Dependency tracking for incremental builds.

The tracker remembers, for every artifact the last build produced, where it
was written and which inputs it was derived from. Inputs are dependency keys:
project-relative file paths, or virtual keys (``@collection/posts``,
``@neighbors/<key>``, ...) naming graph-derived inputs.

Given the paths changed since the last build and the new content graph, the
tracker answers which artifacts must be rebuilt. Virtual keys are compared by
signature: the digest remembered from the previous graph against the digest
in the new one.

The state is persisted as JSON in the cache directory, together with the
source snapshot it was built from, so ``gorgon build --incremental`` works
across processes. One orchestrator owns one tracker; nothing is global.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from .config import CONFIG_FILENAME
from .feeds import FEED_KEY_PREFIX
from .graph import ContentGraph, is_virtual
from .logging import get_logger
from .store import Fingerprint
from .utils import atomic_write_bytes

logger = get_logger("dependencies")

FORMAT_VERSION = 1
STATE_FILENAME = "deps.json"


@dataclass(frozen=True)
class AffectedSet:
    """Artifacts to rebuild after a change.

    Attributes:
        keys: Artifact keys that must be rebuilt (ignored for full rebuilds).
        full_rebuild: Whether the whole site must be rebuilt instead.
        reason: Why a full rebuild was chosen.
    """

    keys: frozenset[str] = frozenset()
    full_rebuild: bool = False
    reason: str = ""


class DependencyTracker:
    """Maps artifact keys to their output path and dependency keys.

    Attributes:
        threshold: Fraction of all non-feed artifacts a single changed input may feed
            before an incremental build escalates to a full rebuild.
        snapshot: Source fingerprints the recorded state was built from.
    """

    def __init__(self, threshold: float = 0.5):
        self.threshold = threshold
        self.snapshot: dict[str, Fingerprint] = {}
        self._dependencies: dict[str, frozenset[str]] = {}
        self._outputs: dict[str, str] = {}
        self._failed: set[str] = set()
        self._signatures: dict[str, str | None] = {}

    def __len__(self) -> int:
        return len(self._dependencies)

    def __contains__(self, key: object) -> bool:
        return key in self._dependencies

    @property
    def is_empty(self) -> bool:
        return not self._dependencies and not self._failed

    # -- recording -----------------------------------------------------

    def record(self, key: str, output_path: str, dependencies: Iterable[str]) -> None:
        """Record a successfully built artifact, replacing any previous entry."""
        self._dependencies[key] = frozenset(dependencies)
        self._outputs[key] = output_path
        self._failed.discard(key)

    def forget(self, key: str) -> None:
        """Drop every trace of ``key`` (the entity no longer exists)."""
        self._dependencies.pop(key, None)
        self._outputs.pop(key, None)
        self._failed.discard(key)

    def mark_failed(self, key: str) -> None:
        """Remember that ``key`` failed so the next build retries it.

        The last good record, if any, is kept: its artifact stays on disk.
        """
        self._failed.add(key)

    # -- queries -------------------------------------------------------

    def artifacts(self) -> list[str]:
        return sorted(self._dependencies)

    def dependencies(self, key: str) -> frozenset[str]:
        return self._dependencies.get(key, frozenset())

    def outputs(self) -> dict[str, str]:
        """Artifact key -> output path, relative to the output directory."""
        return dict(sorted(self._outputs.items()))

    def failed(self) -> frozenset[str]:
        return frozenset(self._failed)

    def dependents(self, dependency: str) -> set[str]:
        """Artifact keys that depend on ``dependency``."""
        return {key for key, deps in self._dependencies.items() if dependency in deps}

    def virtual_keys(self) -> set[str]:
        keys: set[str] = set()
        for deps in self._dependencies.values():
            keys.update(dep for dep in deps if is_virtual(dep))
        return keys

    def remember_signatures(self, graph: ContentGraph) -> None:
        """Store the signature of every virtual key an artifact depends on."""
        self._signatures = {key: graph.signature(key) for key in sorted(self.virtual_keys())}

    def signature(self, virtual_key: str) -> str | None:
        return self._signatures.get(virtual_key)

    def affected_artifacts(
        self, changed_paths: Iterable[str], graph: ContentGraph | None = None
    ) -> AffectedSet:
        """Decide what to rebuild after ``changed_paths`` changed.

        Args:
            changed_paths: Project-relative paths added, removed or modified.
            graph: The content graph rebuilt from the changed sources. When
                given, indirect effects (collection membership, neighbours)
                and new entities are included.

        Returns:
            AffectedSet with the artifact keys to rebuild, or with
            ``full_rebuild`` set and a reason.
        """
        changed = set(changed_paths)
        if self.is_empty:
            return AffectedSet(full_rebuild=True, reason="no previous build state")
        if CONFIG_FILENAME in changed:
            return AffectedSet(full_rebuild=True, reason=f"{CONFIG_FILENAME} changed")

        # Feed artifacts are left out of the threshold count.
        total = sum(1 for key in self._dependencies if not key.startswith(FEED_KEY_PREFIX))
        affected: set[str] = set()
        for path in sorted(changed):
            dependents = self.dependents(path)
            counted = sum(1 for key in dependents if not key.startswith(FEED_KEY_PREFIX))
            if total > 1 and counted > self.threshold * total:
                return AffectedSet(
                    full_rebuild=True,
                    reason=f"{path} feeds {counted} of {total} artifacts",
                )
            affected |= dependents

        if graph is not None:
            for virtual_key, old_signature in self._signatures.items():
                if graph.signature(virtual_key) != old_signature:
                    affected |= self.dependents(virtual_key)
            affected.update(key for key in graph.entities if key not in self._dependencies)
            affected.update(key for key in self._failed if key in graph.entities)
        else:
            affected |= self._failed

        return AffectedSet(keys=frozenset(affected))

    # -- persistence ---------------------------------------------------

    def to_dict(self) -> dict:
        return {
            "version": FORMAT_VERSION,
            "artifacts": {
                key: {"output": self._outputs[key], "dependencies": sorted(deps)}
                for key, deps in sorted(self._dependencies.items())
            },
            "failed": sorted(self._failed),
            "signatures": dict(sorted(self._signatures.items())),
            "snapshot": {path: list(fp) for path, fp in sorted(self.snapshot.items())},
        }

    def save(self, path: Path) -> None:
        """Write the tracker state to ``path`` as JSON."""
        payload = json.dumps(self.to_dict(), indent=2, sort_keys=True) + "\n"
        atomic_write_bytes(Path(path), payload.encode("utf-8"))
        logger.debug("Saved dependency map for %d artifacts to %s", len(self), path)

    @classmethod
    def load(cls, path: Path, threshold: float = 0.5) -> DependencyTracker:
        """Read tracker state from ``path``.

        A missing, unreadable or incompatible file yields an empty tracker,
        which makes the next build a full one.
        """
        tracker = cls(threshold=threshold)
        path = Path(path)
        if not path.exists():
            return tracker
        try:
            with open(path, encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable dependency map %s: %s", path, exc)
            return tracker
        if not isinstance(raw, dict) or raw.get("version") != FORMAT_VERSION:
            logger.info("Ignoring dependency map %s with an unsupported format", path)
            return tracker
        try:
            for key, entry in raw.get("artifacts", {}).items():
                tracker.record(key, entry["output"], entry["dependencies"])
            tracker._failed = set(raw.get("failed", []))
            tracker._signatures = dict(raw.get("signatures", {}))
            tracker.snapshot = {
                p: (int(fp[0]), int(fp[1])) for p, fp in raw.get("snapshot", {}).items()
            }
        except (KeyError, TypeError, ValueError, IndexError) as exc:
            logger.warning("Ignoring corrupt dependency map %s: %s", path, exc)
            return cls(threshold=threshold)
        return tracker
