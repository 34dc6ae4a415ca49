import json

import pytest

from gorgon.dependencies import FORMAT_VERSION, DependencyTracker


class FakeGraph:
    def __init__(self, signatures=None, entities=()):
        self._signatures = signatures or {}
        self.entities = {key: None for key in entities}

    def signature(self, key):
        return self._signatures.get(key)


@pytest.fixture
def tracker():
    tracker = DependencyTracker(threshold=0.5)
    tracker.record("site/a.md", "a/index.html", ["site/a.md", "site/_layouts/post.html"])
    tracker.record("site/b.md", "b/index.html", ["site/b.md", "@neighbors/site/b.md"])
    tracker.record("site/c.md", "c/index.html", ["site/c.md"])
    tracker.record("site/index.md", "index.html", ["site/index.md", "@collection/posts"])
    return tracker


def test_empty_tracker_requires_full_build():
    affected = DependencyTracker().affected_artifacts(["site/a.md"])
    assert affected.full_rebuild
    assert affected.reason == "no previous build state"


def test_changed_source_affects_its_dependents(tracker):
    affected = tracker.affected_artifacts(["site/_layouts/post.html"])
    assert not affected.full_rebuild
    assert affected.keys == {"site/a.md"}


def test_unrelated_change_affects_nothing(tracker):
    assert tracker.affected_artifacts(["static/logo.png"]).keys == frozenset()


def test_config_change_escalates(tracker):
    affected = tracker.affected_artifacts(["gorgon.yaml"])
    assert affected.full_rebuild
    assert "gorgon.yaml" in affected.reason


def test_threshold_is_strict(tracker):
    tracker.record("site/d.md", "d/index.html", ["site/d.md", "site/_partials/nav.html"])
    tracker.record("site/e.md", "e/index.html", ["site/e.md", "site/_partials/nav.html"])
    tracker.record("site/f.md", "f/index.html", ["site/f.md", "site/_partials/nav.html"])
    # 3 of 7 artifacts stays under the threshold.
    assert not tracker.affected_artifacts(["site/_partials/nav.html"]).full_rebuild
    tracker.record("site/c.md", "c/index.html", ["site/c.md", "site/_partials/nav.html"])
    affected = tracker.affected_artifacts(["site/_partials/nav.html"])
    assert affected.full_rebuild
    assert "4 of 7" in affected.reason


def test_single_artifact_never_escalates():
    tracker = DependencyTracker(threshold=0.5)
    tracker.record("site/a.md", "a/index.html", ["site/a.md"])
    assert tracker.affected_artifacts(["site/a.md"]).keys == {"site/a.md"}


def test_feeds_do_not_count_towards_threshold():
    tracker = DependencyTracker(threshold=0.5)
    tracker.record("site/posts/a.md", "posts/a/index.html", ["site/posts/a.md"])
    tracker.record("site/about.md", "about/index.html", ["site/about.md"])
    tracker.record("@feed/rss.xml", "rss.xml", ["site/posts/a.md"])
    tracker.record("@feed/sitemap.xml", "sitemap.xml", ["site/posts/a.md", "site/about.md"])
    affected = tracker.affected_artifacts(["site/posts/a.md"])
    assert not affected.full_rebuild
    assert affected.keys == {"site/posts/a.md", "@feed/rss.xml", "@feed/sitemap.xml"}


def test_virtual_keys_compare_signatures(tracker):
    tracker.remember_signatures(
        FakeGraph({"@neighbors/site/b.md": "n1", "@collection/posts": "c1"})
    )
    assert tracker.signature("@collection/posts") == "c1"
    entities = ["site/a.md", "site/b.md", "site/c.md", "site/index.md"]
    unchanged = FakeGraph({"@neighbors/site/b.md": "n1", "@collection/posts": "c1"}, entities)
    assert tracker.affected_artifacts([], unchanged).keys == frozenset()
    moved = FakeGraph({"@neighbors/site/b.md": "n2", "@collection/posts": "c1"}, entities)
    assert tracker.affected_artifacts([], moved).keys == {"site/b.md"}


def test_new_entities_and_failures_are_included(tracker):
    tracker.mark_failed("site/broken.md")
    tracker.mark_failed("site/gone.md")
    graph = FakeGraph(entities=["site/a.md", "site/new.md", "site/broken.md"])
    affected = tracker.affected_artifacts([], graph)
    assert affected.keys == {"site/new.md", "site/broken.md"}


def test_mark_failed_keeps_previous_record(tracker):
    tracker.mark_failed("site/a.md")
    assert "site/a.md" in tracker
    assert tracker.outputs()["site/a.md"] == "a/index.html"
    tracker.record("site/a.md", "a/index.html", ["site/a.md"])
    assert tracker.failed() == frozenset()


def test_forget_drops_everything(tracker):
    tracker.mark_failed("site/a.md")
    tracker.forget("site/a.md")
    assert "site/a.md" not in tracker
    assert "site/a.md" not in tracker.failed()
    assert tracker.dependents("site/_layouts/post.html") == set()


def test_save_and_load_round_trip(tracker, tmp_path):
    tracker.mark_failed("site/x.md")
    tracker.snapshot = {"site/a.md": (10, 123)}
    tracker.remember_signatures(FakeGraph({"@collection/posts": "c1"}))
    path = tmp_path / "cache" / "deps.json"
    tracker.save(path)

    loaded = DependencyTracker.load(path, threshold=0.25)
    assert loaded.threshold == 0.25
    assert loaded.artifacts() == tracker.artifacts()
    assert loaded.dependencies("site/b.md") == {"site/b.md", "@neighbors/site/b.md"}
    assert loaded.failed() == {"site/x.md"}
    assert loaded.snapshot == {"site/a.md": (10, 123)}
    assert loaded.signature("@collection/posts") == "c1"
    assert loaded.signature("@neighbors/site/b.md") is None


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        json.dumps({"version": FORMAT_VERSION + 1, "artifacts": {}}),
        json.dumps({"version": FORMAT_VERSION, "artifacts": {"a": {"output": "x"}}}),
    ],
)
def test_unusable_state_loads_empty(tmp_path, content):
    path = tmp_path / "deps.json"
    path.write_text(content, encoding="utf-8")
    assert DependencyTracker.load(path).is_empty


def test_missing_state_loads_empty(tmp_path):
    assert DependencyTracker.load(tmp_path / "nope.json").is_empty
