from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from helpers import POST_LAYOUT, post, write_files

from gorgon.config import SiteConfig, load_config
from gorgon.store import ContentStore


@pytest.fixture
def make_project(tmp_path):
    """Create a project tree under tmp_path and return its root."""

    def _make(files: dict[str, str] | None = None, config: dict | None = None) -> Path:
        root = tmp_path / "project"
        (root / "site").mkdir(parents=True, exist_ok=True)
        write_files(root, files or {})
        if config is not None:
            (root / "gorgon.yaml").write_text(yaml.safe_dump(config), encoding="utf-8")
        return root

    return _make


@pytest.fixture
def blog(make_project):
    """A small blog: two dated posts, an about page and a default layout."""
    return make_project(
        {
            "site/_layouts/default.html": POST_LAYOUT,
            "site/posts/2025-01-01-a.md": post("A", "2025-01-01", "First post."),
            "site/posts/2025-02-01-b.md": post("B", "2025-02-01", "Second post."),
            "site/about.md": "# About\n\nAbout this site.\n",
        }
    )


@pytest.fixture
def store_for():
    def _store(root: Path) -> ContentStore:
        return ContentStore(load_config(root))

    return _store


@pytest.fixture
def default_config(tmp_path) -> SiteConfig:
    return SiteConfig(project_root=tmp_path)
