import pytest

from gorgon.errors import ConfigError, MalformedFrontMatterError, SourceRootError
from gorgon.store import DocumentKind, diff_snapshots


def test_documents_are_discovered_in_path_order(blog, store_for):
    store = store_for(blog)
    documents, failures = store.documents()
    assert failures == []
    assert [d.path for d in documents] == [
        "site/about.md",
        "site/posts/2025-01-01-a.md",
        "site/posts/2025-02-01-b.md",
    ]
    about, first, _ = documents
    assert about.kind is DocumentKind.PAGE
    assert about.collection is None
    assert first.kind is DocumentKind.POST
    assert first.collection == "posts"
    assert first.metadata["title"] == "A"
    assert first.body == "First post.\n"
    assert first.fingerprint[1] > 0


def test_underscore_directories_are_not_content(make_project, store_for):
    root = make_project(
        {
            "site/_layouts/default.html": "{{ page_content }}",
            "site/_partials/nav.html": "<nav></nav>",
            "site/_drafts/idea.md": "idea",
            "site/index.md": "home",
            "site/style.css": "body {}",
        }
    )
    assert store_for(root).content_paths() == ["site/index.md"]


def test_missing_source_root_is_fatal(tmp_path, store_for):
    with pytest.raises(SourceRootError) as excinfo:
        store_for(tmp_path).documents()
    assert excinfo.value.fatal


def test_front_matter_failures_are_collected(make_project, store_for):
    root = make_project(
        {
            "site/broken.md": "---\ntitle: never closed\n",
            "site/fine.md": "fine",
        }
    )
    documents, failures = store_for(root).documents()
    assert [d.path for d in documents] == ["site/fine.md"]
    assert len(failures) == 1
    assert failures[0].path == "site/broken.md"
    assert isinstance(failures[0].error, MalformedFrontMatterError)


def test_site_data_merges_config_and_data_files(make_project, store_for):
    root = make_project(
        {
            "data/site.yaml": "title: From data\nurl: https://example.com\n",
            "data/nav.yaml": "- home\n- about\n",
        },
        config={"data": {"title": "From config", "author": "Sam"}},
    )
    data = store_for(root).site_data()
    assert data.values == {
        "title": "From data",
        "author": "Sam",
        "url": "https://example.com",
        "nav": ["home", "about"],
    }
    assert data.sources == {
        "title": "data/site.yaml",
        "author": "gorgon.yaml",
        "url": "data/site.yaml",
        "nav": "data/nav.yaml",
    }


def test_invalid_data_file_is_config_error(make_project, store_for):
    root = make_project({"data/site.yaml": "- not\n- a mapping\n"})
    with pytest.raises(ConfigError):
        store_for(root).site_data()


def test_snapshot_covers_inputs_but_not_outputs(make_project, store_for):
    root = make_project(
        {
            "site/index.md": "home",
            "data/site.yaml": "title: T\n",
            "static/app.css": "body {}",
            "output/index.html": "old",
        },
        config={},
    )
    snapshot = store_for(root).snapshot()
    assert sorted(snapshot) == [
        "data/site.yaml",
        "gorgon.yaml",
        "site/index.md",
        "static/app.css",
    ]


def test_diff_snapshots():
    old = {"a": (1, 1), "b": (1, 1), "c": (1, 1)}
    new = {"a": (1, 1), "b": (2, 1), "d": (1, 1)}
    diff = diff_snapshots(old, new)
    assert diff.added == {"d"}
    assert diff.removed == {"c"}
    assert diff.modified == {"b"}
    assert diff.changed == {"b", "c", "d"}
    assert diff
    assert not diff_snapshots(old, old)
