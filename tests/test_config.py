import pytest

from gorgon.config import CollectionConfig, load_config
from gorgon.errors import ConfigError, ErrorKind


def test_missing_config_uses_defaults(tmp_path):
    config = load_config(tmp_path)
    assert config.source_dir == "site"
    assert config.output_path == tmp_path / "output"
    assert config.layouts_path == tmp_path / "site" / "_layouts"
    assert config.collections == (CollectionConfig(name="posts", source="posts"),)
    assert config.permalink == "/{collection}/{slug}/"
    assert 1 <= config.workers <= 8


def test_empty_config_file_uses_defaults(tmp_path):
    (tmp_path / "gorgon.yaml").write_text("", encoding="utf-8")
    assert load_config(tmp_path).output_dir == "output"


def test_config_values_are_applied(tmp_path):
    (tmp_path / "gorgon.yaml").write_text(
        "output_dir: public\n"
        "permalink: /{year}/{slug}/\n"
        "workers: 2\n"
        "collections:\n"
        "  notes:\n"
        "    source: journal\n"
        "    layout: note\n"
        "    paginate: 5\n"
        "data:\n"
        "  title: Example\n",
        encoding="utf-8",
    )
    config = load_config(tmp_path)
    assert config.output_dir == "public"
    assert config.permalink == "/{year}/{slug}/"
    assert config.workers == 2
    notes = config.collection("notes")
    assert notes is not None
    assert notes.source == "journal"
    assert notes.layout == "note"
    assert notes.paginate == 5
    assert notes.list_layout == "list"
    assert config.collection("posts") is None
    assert config.data == {"title": "Example"}


@pytest.mark.parametrize(
    "content",
    [
        "- a list\n",
        "unknown_key: 1\n",
        "permalink: /{nope}/\n",
        "workers: 0\n",
        "full_rebuild_threshold: 2\n",
        "data: [1, 2]\n",
        "collections:\n  posts:\n    paginate: -1\n",
        "collections:\n  posts:\n    paged_permalink: /{collection}/more/\n",
        "collections:\n  a:\n    source: x\n  b:\n    source: x\n",
        "title: [unclosed\n",
    ],
)
def test_invalid_config_raises_config_error(tmp_path, content):
    (tmp_path / "gorgon.yaml").write_text(content, encoding="utf-8")
    with pytest.raises(ConfigError) as excinfo:
        load_config(tmp_path)
    assert excinfo.value.kind is ErrorKind.CONFIG
    assert excinfo.value.fatal


def test_relative_paths_are_posix(tmp_path):
    config = load_config(tmp_path)
    assert config.relative(tmp_path / "site" / "posts" / "a.md") == "site/posts/a.md"
