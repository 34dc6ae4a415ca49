import pytest

from gorgon.errors import (
    CircularLayoutError,
    ErrorKind,
    MalformedFrontMatterError,
    MissingLayoutError,
)
from gorgon.layouts import LayoutRegistry


def test_chain_follows_front_matter_parents(make_project, store_for):
    root = make_project(
        {
            "site/_layouts/base.html": "<html>{{ page_content }}</html>",
            "site/_layouts/post.html": "---\nlayout: base\n---\n<article>{{ page_content }}</article>",
        }
    )
    registry = LayoutRegistry.load(store_for(root))
    assert registry.names == {"base", "post"}
    chain = registry.chain("post")
    assert [layout.name for layout in chain] == ["post", "base"]
    assert chain[0].source == "<article>{{ page_content }}</article>"
    assert chain[0].path == "site/_layouts/post.html"


def test_cycle_is_detected_by_validate(make_project, store_for):
    root = make_project(
        {
            "site/_layouts/a.html": "---\nlayout: b\n---\nA {{ page_content }}",
            "site/_layouts/b.html": "---\nlayout: a\n---\nB {{ page_content }}",
        }
    )
    registry = LayoutRegistry.load(store_for(root))
    with pytest.raises(CircularLayoutError) as excinfo:
        registry.validate()
    assert excinfo.value.kind is ErrorKind.CIRCULAR_LAYOUT
    assert excinfo.value.cycle == ["a", "b", "a"]
    assert "a -> b -> a" in str(excinfo.value)
    with pytest.raises(CircularLayoutError):
        registry.chain("b")


def test_self_reference_is_a_cycle(make_project, store_for):
    root = make_project({"site/_layouts/loop.html": "---\nlayout: loop\n---\n{{ page_content }}"})
    with pytest.raises(CircularLayoutError) as excinfo:
        LayoutRegistry.load(store_for(root)).validate()
    assert excinfo.value.cycle == ["loop", "loop"]


def test_missing_parent_is_reported_with_child(make_project, store_for):
    root = make_project({"site/_layouts/post.html": "---\nlayout: gone\n---\n{{ page_content }}"})
    registry = LayoutRegistry.load(store_for(root))
    registry.validate()
    with pytest.raises(MissingLayoutError) as excinfo:
        registry.chain("post")
    assert excinfo.value.source_path == "site/_layouts/post.html"
    assert "gone" in excinfo.value.message


def test_suffix_priority_and_nested_names(make_project, store_for):
    root = make_project(
        {
            "site/_layouts/page.html": "plain",
            "site/_layouts/page.html.jinja": "jinja",
            "site/_layouts/docs/guide.html": "guide",
        }
    )
    registry = LayoutRegistry.load(store_for(root))
    assert registry.get("page").source == "jinja"
    assert "docs/guide" in registry


def test_layout_with_broken_front_matter_fails_on_use(make_project, store_for):
    root = make_project({"site/_layouts/bad.html": "---\nlayout: base\n"})
    registry = LayoutRegistry.load(store_for(root))
    registry.validate()
    with pytest.raises(MalformedFrontMatterError):
        registry.chain("bad")
