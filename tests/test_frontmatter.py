from datetime import date, datetime

import pytest

from gorgon.errors import ErrorKind, InvalidMetadataSyntaxError, MalformedFrontMatterError
from gorgon.frontmatter import dump_front_matter, parse_front_matter


def test_parse_splits_metadata_and_body():
    text = "---\ntitle: Hello\ntags: [a, b]\n---\nBody line\n"
    metadata, body = parse_front_matter(text)
    assert metadata == {"title": "Hello", "tags": ["a", "b"]}
    assert body == "Body line\n"


def test_parse_without_header_returns_whole_text():
    text = "# Heading\n\nNo front matter here.\n"
    assert parse_front_matter(text) == ({}, text)


def test_parse_empty_header_yields_empty_metadata():
    assert parse_front_matter("---\n---\nbody") == ({}, "body")


def test_parse_ignores_leading_bom():
    metadata, body = parse_front_matter("\ufeff---\ntitle: X\n---\nbody")
    assert metadata == {"title": "X"}
    assert body == "body"


def test_parse_keeps_later_delimiters_in_body():
    text = "---\ntitle: X\n---\nintro\n---\nmore\n"
    metadata, body = parse_front_matter(text)
    assert metadata == {"title": "X"}
    assert body == "intro\n---\nmore\n"


def test_unclosed_header_is_malformed():
    with pytest.raises(MalformedFrontMatterError) as excinfo:
        parse_front_matter("---\ntitle: X\nbody without end", source_path="site/x.md")
    assert excinfo.value.kind is ErrorKind.MALFORMED_FRONT_MATTER
    assert excinfo.value.source_path == "site/x.md"


@pytest.mark.parametrize(
    "header",
    [
        "title: [unclosed",
        "- just\n- a list",
        "1: numeric key",
        "blob: !!binary aGVsbG8=",
        "nested:\n  2: bad",
    ],
)
def test_invalid_headers_raise_invalid_metadata(header):
    with pytest.raises(InvalidMetadataSyntaxError) as excinfo:
        parse_front_matter(f"---\n{header}\n---\nbody")
    assert excinfo.value.kind is ErrorKind.INVALID_METADATA_SYNTAX


def test_supported_shapes_survive_dump_and_parse():
    metadata = {
        "title": "Round trip: yes",
        "date": date(2025, 1, 2),
        "updated": datetime(2025, 1, 3, 10, 30),
        "draft": False,
        "weight": 3,
        "ratio": 0.5,
        "summary": None,
        "tags": ["a", "b"],
        "author": {"name": "Sam", "links": ["x", "y"]},
    }
    body = "Body with --- inside\n\nand paragraphs.\n"
    assert parse_front_matter(dump_front_matter(metadata, body)) == (metadata, body)


def test_dump_of_parsed_text_is_identity():
    text = dump_front_matter({"title": "T", "tags": ["x"]}, "body\n")
    assert dump_front_matter(*parse_front_matter(text)) == text


def test_dump_without_metadata_returns_body():
    assert dump_front_matter({}, "plain body\n") == "plain body\n"


def test_dump_without_metadata_protects_delimiter_body():
    body = "---\nnot a header\n"
    text = dump_front_matter({}, body)
    assert text == "---\n---\n" + body
    assert parse_front_matter(text) == ({}, body)
