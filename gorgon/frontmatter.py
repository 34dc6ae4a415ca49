"""Front-matter parsing for Gorgon.

A content document is plain text optionally preceded by a YAML header::

    ---
    title: Hello
    tags: [containers, linux]
    ---
    Body text...

The header opens with a ``---`` line at the very start of the document and
closes with the next ``---`` line. Documents without an opening line are
valid: their metadata is empty and the entire text is the body.

Metadata values form a small tagged variant (see ``MetadataValue``). Anything
YAML can produce beyond that (binary blobs, sets, non-string keys) is
rejected so templates only ever see plain data.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Union

import yaml

from .errors import InvalidMetadataSyntaxError, MalformedFrontMatterError

DELIMITER = "---"

MetadataValue = Union[
    str, int, float, bool, date, datetime, None, list["MetadataValue"], dict[str, "MetadataValue"]
]
Metadata = dict[str, MetadataValue]

_SCALARS = (str, int, float, bool, date, datetime, type(None))


def _is_delimiter(line: str) -> bool:
    return line.rstrip("\r\n").rstrip() == DELIMITER


def parse_front_matter(text: str, source_path: str | None = None) -> tuple[Metadata, str]:
    """Split a document into its metadata mapping and body.

    Args:
        text: Raw document text.
        source_path: Optional path used in error messages.

    Returns:
        Tuple of (metadata, body).

    Raises:
        MalformedFrontMatterError: The header is opened but never closed.
        InvalidMetadataSyntaxError: The header is not a mapping of supported values.
    """
    if text.startswith("\ufeff"):
        text = text[1:]
    lines = text.splitlines(keepends=True)
    if not lines or not _is_delimiter(lines[0]):
        return {}, text

    for index in range(1, len(lines)):
        if _is_delimiter(lines[index]):
            header = "".join(lines[1:index])
            body = "".join(lines[index + 1 :])
            return _load_header(header, source_path), body

    raise MalformedFrontMatterError(
        "front matter opened with '---' but never closed", source_path=source_path
    )


def _load_header(header: str, source_path: str | None) -> Metadata:
    try:
        data = yaml.safe_load(header)
    except yaml.YAMLError as exc:
        raise InvalidMetadataSyntaxError(
            f"front matter is not valid YAML: {exc}",
            source_path=source_path,
            original_error=exc,
        ) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidMetadataSyntaxError(
            f"front matter must be a mapping, got {type(data).__name__}",
            source_path=source_path,
        )
    return _validate_mapping(data, source_path, trail="")


def _validate_mapping(data: dict, source_path: str | None, trail: str) -> Metadata:
    result: Metadata = {}
    for key, value in data.items():
        if not isinstance(key, str):
            raise InvalidMetadataSyntaxError(
                f"front matter key {key!r}{_where(trail)} must be a string",
                source_path=source_path,
            )
        result[key] = _validate_value(value, source_path, f"{trail}.{key}" if trail else key)
    return result


def _validate_value(value: Any, source_path: str | None, trail: str) -> MetadataValue:
    if isinstance(value, dict):
        return _validate_mapping(value, source_path, trail)
    if isinstance(value, list):
        return [_validate_value(item, source_path, trail) for item in value]
    if isinstance(value, _SCALARS):
        return value
    raise InvalidMetadataSyntaxError(
        f"unsupported value of type {type(value).__name__} at {trail!r}",
        source_path=source_path,
    )


def _where(trail: str) -> str:
    return f" under {trail!r}" if trail else ""


def dump_front_matter(metadata: Metadata, body: str) -> str:
    """Serialize metadata and body back into document text.

    This is the inverse of ``parse_front_matter`` for every supported
    metadata shape: ``parse_front_matter(dump_front_matter(m, b)) == (m, b)``.

    Args:
        metadata: Metadata mapping.
        body: Document body.

    Returns:
        Document text with a header block (omitted when metadata is empty and
        the body cannot be mistaken for a header).
    """
    if not metadata:
        first_line = body.splitlines(keepends=True)[:1]
        if first_line and _is_delimiter(first_line[0]):
            return f"{DELIMITER}\n{DELIMITER}\n{body}"
        return body
    header = yaml.safe_dump(
        metadata,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )
    return f"{DELIMITER}\n{header}{DELIMITER}\n{body}"


__all__ = [
    "DELIMITER",
    "Metadata",
    "MetadataValue",
    "dump_front_matter",
    "parse_front_matter",
]
