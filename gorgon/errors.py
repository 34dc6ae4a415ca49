"""Error taxonomy for Gorgon builds.

Errors fall in two groups:

- Fatal errors abort the whole build before anything is written, because the
  site is structurally inconsistent and partial output would be misleading
  (unreadable source root, duplicate permalink, layout cycle, timeout, bad
  configuration).
- Entity-scoped errors only cost the offending document its artifact. The
  orchestrator records them in the build report and keeps building siblings.

Every error carries an ``ErrorKind`` so reports and tests can match on a
stable identifier instead of a class.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorKind(str, Enum):
    """Stable identifiers for build failures."""

    MALFORMED_FRONT_MATTER = "MalformedFrontMatterKind"
    INVALID_METADATA_SYNTAX = "InvalidMetadataSyntaxKind"
    DUPLICATE_PERMALINK = "DuplicatePermalinkKind"
    UNKNOWN_LAYOUT = "UnknownLayoutKind"
    MISSING_LAYOUT = "MissingLayoutKind"
    CIRCULAR_LAYOUT = "CircularLayoutKind"
    TEMPLATE_SYNTAX = "TemplateSyntaxErrorKind"
    TEMPLATE_RUNTIME = "TemplateRuntimeErrorKind"
    INVALID_PERMALINK = "InvalidPermalinkKind"
    SOURCE_ROOT = "SourceRootKind"
    BUILD_TIMEOUT = "BuildTimeoutKind"
    CONFIG = "ConfigKind"
    WRITE = "WriteKind"

    def __str__(self) -> str:
        return self.value


class GorgonError(Exception):
    """Base class for all build errors.

    Attributes:
        message: Human-readable description.
        source_path: Project-relative path of the offending input, if any.
        original_error: The lower-level exception that was translated.
    """

    kind: ErrorKind = ErrorKind.CONFIG
    fatal: bool = True

    def __init__(
        self,
        message: str,
        source_path: str | None = None,
        original_error: Exception | None = None,
    ):
        self.message = message
        self.source_path = source_path
        self.original_error = original_error
        super().__init__(f"{source_path}: {message}" if source_path else message)


class ConfigError(GorgonError):
    """Raised when gorgon.yaml cannot be parsed or holds invalid values."""

    kind = ErrorKind.CONFIG


class SourceRootError(GorgonError):
    """Raised when the content root is missing or unreadable."""

    kind = ErrorKind.SOURCE_ROOT


class DuplicatePermalinkError(GorgonError):
    """Raised when two outputs resolve to the same path.

    Attributes:
        output_path: The contested output path.
        sources: Both source paths, sorted.
    """

    kind = ErrorKind.DUPLICATE_PERMALINK

    def __init__(self, output_path: str, first: str, second: str):
        self.output_path = output_path
        self.sources = tuple(sorted((first, second)))
        super().__init__(
            f"duplicate permalink {output_path!r} produced by "
            f"{self.sources[0]} and {self.sources[1]}",
            source_path=self.sources[1],
        )


class CircularLayoutError(GorgonError):
    """Raised when layout inheritance loops back on itself.

    Attributes:
        cycle: Layout names along the cycle, first name repeated at the end.
    """

    kind = ErrorKind.CIRCULAR_LAYOUT

    def __init__(self, cycle: list[str], source_path: str | None = None):
        self.cycle = list(cycle)
        super().__init__(
            "circular layout chain: " + " -> ".join(self.cycle),
            source_path=source_path,
        )


class BuildTimeoutError(GorgonError):
    """Raised when a build exceeds its configured timeout."""

    kind = ErrorKind.BUILD_TIMEOUT

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"build exceeded timeout of {timeout:g}s")


class EntityError(GorgonError):
    """Base class for failures scoped to a single document or entity."""

    fatal = False


class FrontMatterError(EntityError):
    """Base class for front-matter parsing failures."""


class MalformedFrontMatterError(FrontMatterError):
    """The header block was opened but never closed."""

    kind = ErrorKind.MALFORMED_FRONT_MATTER


class InvalidMetadataSyntaxError(FrontMatterError):
    """The header block is not a valid YAML mapping of supported values."""

    kind = ErrorKind.INVALID_METADATA_SYNTAX


class UnknownLayoutError(EntityError):
    """A document names a layout that does not exist."""

    kind = ErrorKind.UNKNOWN_LAYOUT


class MissingLayoutError(EntityError):
    """A layout chain references a parent layout that does not exist."""

    kind = ErrorKind.MISSING_LAYOUT


class InvalidPermalinkError(EntityError):
    """A permalink could not be resolved to a safe output path."""

    kind = ErrorKind.INVALID_PERMALINK


class TemplateRenderError(EntityError):
    """A template failed to compile or render for one entity."""

    def __init__(
        self,
        message: str,
        source_path: str | None = None,
        original_error: Exception | None = None,
        kind: ErrorKind = ErrorKind.TEMPLATE_RUNTIME,
    ):
        self.kind = kind
        super().__init__(message, source_path=source_path, original_error=original_error)


class WriteError(EntityError):
    """An artifact could not be written to the output tree."""

    kind = ErrorKind.WRITE


@dataclass(frozen=True)
class BuildFailure:
    """One entity-scoped failure recorded in a build report."""

    path: str
    kind: ErrorKind
    message: str

    @classmethod
    def from_error(cls, error: GorgonError, fallback_path: str = "") -> BuildFailure:
        return cls(error.source_path or fallback_path, error.kind, error.message)

    def __str__(self) -> str:
        return f"{self.path}: {self.kind}: {self.message}"


@dataclass(frozen=True)
class BuildWarning:
    """A non-blocking notice surfaced to the developer."""

    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"
