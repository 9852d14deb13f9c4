from __future__ import annotations

from enum import StrEnum, auto

from pydantic import BaseModel, ConfigDict, Field, computed_field


class Origin(StrEnum):
    """Where the content of a file record comes from.

    Filesystem records come from the working tree. The four other origins are
    produced by the revision diff pipeline: an addition or deletion yields one
    record, a modification yields an old and a new record, in that order.
    """

    FILESYSTEM = auto()
    ADDITION = auto()
    DELETION = auto()
    MODIFICATION_OLD = auto()
    MODIFICATION_NEW = auto()


class SupportedLanguage(StrEnum):
    """Languages the comment stripper has a grammar for."""

    RUST = auto()
    JAVASCRIPT = auto()
    PYTHON = auto()
    GO = auto()


EXT2LANGUAGE: dict[str, SupportedLanguage] = {
    "go": SupportedLanguage.GO,
    "js": SupportedLanguage.JAVASCRIPT,
    "py": SupportedLanguage.PYTHON,
    "rs": SupportedLanguage.RUST,
}

# Suffix-only heuristic, no content sniffing.
BINARY_EXTENSIONS: frozenset[str] = frozenset(
    {
        "7z",
        "avi",
        "bmp",
        "db",
        "dll",
        "doc",
        "docx",
        "dylib",
        "exe",
        "flv",
        "gif",
        "gz",
        "jpeg",
        "jpg",
        "mov",
        "mp3",
        "mp4",
        "pdf",
        "png",
        "ppt",
        "pptx",
        "rar",
        "so",
        "sqlite",
        "tar",
        "tiff",
        "xls",
        "xlsx",
        "zip",
    },
)

IGNORE_FILES = (".gitignore", ".ignore")

SECTION_BANNER = "=" * 64
FILE_BANNER = "=" * 80

CONTEXT_WINDOWS: tuple[tuple[str, int], ...] = (
    ("8K", 8192),
    ("32K", 32768),
)

CURRENT_REVSPEC = "current"
DEFAULT_REVISION = "HEAD"
DEFAULT_CONTEXT_LINES = 3

DIFF_PREFIX: dict[Origin, str] = {
    Origin.ADDITION: "+",
    Origin.DELETION: "-",
    Origin.MODIFICATION_OLD: "-",
    Origin.MODIFICATION_NEW: "+",
}

ORIGIN_LABEL: dict[Origin, str] = {
    Origin.FILESYSTEM: "",
    Origin.ADDITION: "added",
    Origin.DELETION: "deleted",
    Origin.MODIFICATION_OLD: "modified, old",
    Origin.MODIFICATION_NEW: "modified, new",
}


class FileRecord(BaseModel):
    """One file on its way from a pipeline to the formatter.

    Attributes:
        rel: Path relative to the repository root, with POSIX separators.
        content: Raw bytes of the file or blob.
        origin: Where the content comes from.
        oid: Object id of the blob (diff mode only).
        previous_oid: Object id of the previous blob, only for the new side of a modification.
    """

    model_config = ConfigDict(frozen=True)

    rel: str = Field(..., description="File path relative to repository root")
    content: bytes = Field(..., description="Raw file content")
    origin: Origin = Field(default=Origin.FILESYSTEM, description="Origin of the content")
    oid: str | None = Field(default=None, description="Blob object id (hex)")
    previous_oid: str | None = Field(default=None, description="Previous blob object id (hex)")

    @computed_field
    @property
    def prefix(self) -> str:
        """Diff prefix for the record, empty for filesystem records."""
        return DIFF_PREFIX.get(self.origin, "")

    @computed_field
    @property
    def label(self) -> str:
        """Short human label of the change kind, empty for filesystem records."""
        return ORIGIN_LABEL[self.origin]


class MatchReport(BaseModel):
    """A pattern match with its window of surrounding lines.

    Attributes:
        line_number: One-based line number of the match.
        start_line: One-based line number of the first line in `lines`.
        lines: The window, clamped to the file bounds.
        captures: Texts of capturing groups 1..n, None for groups that did not participate.
    """

    model_config = ConfigDict(frozen=True)

    line_number: int = Field(..., ge=1)
    start_line: int = Field(..., ge=1)
    lines: tuple[str, ...] = Field(default=())
    captures: tuple[str | None, ...] = Field(default=())

    def numbered(self) -> list[tuple[int, str, bool]]:
        """Return `(line number, text, is match line)` for every line of the window."""
        return [
            (self.start_line + offset, text, self.start_line + offset == self.line_number)
            for offset, text in enumerate(self.lines)
        ]
