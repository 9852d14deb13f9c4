from dataclasses import dataclass
from pathlib import Path


@dataclass
class RepoSnapshotError(Exception):
    """Base exception for errors in the repo_snapshot package."""

    def __str__(self) -> str:
        return getattr(self, "message", self.__class__.__doc__ or "")


@dataclass
class GitCommandError(RepoSnapshotError):
    """Raised when a git command fails."""

    command: str
    returncode: int
    stdout: str
    stderr: str

    def __str__(self) -> str:
        detail = self.stderr.strip() or self.stdout.strip()
        return f"`{self.command}` exited with status {self.returncode}: {detail}"


@dataclass
class NotAGitRepositoryError(RepoSnapshotError):
    """Raised when the specified directory is not a Git repository."""

    folder: Path
    message: str = "The specified directory is not a Git repository."

    def __str__(self) -> str:
        return f"{self.message} ({self.folder})"


@dataclass
class RevisionNotFoundError(RepoSnapshotError):
    """Raised when a revision name cannot be resolved to a tree."""

    revision: str
    detail: str = ""

    def __str__(self) -> str:
        msg = f"Failed to resolve revision '{self.revision}'"
        return f"{msg}: {self.detail}" if self.detail else msg


@dataclass
class BlobReadError(RepoSnapshotError):
    """Raised when the content of a blob cannot be read from the object database."""

    oid: str
    detail: str = ""

    def __str__(self) -> str:
        return f"Cannot read blob {self.oid}: {self.detail}"


@dataclass
class TokenizerError(RepoSnapshotError):
    """Raised when the BPE encoding cannot be loaded."""

    name: str
    detail: str = ""

    def __str__(self) -> str:
        return f"Cannot load token encoding '{self.name}': {self.detail}"


@dataclass
class ConfigFileError(RepoSnapshotError):
    """Raised when a YAML configuration file is unreadable or invalid."""

    file: Path
    detail: str = ""

    def __str__(self) -> str:
        return f"Invalid configuration file {self.file}: {self.detail}"
