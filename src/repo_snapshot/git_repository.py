"""Read-only access to a git object database through git plumbing commands.

The repository is opened in isolated mode: user and system configuration
files are not consulted, and git is told not to take optional locks.
Revisions resolve to tree ids, and the recursive tree diff yields owned
change records holding raw byte paths and hex object ids.
"""

from __future__ import annotations

import os
import subprocess  # noqa: S404
from dataclasses import dataclass
from typing import TYPE_CHECKING

from repo_snapshot.exceptions import (
    BlobReadError,
    GitCommandError,
    NotAGitRepositoryError,
    RevisionNotFoundError,
)

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence
    from pathlib import Path

GITLINK_MODE = 0o160000


@dataclass(frozen=True)
class Addition:
    path: bytes
    entry_mode: int
    oid: str


@dataclass(frozen=True)
class Deletion:
    path: bytes
    entry_mode: int
    oid: str


@dataclass(frozen=True)
class Modification:
    path: bytes
    previous_entry_mode: int
    previous_oid: str
    entry_mode: int
    oid: str


Change = Addition | Deletion | Modification


def isolated_env() -> dict[str, str]:
    """Environment for git commands that ignores user- and system-level config."""
    env = dict(os.environ)
    env.update(
        {
            "GIT_CONFIG_NOSYSTEM": "1",
            "GIT_CONFIG_GLOBAL": os.devnull,
            "GIT_OPTIONAL_LOCKS": "0",
            "GIT_TERMINAL_PROMPT": "0",
        },
    )
    for key in ("GIT_DIR", "GIT_WORK_TREE", "GIT_INDEX_FILE", "GIT_OBJECT_DIRECTORY"):
        env.pop(key, None)
    return env


def parse_raw_diff(output: bytes) -> Iterator[Change]:
    """Parse the output of `git diff-tree -r -z --no-abbrev` into change records.

    Each record is a header `:<old mode> <new mode> <old oid> <new oid> <status>`
    followed by the path, NUL-terminated. Type changes count as modifications.

    Args:
        output (bytes): the raw, NUL-separated output of `git diff-tree`

    Yields:
        Change: one record per changed leaf path, in git's order
    """
    fields = output.split(b"\0")
    idx = 0
    while idx + 1 < len(fields):
        header, path = fields[idx], fields[idx + 1]
        idx += 2
        if not header.startswith(b":"):
            continue
        old_mode, new_mode, old_oid, new_oid, status = header[1:].decode("ascii").split(" ")
        kind = status[:1]
        if kind == "A":
            yield Addition(path=path, entry_mode=int(new_mode, 8), oid=new_oid)
        elif kind == "D":
            yield Deletion(path=path, entry_mode=int(old_mode, 8), oid=old_oid)
        elif kind in {"M", "T"}:
            yield Modification(
                path=path,
                previous_entry_mode=int(old_mode, 8),
                previous_oid=old_oid,
                entry_mode=int(new_mode, 8),
                oid=new_oid,
            )


class GitRepository:
    """Handle on a git repository opened in isolated, read-only mode."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._env = isolated_env()
        try:
            self.git_dir = self._run(["rev-parse", "--git-dir"]).decode("utf-8").strip()
        except (GitCommandError, OSError) as e:
            raise NotAGitRepositoryError(folder=path) from e

    @classmethod
    def open(cls, path: Path) -> GitRepository:
        return cls(path)

    def _run(self, args: Sequence[str]) -> bytes:
        cmd = ["git", "-C", str(self.path), *args]
        out = subprocess.run(  # noqa: S603
            cmd,
            capture_output=True,
            check=False,
            env=self._env,
        )
        if out.returncode != 0:
            raise GitCommandError(
                command=" ".join(["git", *args]),
                returncode=out.returncode,
                stdout=out.stdout.decode("utf-8", errors="replace"),
                stderr=out.stderr.decode("utf-8", errors="replace"),
            )
        return out.stdout

    def resolve_revision(self, revision: str) -> str:
        """Resolve a tag, branch, commit id or `HEAD`-relative name to an object id.

        Raises:
            RevisionNotFoundError: if git cannot resolve the name
        """
        if not revision or revision.startswith("-"):
            raise RevisionNotFoundError(revision=revision, detail="not a revision name")
        try:
            out = self._run(["rev-parse", "--verify", "--quiet", f"{revision}^{{object}}"])
        except GitCommandError as e:
            raise RevisionNotFoundError(revision=revision, detail=e.stderr.strip() or "unknown revision") from e
        return out.decode("ascii").strip()

    def peel_to_tree(self, oid: str, revision: str | None = None) -> str:
        """Peel a commit or tag object to the id of its tree."""
        try:
            out = self._run(["rev-parse", "--verify", "--quiet", f"{oid}^{{tree}}"])
        except GitCommandError as e:
            raise RevisionNotFoundError(
                revision=revision or oid,
                detail=e.stderr.strip() or "does not point to a tree",
            ) from e
        return out.decode("ascii").strip()

    def resolve_tree(self, revision: str) -> str:
        """Resolve a revision name straight to its tree id."""
        return self.peel_to_tree(self.resolve_revision(revision), revision)

    def diff_trees(self, previous_tree: str, current_tree: str) -> list[Change]:
        """Compute the leaf-level changes needed to go from `previous_tree` to `current_tree`."""
        if previous_tree == current_tree:
            return []
        out = self._run(["diff-tree", "-r", "-z", "--no-renames", "--no-abbrev", previous_tree, current_tree])
        return list(parse_raw_diff(out))

    def read_blob(self, oid: str) -> bytes:
        """Read the raw content of a blob.

        Raises:
            BlobReadError: if the object is missing or is not a blob
        """
        try:
            return self._run(["cat-file", "blob", oid])
        except GitCommandError as e:
            raise BlobReadError(oid=oid, detail=e.stderr.strip()) from e
