"""The two ways of producing a snapshot: walking the working tree, or diffing two revisions.

Both pipelines turn their input into `FileRecord`s, filter them with the same
`PathFilter` and hand them to the `OutputFormatter` in a deterministic order.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from repo_snapshot.config import CURRENT_REVSPEC, FileRecord, Origin
from repo_snapshot.exceptions import RepoSnapshotError
from repo_snapshot.file_manipulation import PathFilter, walk_files
from repo_snapshot.git_repository import GITLINK_MODE, Addition, Deletion, GitRepository, Modification
from repo_snapshot.logging import logger

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from pathlib import Path

    from repo_snapshot.git_repository import Change
    from repo_snapshot.output_construction import OutputFormatter
    from repo_snapshot.settings import Settings


def repo_display_name(root: Path) -> str:
    """Name shown in the header: the resolved root directory name."""
    resolved = root.resolve()
    return resolved.name or str(resolved)


def load_file(root: Path, rel: str) -> FileRecord | None:
    """Read one file of the working tree into a record.

    Unreadable and non-UTF-8 files are reported on stderr and skipped; empty
    files are skipped silently.

    Args:
        root (Path): the repository root
        rel (str): the path relative to `root`

    Returns:
        FileRecord | None: the record, or None when the file is skipped
    """
    try:
        data = (root / rel).read_bytes()
    except OSError as e:
        logger.warning("Error reading file %s: %s", rel, e)
        return None
    try:
        data.decode("utf-8")
    except UnicodeDecodeError as e:
        logger.warning("Skipping non-UTF-8 file %s: %s", rel, e)
        return None
    if not data:
        return None
    return FileRecord(rel=rel, content=data, origin=Origin.FILESYSTEM)


def collect_files(root: Path, path_filter: Callable[[str], bool]) -> list[str]:
    """Walk `root` and return the paths that pass `path_filter` and load, in walk order.

    Contents are dropped after the check and read again when printed, so at
    most one file is held in memory at a time.
    """
    return [rel for rel in walk_files(root) if path_filter(rel) and load_file(root, rel) is not None]


def run_filesystem(settings: Settings, formatter: OutputFormatter) -> None:
    """Print the snapshot of the working tree rooted at `settings.path`."""
    root = settings.path
    rels = collect_files(root, PathFilter.from_settings(settings))
    name = repo_display_name(root)

    formatter.print_header(name, CURRENT_REVSPEC)
    formatter.print_directory_structure(name, rels)
    for rel in rels:
        # the file may have changed since the walk
        record = load_file(root, rel)
        if record is None:
            continue
        contents = record.content.decode("utf-8")
        if settings.pattern is not None:
            formatter.print_file_matches(record.rel, contents, settings.pattern, settings.context_lines)
        else:
            formatter.print_file_contents(record.rel, contents)
    formatter.print_summary()


def decode_change_path(path: bytes) -> str | None:
    """Decode a tree path; paths that are not valid UTF-8 are excluded."""
    try:
        return path.decode("utf-8")
    except UnicodeDecodeError:
        logger.warning("Skipping non-UTF-8 path %r", path)
        return None


def _read_side(
    repo: GitRepository,
    rel: str,
    side: str,
    mode: int,
    oid: str,
    origin: Origin,
    previous_oid: str | None = None,
) -> FileRecord | None:
    if mode == GITLINK_MODE:
        logger.warning("Error processing %s for %s: %s is a submodule commit, not a blob", side, rel, oid)
        return None
    try:
        content = repo.read_blob(oid)
    except RepoSnapshotError as e:
        logger.warning("Error processing %s for %s: %s", side, rel, e)
        return None
    return FileRecord(rel=rel, content=content, origin=origin, oid=oid, previous_oid=previous_oid)


def iter_change_records(
    repo: GitRepository,
    changes: list[Change],
    path_filter: Callable[[str], bool],
) -> Iterator[FileRecord]:
    """Route tree changes to file records.

    Additions and deletions give one record each; a modification gives the
    old side then the new side. Filtered-out changes are skipped silently and
    a side that cannot be read is reported and skipped.
    """
    for change in changes:
        rel = decode_change_path(change.path)
        if rel is None or not path_filter(rel):
            continue
        if isinstance(change, Addition):
            record = _read_side(repo, rel, "addition", change.entry_mode, change.oid, Origin.ADDITION)
            if record is not None:
                yield record
        elif isinstance(change, Deletion):
            record = _read_side(repo, rel, "deletion", change.entry_mode, change.oid, Origin.DELETION)
            if record is not None:
                yield record
        elif isinstance(change, Modification):
            old = _read_side(
                repo,
                rel,
                "modification (old)",
                change.previous_entry_mode,
                change.previous_oid,
                Origin.MODIFICATION_OLD,
            )
            if old is not None:
                yield old
            new = _read_side(
                repo,
                rel,
                "modification (new)",
                change.entry_mode,
                change.oid,
                Origin.MODIFICATION_NEW,
                previous_oid=change.previous_oid,
            )
            if new is not None:
                yield new


def run_diff(settings: Settings, formatter: OutputFormatter) -> None:
    """Print the snapshot of the changes between two revisions.

    The repository is opened and both revisions are resolved before anything
    is printed, so fatal errors leave stdout empty.

    Raises:
        NotAGitRepositoryError: if `settings.path` is not inside a git repository
        RevisionNotFoundError: if a revision cannot be resolved to a tree
    """
    repo = GitRepository.open(settings.path)
    from_rev, to_rev = settings.from_revision, settings.to_revision
    from_tree = repo.resolve_tree(from_rev)
    to_tree = repo.resolve_tree(to_rev)
    changes = repo.diff_trees(from_tree, to_tree)

    formatter.print_header(repo_display_name(settings.path), f"{from_rev} → {to_rev}")
    for record in iter_change_records(repo, changes, PathFilter.from_settings(settings)):
        formatter.print_diff_record(record, settings.pattern)
    formatter.print_summary()
