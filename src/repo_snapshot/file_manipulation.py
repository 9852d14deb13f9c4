from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any

import pathspec

from repo_snapshot.config import BINARY_EXTENSIONS, IGNORE_FILES, MatchReport
from repo_snapshot.logging import logger

if TYPE_CHECKING:
    import re
    from collections.abc import Iterable, Iterator, Sequence

    from repo_snapshot.settings import Settings


def file_extension(rel: str) -> str:
    """Return the lowercased suffix after the last dot of the file name, or ""."""
    return PurePosixPath(rel).suffix.lower().lstrip(".")


def extension_matches(rel: str, extensions: Iterable[str] | None) -> bool:
    """Check a path against the allowed extensions.

    Args:
        rel (str): the relative path to check
        extensions (Iterable[str] | None): lowercase extensions without the leading dot;
            None means every extension is allowed

    Returns:
        bool: True if the path is allowed
    """
    if extensions is None:
        return True
    ext = file_extension(rel)
    return bool(ext) and ext in extensions


def is_likely_binary(rel: str) -> bool:
    """Suffix-based binary heuristic; file contents are never inspected."""
    return file_extension(rel) in BINARY_EXTENSIONS


def matches_any_exclude(rel: str, excludes: Sequence[re.Pattern[str]]) -> bool:
    """Check if any exclude regex is found in the relative path."""
    return any(rx.search(rel) for rx in excludes)


@dataclass(frozen=True)
class PathFilter:
    """Inclusion predicate shared by the filesystem and the diff pipelines.

    A path is included iff it passes the extension filter, is not a likely
    binary and matches no exclude regex.
    """

    extensions: frozenset[str] | None = None
    excludes: tuple[re.Pattern[str], ...] = ()

    @classmethod
    def from_settings(cls, settings: Settings) -> PathFilter:
        return cls(extensions=settings.extensions, excludes=settings.excludes)

    def __call__(self, rel: str) -> bool:
        return (
            extension_matches(rel, self.extensions)
            and not is_likely_binary(rel)
            and not matches_any_exclude(rel, self.excludes)
        )


@dataclass
class IgnoreRules:
    """Stack of gitignore-style rule sets, one per directory that defines some.

    Patterns are matched against paths relative to the directory holding the
    ignore file, like git does. Deeper rule sets are consulted first.
    """

    layers: list[tuple[str, pathspec.GitIgnoreSpec]] = field(default_factory=list)

    def push(self, base: str, lines: Sequence[str]) -> IgnoreRules:
        """Return a new rule stack with `lines` anchored at `base` added on top."""
        if not any(ln.strip() and not ln.lstrip().startswith("#") for ln in lines):
            return self
        spec = pathspec.GitIgnoreSpec.from_lines(lines)
        return IgnoreRules([*self.layers, (base, spec)])

    def is_ignored(self, rel: str, *, is_dir: bool) -> bool:
        for base, spec in reversed(self.layers):
            sub = rel[len(base) + 1 :] if base else rel
            if is_dir:
                sub += "/"
            result = spec.check_file(sub)
            if result.include is not None:
                return bool(result.include)
        return False


def read_ignore_lines(path: Path) -> list[str]:
    """Read the lines of an ignore file, or nothing if it cannot be read."""
    try:
        return path.read_text(encoding="utf-8", errors="ignore").splitlines()
    except OSError as e:
        logger.warning("Cannot read ignore file %s: %s", path, e)
        return []


def walk_files(repo: Path) -> Iterator[str]:
    """Walk the directory tree rooted at `repo` and yield relative file paths.

    The walk is depth-first with the entries of each directory sorted by
    name, so identical trees always give the same order. `.gitignore` and
    `.ignore` files are honored at every level, as is `.git/info/exclude` at
    the root. Hidden entries are not skipped for being hidden, but `.git`
    (the directory, or the pointer file of a worktree) is never listed and
    symlinks are not followed.

    Args:
        repo (Path): the root directory to walk

    Yields:
        str: paths of regular files relative to `repo`, with POSIX separators
    """
    rules = IgnoreRules()
    exclude_file = repo / ".git" / "info" / "exclude"
    if exclude_file.is_file():
        rules = rules.push("", read_ignore_lines(exclude_file))
    yield from _walk_dir(repo, "", rules)


def _walk_dir(directory: Path, rel_dir: str, rules: IgnoreRules) -> Iterator[str]:
    for name in IGNORE_FILES:
        candidate = directory / name
        if candidate.is_file():
            rules = rules.push(rel_dir, read_ignore_lines(candidate))

    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError as e:
        logger.warning("Cannot list directory %s: %s", directory, e)
        return

    for entry in entries:
        if entry.name == ".git":
            continue
        rel = f"{rel_dir}/{entry.name}" if rel_dir else entry.name
        try:
            is_dir = entry.is_dir(follow_symlinks=False)
            is_file = entry.is_file(follow_symlinks=False)
        except OSError as e:
            logger.warning("Cannot stat %s: %s", rel, e)
            continue
        if is_dir:
            if rules.is_ignored(rel, is_dir=True):
                continue
            yield from _walk_dir(Path(entry.path), rel, rules)
        elif is_file and not rules.is_ignored(rel, is_dir=False):
            yield rel


def split_lines(text: str) -> list[str]:
    """Split text on newlines; a trailing newline does not add an empty line.

    Only `\\n` separates lines and a `\\r` right before it is dropped, so form
    feeds and other Unicode line boundaries stay inside their line.
    """
    if not text:
        return []
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [ln.removesuffix("\r") for ln in lines]


def find_matches(
    lines: Sequence[str],
    pattern: re.Pattern[str],
    context_lines: int,
) -> list[MatchReport]:
    """Find the lines where `pattern` matches and cut a context window around each.

    Args:
        lines (Sequence[str]): the lines of the file
        pattern (re.Pattern[str]): the compiled pattern, searched anywhere in the line
        context_lines (int): number of lines to keep before and after each match

    Returns:
        list[MatchReport]: one report per matching line, in file order
    """
    reports: list[MatchReport] = []
    for idx, line in enumerate(lines):
        m = pattern.search(line)
        if m is None:
            continue
        start = max(0, idx - context_lines)
        end = min(len(lines), idx + context_lines + 1)
        reports.append(
            MatchReport(
                line_number=idx + 1,
                start_line=start + 1,
                lines=tuple(lines[start:end]),
                captures=m.groups(),
            ),
        )
    return reports


def is_hidden(rel: str) -> bool:
    """Check if any component of a relative path starts with a dot."""
    return any(part.startswith(".") for part in rel.split("/"))


def build_tree_lines(root_name: str, rel_paths: Sequence[str]) -> list[str]:
    """Build a visual tree representation of file paths.

    Files and directories of a level are interleaved in lexicographic order of
    their names. Hidden paths are left out and directories only appear when
    they hold at least one listed file.

    Args:
        root_name (str): the name to use for the root of the tree
        rel_paths (Sequence[str]): the list of file paths relative to the root, using POSIX separators (e.g. "src/main.py")

    Returns:
        list[str]: a list of strings representing the tree structure, suitable for printing
    """
    rels = sorted({p.strip("/") for p in rel_paths if p.strip("/") and not is_hidden(p.strip("/"))})
    tree: dict[str, Any] = {}
    for rp in rels:
        cur = tree
        parts = rp.split("/")
        for i, part in enumerate(parts):
            if i == len(parts) - 1:
                cur.setdefault(part, None)
            else:
                child = cur.get(part)
                if child is None:
                    child = cur[part] = {}
                cur = child

    lines: list[str] = [f"{root_name}/"]

    def walk(node: dict[str, Any], prefix: str) -> None:
        names = sorted(node)
        for idx, name in enumerate(names):
            child = node[name]
            last = idx == len(names) - 1
            branch = "└── " if last else "├── "
            lines.append(prefix + branch + name + ("/" if child is not None else ""))
            if child is not None:
                ext = "    " if last else "│   "
                walk(child, prefix + ext)

    walk(tree, "")
    return lines
