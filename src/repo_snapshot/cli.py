"""
repo_snapshot: Print a token-counted snapshot of a repository for an LLM.

Overview
--------
This utility writes a single plain-text report of a source repository to
standard output:

1) **Filesystem mode** (default): a header, the directory tree of the
   included files, every file with line numbers and its token count, and a
   summary comparing the token total with GPT-4 context windows.
   `.gitignore`/`.ignore` rules are honored and likely-binary files skipped.

2) **Diff mode** (`--git-from` and/or `--git-to`): the same report limited
   to the files that differ between two git revisions, shown as `+`/`-`
   prefixed blocks. A missing side defaults to `HEAD`.

Files can be restricted with `--extensions` and `--excludes`, searched with
`--pattern` (matches are shown with `--context-lines` of context), and
stripped of their comments (Rust, JavaScript, Python, Go) with
`--strip-comments`.

Usage
-----
Run `python -m repo_snapshot.cli --help` for full options. Common examples:
    - Whole repository:
        repo-snapshot --path .

    - Rust sources only, without comments:
        repo-snapshot -p . -e rs --strip-comments

    - Functions named like `add`, with 5 lines of context:
        repo-snapshot -p . --pattern 'fn (\\w*add\\w*)' -c 5

    - What changed since the previous commit:
        repo-snapshot -p . --git-from HEAD~1
"""

from __future__ import annotations

import argparse
import io
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from repo_snapshot import __version__
from repo_snapshot.exceptions import ConfigFileError, RepoSnapshotError
from repo_snapshot.logging import logger
from repo_snapshot.output_construction import OutputFormatter
from repo_snapshot.pipeline import run_diff, run_filesystem
from repo_snapshot.settings import Settings, env_defaults, env_flag, load_config_file, split_csv
from repo_snapshot.tokens import load_encoding

if TYPE_CHECKING:
    from collections.abc import Sequence


def build_parser() -> argparse.ArgumentParser:
    env = env_defaults()
    p = argparse.ArgumentParser(
        prog="repo-snapshot",
        description="Print a token-counted snapshot of a repository (or of a git diff) for LLM consumption.",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("-p", "--path", type=Path, required=True, help="Repository root.")
    p.add_argument("--pattern", type=str, default=None, help="Regex; only show matches with context.")
    p.add_argument(
        "-e",
        "--extensions",
        type=str,
        default=None,
        help="Comma list of extensions to include (e.g. rs,go).",
    )
    p.add_argument(
        "-c",
        "--context-lines",
        type=int,
        default=None,
        help="Lines of context around each match (default: 3).",
    )
    p.add_argument("--git-from", type=str, default=None, help="Git revision (tag, branch, or commit) to diff from.")
    p.add_argument("--git-to", type=str, default=None, help="Git revision (tag, branch, or commit) to diff to.")
    p.add_argument("--excludes", type=str, default=None, help="Comma list of regexes; matching paths are excluded.")
    p.add_argument(
        "--strip-comments",
        action="store_true",
        help="Remove comments from Rust, JavaScript, Python and Go files.",
    )
    p.add_argument(
        "--no-color",
        action="store_true",
        default=env_flag(env.get("no_color")),
        help="Disable colored output.",
    )
    p.add_argument("--config", type=Path, default=None, help="YAML file with default options.")
    return p


def format_validation_error(exc: ValidationError) -> str:
    """Render pydantic errors as `field: message` pairs for the command line."""
    parts = []
    for err in exc.errors():
        loc = ".".join(str(x) for x in err["loc"]) or "settings"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


def merge_options(args: argparse.Namespace) -> dict[str, Any]:
    """Merge command-line values over the defaults of the optional YAML file.

    Raises:
        ConfigFileError: if `--config` points to an invalid file
    """
    values = vars(args).copy()
    values["extensions"] = split_csv(values["extensions"])
    values["excludes"] = split_csv(values["excludes"])
    if args.config is None:
        return values
    file_conf = load_config_file(args.config)
    for key in ("pattern", "extensions", "excludes", "context_lines"):
        if values[key] is None:
            values[key] = getattr(file_conf, key)
    values["strip_comments"] = values["strip_comments"] or bool(file_conf.strip_comments)
    return values


def parse_args(argv: Sequence[str] | None = None) -> Settings:
    p = build_parser()
    args = p.parse_args(argv)
    try:
        values = merge_options(args)
    except ConfigFileError as e:
        p.error(str(e))
    values = {k: v for k, v in values.items() if v is not None}
    try:
        return Settings(**values)
    except ValidationError as e:
        p.error(format_validation_error(e))


def line_buffer(stream: Any) -> None:  # noqa: ANN401
    if isinstance(stream, io.TextIOWrapper):
        stream.reconfigure(line_buffering=True)


def main(argv: Sequence[str] | None = None) -> int:
    settings = parse_args(argv)
    line_buffer(sys.stdout)
    line_buffer(sys.stderr)

    try:
        formatter = OutputFormatter.from_settings(settings, load_encoding())
        if settings.diff_mode:
            run_diff(settings, formatter)
        else:
            run_filesystem(settings, formatter)
    except RepoSnapshotError as e:
        logger.error("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
