from __future__ import annotations

import math
import sys
from typing import TYPE_CHECKING, TextIO

from rich.color import ColorSystem
from rich.console import Console
from rich.style import Style

from repo_snapshot.comments import language_for_path, strip_comments
from repo_snapshot.config import CONTEXT_WINDOWS, FILE_BANNER, SECTION_BANNER
from repo_snapshot.file_manipulation import build_tree_lines, find_matches, split_lines
from repo_snapshot.tokens import count_tokens

if TYPE_CHECKING:
    import re
    from collections.abc import Iterable, Sequence

    from repo_snapshot.config import FileRecord, MatchReport
    from repo_snapshot.settings import Settings
    from repo_snapshot.tokens import Encoding

STYLES: dict[str, Style] = {
    "banner": Style(color="blue"),
    "name": Style(color="green"),
    "revspec": Style(color="yellow"),
}


def color_enabled(stream: TextIO, *, no_color: bool = False) -> bool:
    """Decide whether styling applies to `stream`.

    Styling needs a terminal and is turned off by `no_color` or the
    `NO_COLOR` environment variable, so pipes and tests always get plain text.
    """
    if no_color:
        return False
    console = Console(file=stream)
    return console.is_terminal and not console.no_color


def render_file_body(contents: str) -> list[str]:
    """Number the lines of a file body, one-based, left-aligned in a width-4 field."""
    return [f"{i:<4}│ {line}" for i, line in enumerate(split_lines(contents), start=1)]


def render_match(report: MatchReport) -> list[str]:
    """Render one match with its context window and captured groups."""
    out = [f"Match at line {report.line_number}:", "```"]
    for number, text, is_match in report.numbered():
        marker = " > " if is_match else "   "
        out.append(f"{number}:{marker}{text}")
    out.append("```")
    out.append("Captured:")
    out.extend(
        f"  Group {idx}: {capture}"
        for idx, capture in enumerate(report.captures, start=1)
        if capture is not None
    )
    out.append("")
    return out


def render_diff_lines(content: bytes, prefix: str, pattern: re.Pattern[str] | None = None) -> list[str]:
    """Prefix each line of a blob for a diff block.

    The blob is split at `\\n` bytes; a trailing newline does not add a line.
    A line that is not valid UTF-8 is always shown as its hex dump. With a
    pattern, the UTF-8 lines it does not match are dropped.

    Args:
        content (bytes): the raw blob content
        prefix (str): `+` or `-`
        pattern (re.Pattern[str] | None): optional line filter

    Returns:
        list[str]: the prefixed lines
    """
    if not content:
        return []
    raw_lines = content.split(b"\n")
    if raw_lines[-1] == b"":
        raw_lines.pop()
    out: list[str] = []
    for raw in raw_lines:
        try:
            line = raw.decode("utf-8")
        except UnicodeDecodeError:
            out.append(f"{prefix}[Non-UTF-8 data: {raw.hex()}]")
            continue
        if pattern is None or pattern.search(line):
            out.append(f"{prefix}{line}")
    return out


class OutputFormatter:
    """Write the snapshot report and keep the running token total.

    The formatter is the only owner of the output stream and of the token
    total: every section it prints adds the tokens of its body, and the
    summary reports the sum.
    """

    def __init__(
        self,
        encoding: Encoding,
        *,
        out: TextIO | None = None,
        color: bool = False,
        strip_comments: bool = False,
        extensions: Iterable[str] | None = None,
        excludes: Sequence[re.Pattern[str]] = (),
    ) -> None:
        self._encoding = encoding
        self._out = out if out is not None else sys.stdout
        self._color_system = ColorSystem.STANDARD if color else None
        self._total_tokens = 0
        self.strip_comments = strip_comments
        self.extensions = sorted(extensions) if extensions is not None else None
        self.excludes = tuple(excludes)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        encoding: Encoding,
        out: TextIO | None = None,
    ) -> OutputFormatter:
        stream = out if out is not None else sys.stdout
        return cls(
            encoding,
            out=stream,
            color=color_enabled(stream, no_color=settings.no_color),
            strip_comments=settings.strip_comments,
            extensions=settings.extensions,
            excludes=settings.excludes,
        )

    @property
    def total_tokens(self) -> int:
        return self._total_tokens

    def _style(self, text: str, style: str) -> str:
        if self._color_system is None:
            return text
        return STYLES[style].render(text, color_system=self._color_system)

    def _emit(self, line: str = "") -> None:
        self._out.write(line + "\n")

    def _account(self, text: str) -> int:
        tokens = count_tokens(self._encoding, text)
        self._total_tokens += tokens
        return tokens

    def prepare_contents(self, rel: str, contents: str) -> str:
        """Apply comment stripping when enabled and the language is supported."""
        if not self.strip_comments:
            return contents
        return strip_comments(contents, language_for_path(rel))

    def print_header(self, repo_name: str, revspec: str) -> None:
        self._emit(self._style(SECTION_BANNER, "banner"))
        self._emit(f"Repository Snapshot: {self._style(repo_name, 'name')} @ {self._style(revspec, 'revspec')}")
        self._emit(self._style(SECTION_BANNER, "banner"))

    def print_directory_structure(self, root_name: str, rel_paths: Sequence[str]) -> None:
        self._emit()
        self._emit(self._style("Directory Structure", "banner"))
        self._emit(self._style(SECTION_BANNER, "banner"))
        for line in build_tree_lines(root_name, rel_paths):
            self._emit(line)

    def _print_file_banner(self, rel: str, tokens: int, label: str = "") -> None:
        kind = f" [{label}]" if label else ""
        self._emit()
        self._emit(self._style(FILE_BANNER, "banner"))
        self._emit(f"File: {self._style(rel, 'name')}{kind} (≈{tokens} tokens)")
        self._emit(self._style(FILE_BANNER, "banner"))

    def print_file_contents(self, rel: str, contents: str) -> int:
        """Print a full file section and return its token count.

        Args:
            rel (str): the path shown in the section header
            contents (str): the file text, before comment stripping

        Returns:
            int: the tokens added to the running total
        """
        body = self.prepare_contents(rel, contents)
        tokens = self._account(body)
        self._print_file_banner(rel, tokens)
        for line in render_file_body(body):
            self._emit(line)
        return tokens

    def print_file_matches(
        self,
        rel: str,
        contents: str,
        pattern: re.Pattern[str],
        context_lines: int,
    ) -> int:
        """Print the match report of a file; nothing is printed when nothing matches.

        Returns:
            int: the tokens added to the running total
        """
        body = self.prepare_contents(rel, contents)
        reports = find_matches(split_lines(body), pattern, context_lines)
        if not reports:
            return 0
        lines = [line for report in reports for line in render_match(report)]
        tokens = self._account("\n".join(lines))
        self._print_file_banner(rel, tokens)
        for line in lines:
            self._emit(line)
        return tokens

    def print_diff_record(self, record: FileRecord, pattern: re.Pattern[str] | None = None) -> int:
        """Print one side of a change as a prefixed diff block.

        Returns:
            int: the tokens added to the running total (0 when a pattern leaves no line)
        """
        content = record.content
        if self.strip_comments and language_for_path(record.rel) is not None:
            try:
                content = self.prepare_contents(record.rel, content.decode("utf-8")).encode("utf-8")
            except UnicodeDecodeError:
                pass
        lines = render_diff_lines(content, record.prefix, pattern)
        if pattern is not None and not lines:
            return 0
        tokens = self._account("\n".join(lines))
        self._print_file_banner(record.rel, tokens, record.label)
        self._emit(f"OID: {record.oid}")
        if record.previous_oid is not None:
            self._emit(f"Previous OID: {record.previous_oid}")
        self._emit("```diff")
        for line in lines:
            self._emit(line)
        self._emit("```")
        return tokens

    def format_token_usage(self, context_size: int) -> str:
        """Share of a context window used, rounded half-up to a whole percent."""
        percentage = math.floor(self._total_tokens / context_size * 100 + 0.5)
        return f"{percentage:.1f}% used ({self._total_tokens}/{context_size})"

    def print_summary(self) -> None:
        self._emit()
        self._emit(self._style("Analysis Summary", "banner"))
        self._emit(self._style(SECTION_BANNER, "banner"))
        self._emit(f"Total tokens processed: {self._total_tokens}")
        self._emit("GPT-4 context window sizes for reference:")
        for name, size in CONTEXT_WINDOWS:
            self._emit(f"- {name} context: {self.format_token_usage(size)}")
        if self.extensions is not None:
            self._emit(f"Extensions: {', '.join(self.extensions)}")
        if self.excludes:
            self._emit(f"Excludes: {', '.join(rx.pattern for rx in self.excludes)}")
