"""Language-aware comment removal built on tree-sitter grammars.

Each supported language registers a grammar loader and the node types that
count as comments. `strip_comments` parses the source, collects the byte
ranges of comment nodes, merges overlapping ranges and returns every other
byte untouched. A source that does not parse cleanly is returned as is.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import PurePosixPath
from typing import TYPE_CHECKING

from tree_sitter import Language, Parser

from repo_snapshot.config import EXT2LANGUAGE, SupportedLanguage
from repo_snapshot.logging import logger

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from tree_sitter import Tree

    GrammarLoader = Callable[[], object]

GRAMMARS: dict[SupportedLanguage, GrammarLoader] = {}
COMMENT_NODE_TYPES: dict[SupportedLanguage, frozenset[str]] = {}


def register_grammar(
    language: SupportedLanguage,
    comment_types: Iterable[str] = ("comment",),
) -> Callable[[GrammarLoader], GrammarLoader]:
    """Decorator to register a tree-sitter grammar loader for a language.

    Args:
        language (SupportedLanguage): the language the decorated loader provides a grammar for
        comment_types (Iterable[str]): node types removed by the stripper for this language

    Returns:
        Callable[[GrammarLoader], GrammarLoader]: a decorator that records the loader in
        `GRAMMARS` and its comment node types in `COMMENT_NODE_TYPES`
    """

    def decorator(func: GrammarLoader) -> GrammarLoader:
        GRAMMARS[language] = func
        COMMENT_NODE_TYPES[language] = frozenset(comment_types)
        return func

    return decorator


@register_grammar(SupportedLanguage.RUST, comment_types=("line_comment", "block_comment"))
def _rust_grammar() -> object:
    import tree_sitter_rust  # noqa: PLC0415

    return tree_sitter_rust.language()


@register_grammar(SupportedLanguage.JAVASCRIPT)
def _javascript_grammar() -> object:
    import tree_sitter_javascript  # noqa: PLC0415

    return tree_sitter_javascript.language()


@register_grammar(SupportedLanguage.PYTHON)
def _python_grammar() -> object:
    import tree_sitter_python  # noqa: PLC0415

    return tree_sitter_python.language()


@register_grammar(SupportedLanguage.GO)
def _go_grammar() -> object:
    import tree_sitter_go  # noqa: PLC0415

    return tree_sitter_go.language()


def language_for_path(path: str | PurePosixPath) -> SupportedLanguage | None:
    """Resolve the stripper language from a file extension, case-insensitively.

    Args:
        path (str | PurePosixPath): the file path (only its suffix is used)

    Returns:
        SupportedLanguage | None: the language, or None when stripping does not apply
    """
    suffix = PurePosixPath(path).suffix.lower().lstrip(".")
    return EXT2LANGUAGE.get(suffix)


@lru_cache(maxsize=None)
def get_parser(language: SupportedLanguage) -> Parser:
    """Build (once) a parser for `language`."""
    return Parser(Language(GRAMMARS[language]()))


def comment_ranges(tree: Tree, comment_types: frozenset[str]) -> list[tuple[int, int]]:
    """Collect half-open byte ranges of comment nodes in document order.

    Comment nodes are not descended into: doc comments carry child nodes that
    would otherwise produce nested ranges.
    """
    ranges: list[tuple[int, int]] = []
    stack = [tree.root_node]
    while stack:
        node = stack.pop()
        if node.type in comment_types:
            ranges.append((node.start_byte, node.end_byte))
            continue
        stack.extend(reversed(node.children))
    return sorted(ranges)


def merge_ranges(ranges: Iterable[tuple[int, int]]) -> list[tuple[int, int]]:
    """Merge overlapping or touching `[start, end)` ranges.

    Args:
        ranges (Iterable[tuple[int, int]]): the ranges, in any order

    Returns:
        list[tuple[int, int]]: disjoint ranges sorted by start
    """
    merged: list[tuple[int, int]] = []
    for start, end in sorted(ranges):
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def remove_ranges(data: bytes, ranges: Iterable[tuple[int, int]]) -> bytes:
    """Return the bytes of `data` outside the given disjoint, sorted ranges."""
    out = bytearray()
    last_end = 0
    for start, end in ranges:
        out += data[last_end:start]
        last_end = end
    out += data[last_end:]
    return bytes(out)


def strip_comments(source: str, language: SupportedLanguage | None) -> str:
    """Remove the comments of `source` written in `language`.

    Non-comment bytes are kept verbatim and in order, so line breaks outside
    comments survive. An unknown language, a parse error or a parser failure
    all give back `source` unchanged.

    Args:
        source (str): the source text
        language (SupportedLanguage | None): the language of the source

    Returns:
        str: the source without its comments
    """
    if language is None or language not in GRAMMARS:
        return source
    data = source.encode("utf-8")
    try:
        tree = get_parser(language).parse(data)
    except Exception as e:
        logger.debug("Parser failure for %s, keeping comments: %s", language, e)
        return source
    if tree.root_node.has_error:
        logger.debug("Parse error in %s source, keeping comments", language)
        return source
    ranges = merge_ranges(comment_ranges(tree, COMMENT_NODE_TYPES[language]))
    if not ranges:
        return source
    return remove_ranges(data, ranges).decode("utf-8")
