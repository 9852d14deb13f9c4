"""BPE token counting used to estimate context-window consumption."""

from __future__ import annotations

from functools import lru_cache
from typing import Protocol

import tiktoken

from repo_snapshot.exceptions import TokenizerError

ENCODING_NAME = "p50k_base"


class Encoding(Protocol):
    """The part of `tiktoken.Encoding` the formatter relies on."""

    def encode(self, text: str, *, allowed_special: str = ...) -> list[int]: ...


@lru_cache(maxsize=None)
def load_encoding(name: str = ENCODING_NAME) -> tiktoken.Encoding:
    """Load a tiktoken encoding once per process.

    Args:
        name (str): the tiktoken encoding name. Defaults to `p50k_base`.

    Raises:
        TokenizerError: if tiktoken cannot provide the encoding.

    Returns:
        tiktoken.Encoding: the loaded encoding
    """
    try:
        return tiktoken.get_encoding(name)
    except Exception as e:
        raise TokenizerError(name=name, detail=str(e)) from e


def count_tokens(encoding: Encoding, text: str) -> int:
    """Count the tokens of `text`, special-token text included as regular tokens."""
    return len(encoding.encode(text, allowed_special="all"))
