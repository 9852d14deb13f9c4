from __future__ import annotations

import os
import shutil
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest

if TYPE_CHECKING:
    from pytest_mock import MockerFixture


class WhitespaceEncoding:
    """Deterministic stand-in for a BPE encoding: one token per whitespace-separated word."""

    def encode(self, text: str, **_: Any) -> list[int]:
        return [len(word) for word in text.split()]


class GitRepoBuilder:
    """Throwaway git repository driven through the git command line."""

    env: dict[str, str] = {
        "GIT_AUTHOR_NAME": "Test Author",
        "GIT_AUTHOR_EMAIL": "author@example.com",
        "GIT_COMMITTER_NAME": "Test Author",
        "GIT_COMMITTER_EMAIL": "author@example.com",
        "GIT_CONFIG_NOSYSTEM": "1",
        "GIT_CONFIG_GLOBAL": os.devnull,
    }

    def __init__(self, root: Path) -> None:
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)
        self.git("init", "-q")

    def git(self, *args: str) -> str:
        out = subprocess.run(
            ["git", "-C", str(self.root), *args],
            check=True,
            capture_output=True,
            text=True,
            env={**os.environ, **self.env},
        )
        return out.stdout.strip()

    def write(self, rel: str, content: str | bytes) -> Path:
        path = self.root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
        return path

    def remove(self, rel: str) -> None:
        (self.root / rel).unlink()

    def commit(self, message: str, tag: str | None = None) -> str:
        self.git("add", "-A")
        self.git("commit", "-q", "--allow-empty", "--no-verify", "-m", message)
        if tag:
            self.git("tag", tag)
        return self.git("rev-parse", "HEAD")


@pytest.fixture
def fake_encoding() -> WhitespaceEncoding:
    return WhitespaceEncoding()


@pytest.fixture
def patch_encoding(mocker: MockerFixture, fake_encoding: WhitespaceEncoding) -> WhitespaceEncoding:
    """Make `cli.main` use the whitespace encoding instead of downloading p50k_base."""
    from repo_snapshot import cli

    mocker.patch.object(cli, "load_encoding", return_value=fake_encoding)
    return fake_encoding


@pytest.fixture
def git_repo(tmp_path: Path) -> GitRepoBuilder:
    if shutil.which("git") is None:
        pytest.skip("git executable not available")
    return GitRepoBuilder(tmp_path / "repo")


@pytest.fixture
def sample_repo(tmp_path: Path) -> Path:
    """A small Rust project laid out like a cargo crate."""
    root = tmp_path / "sample"
    (root / "src").mkdir(parents=True)
    (root / "src" / "main.rs").write_text(
        'fn main() {\n    println!("Hello, world!");\n}\n',
        encoding="utf-8",
    )
    (root / "src" / "lib.rs").write_text(
        "pub fn add(a: i32, b: i32) -> i32 {\n    a + b\n}\n",
        encoding="utf-8",
    )
    return root
