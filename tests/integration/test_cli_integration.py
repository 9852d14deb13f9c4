from __future__ import annotations

import io
import re
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from repo_snapshot import cli
from repo_snapshot.config import FILE_BANNER
from repo_snapshot.git_repository import Addition, GitRepository, Modification
from repo_snapshot.output_construction import OutputFormatter
from repo_snapshot.pipeline import run_diff
from repo_snapshot.settings import Settings

if TYPE_CHECKING:
    from tests.conftest import GitRepoBuilder, WhitespaceEncoding

OID_LINE = re.compile(r"^OID: [0-9a-f]{40}$", re.MULTILINE)


def _snapshot(capsys: pytest.CaptureFixture[str], *argv: str) -> tuple[int, str]:
    code = cli.main(list(argv))
    return code, capsys.readouterr().out


@pytest.mark.integration
@pytest.mark.usefixtures("patch_encoding")
def test_diff_between_two_tags_shows_added_file(
    git_repo: GitRepoBuilder,
    capsys: pytest.CaptureFixture[str],
) -> None:
    git_repo.write("README.md", "readme\n")
    git_repo.commit("first", tag="A")
    git_repo.write("hello.txt", "hi\n")
    git_repo.commit("second", tag="B")

    code, out = _snapshot(capsys, "--path", str(git_repo.root), "--git-from", "A", "--git-to", "B")

    assert code == 0
    assert "Repository Snapshot: repo @ A → B\n" in out
    assert f"{FILE_BANNER}\nFile: hello.txt [added] (≈1 tokens)\n{FILE_BANNER}\n" in out
    assert OID_LINE.search(out)
    assert "```diff\n+hi\n```\n" in out
    assert "README.md" not in out
    assert "Total tokens processed: 1\n" in out


@pytest.mark.integration
@pytest.mark.usefixtures("patch_encoding")
def test_diff_modification_prints_old_side_first(
    git_repo: GitRepoBuilder,
    capsys: pytest.CaptureFixture[str],
) -> None:
    git_repo.write("a.txt", "one\n")
    old = git_repo.commit("first")
    git_repo.write("a.txt", "two\n")
    git_repo.commit("second")

    code, out = _snapshot(capsys, "--path", str(git_repo.root), "--git-from", old)

    assert code == 0
    assert f"@ {old} → HEAD" in out
    old_idx = out.index("File: a.txt [modified, old]")
    new_idx = out.index("File: a.txt [modified, new]")
    assert old_idx < new_idx
    assert "```diff\n-one\n```" in out[old_idx:new_idx]
    assert "Previous OID:" not in out[old_idx:new_idx]
    assert "Previous OID:" in out[new_idx:]
    assert "```diff\n+two\n```" in out[new_idx:]


@pytest.mark.integration
@pytest.mark.usefixtures("patch_encoding")
def test_diff_deletion(git_repo: GitRepoBuilder, capsys: pytest.CaptureFixture[str]) -> None:
    git_repo.write("bye.txt", "bye now\n")
    git_repo.write("keep.txt", "keep\n")
    git_repo.commit("first", tag="v1")
    git_repo.remove("bye.txt")
    git_repo.commit("second", tag="v2")

    code, out = _snapshot(capsys, "--path", str(git_repo.root), "--git-from", "v1", "--git-to", "v2")

    assert code == 0
    assert "File: bye.txt [deleted] (≈2 tokens)" in out
    assert "```diff\n-bye now\n```" in out
    assert "keep.txt" not in out


@pytest.mark.integration
@pytest.mark.usefixtures("patch_encoding")
def test_diff_of_identical_trees_has_no_file_sections(
    git_repo: GitRepoBuilder,
    capsys: pytest.CaptureFixture[str],
) -> None:
    git_repo.write("a.txt", "a\n")
    git_repo.commit("first", tag="A")
    git_repo.commit("empty", tag="B")

    code, out = _snapshot(capsys, "--path", str(git_repo.root), "--git-from", "A", "--git-to", "B")

    assert code == 0
    assert "@ A → B" in out
    assert "File:" not in out
    assert "Total tokens processed: 0\n" in out


@pytest.mark.integration
def test_run_diff_defaults_both_sides_to_head(git_repo: GitRepoBuilder, fake_encoding: WhitespaceEncoding) -> None:
    git_repo.write("a.txt", "a\n")
    git_repo.commit("first")
    out = io.StringIO()

    run_diff(Settings(path=git_repo.root), OutputFormatter(fake_encoding, out=out))

    text = out.getvalue()
    assert "@ HEAD → HEAD\n" in text
    assert "File:" not in text


@pytest.mark.integration
@pytest.mark.usefixtures("patch_encoding")
def test_diff_unknown_revision_fails_without_output(
    git_repo: GitRepoBuilder,
    capsys: pytest.CaptureFixture[str],
) -> None:
    git_repo.write("a.txt", "a\n")
    git_repo.commit("first")

    code, out = _snapshot(capsys, "--path", str(git_repo.root), "--git-from", "no-such-tag")

    assert code == 1
    assert out == ""


@pytest.mark.integration
@pytest.mark.usefixtures("patch_encoding")
def test_diff_outside_a_repository_fails_without_output(
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    plain = tmp_path / "plain"
    plain.mkdir()
    (plain / ".git").write_text("not a gitdir pointer\n", encoding="utf-8")

    code, out = _snapshot(capsys, "--path", str(plain), "--git-to", "HEAD")

    assert code == 1
    assert out == ""


@pytest.mark.integration
@pytest.mark.usefixtures("patch_encoding")
def test_diff_applies_extension_and_exclude_filters(
    git_repo: GitRepoBuilder,
    capsys: pytest.CaptureFixture[str],
) -> None:
    git_repo.commit("root", tag="A")
    git_repo.write("src/lib.rs", "pub fn a() {}\n")
    git_repo.write("src/gen.rs", "fn generated() {}\n")
    git_repo.write("README.md", "docs\n")
    git_repo.write("logo.png", b"\x89PNG\r\n")
    git_repo.commit("files", tag="B")

    code, out = _snapshot(
        capsys,
        "--path",
        str(git_repo.root),
        "--git-from",
        "A",
        "--git-to",
        "B",
        "-e",
        "rs,png",
        "--excludes",
        "gen",
    )

    assert code == 0
    assert "File: src/lib.rs [added]" in out
    assert "gen.rs" not in out.split("Analysis Summary")[0]
    assert "README.md" not in out
    assert "logo.png" not in out
    assert "Extensions: png, rs\n" in out
    assert "Excludes: gen\n" in out


@pytest.mark.integration
@pytest.mark.usefixtures("patch_encoding")
def test_diff_renders_non_utf8_lines_as_hex(
    git_repo: GitRepoBuilder,
    capsys: pytest.CaptureFixture[str],
) -> None:
    git_repo.commit("root", tag="A")
    git_repo.write("data.txt", b"ok\n\xff\xfe\n")
    git_repo.commit("data", tag="B")

    code, out = _snapshot(capsys, "--path", str(git_repo.root), "--git-from", "A", "--git-to", "B")

    assert code == 0
    assert "```diff\n+ok\n+[Non-UTF-8 data: fffe]\n```" in out


@pytest.mark.integration
@pytest.mark.usefixtures("patch_encoding")
def test_diff_with_pattern_keeps_matching_lines_only(
    git_repo: GitRepoBuilder,
    capsys: pytest.CaptureFixture[str],
) -> None:
    git_repo.commit("root", tag="A")
    git_repo.write("a.rs", "fn a() {}\nlet b = 1;\n")
    git_repo.write("b.rs", "let c = 2;\n")
    git_repo.commit("code", tag="B")

    code, out = _snapshot(
        capsys,
        "--path",
        str(git_repo.root),
        "--git-from",
        "A",
        "--git-to",
        "B",
        "--pattern",
        r"fn \w+",
    )

    assert code == 0
    assert "```diff\n+fn a() {}\n```" in out
    assert "let b" not in out
    assert "b.rs" not in out


@pytest.mark.integration
@pytest.mark.usefixtures("patch_encoding")
def test_diff_strips_comments(git_repo: GitRepoBuilder, capsys: pytest.CaptureFixture[str]) -> None:
    git_repo.commit("root", tag="A")
    git_repo.write("tool.py", "x = 1  # gone\n")
    git_repo.commit("code", tag="B")

    code, out = _snapshot(
        capsys,
        "--path",
        str(git_repo.root),
        "--git-from",
        "A",
        "--git-to",
        "B",
        "--strip-comments",
    )

    assert code == 0
    assert "```diff\n+x = 1  \n```" in out
    assert "gone" not in out


@pytest.mark.integration
def test_repository_resolves_and_diffs_trees(git_repo: GitRepoBuilder) -> None:
    git_repo.write("a.txt", "one\n")
    first = git_repo.commit("first", tag="v1")
    git_repo.write("a.txt", "two\n")
    git_repo.write("dir/b.txt", "b\n")
    git_repo.commit("second")
    repo = GitRepository.open(git_repo.root)

    assert repo.resolve_revision("v1") == first
    changes = repo.diff_trees(repo.resolve_tree("v1"), repo.resolve_tree("HEAD"))

    assert [type(c) for c in changes] == [Modification, Addition]
    assert [c.path for c in changes] == [b"a.txt", b"dir/b.txt"]
    assert repo.read_blob(changes[0].oid) == b"two\n"
    assert repo.read_blob(changes[0].previous_oid) == b"one\n"
