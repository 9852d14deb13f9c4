from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values, find_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from repo_snapshot.config import DEFAULT_CONTEXT_LINES, DEFAULT_REVISION
from repo_snapshot.exceptions import ConfigFileError

ENV_FILE = find_dotenv(usecwd=True)
ENV_PREFIX = "REPO_SNAPSHOT_"


def split_csv(value: str | list[str] | tuple[str, ...] | None) -> list[str] | None:
    """Split a comma-separated value into stripped, non-empty items.

    Lists (as found in YAML files) are accepted as well and only cleaned up.
    """
    if value is None:
        return None
    items = value.split(",") if isinstance(value, str) else [str(v) for v in value]
    return [item.strip() for item in items if item.strip()]


def compile_regex(pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as e:
        msg = f"invalid regular expression {pattern!r}: {e}"
        raise ValueError(msg) from e


def env_defaults() -> dict[str, str]:
    """Read `REPO_SNAPSHOT_*` defaults from the `.env` file and the environment.

    The process environment wins over the `.env` file. Keys are returned
    lowercased and without the prefix, e.g. `no_color`.
    """
    values: dict[str, str | None] = dict(dotenv_values(ENV_FILE)) if ENV_FILE else {}
    values.update(os.environ)
    return {
        key.removeprefix(ENV_PREFIX).lower(): value
        for key, value in values.items()
        if key.startswith(ENV_PREFIX) and value is not None
    }


def env_flag(value: str | None) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes", "on"}


class ConfigFile(BaseModel):
    """Defaults read from a YAML configuration file (`--config`)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    pattern: str | None = None
    extensions: list[str] | None = None
    excludes: list[str] | None = None
    context_lines: int | None = Field(default=None, ge=0)
    strip_comments: bool | None = None

    @field_validator("extensions", "excludes", mode="before")
    @classmethod
    def _split(cls, value: Any) -> list[str] | None:  # noqa: ANN401
        return split_csv(value)


def load_config_file(path: Path) -> ConfigFile:
    """Load and validate a YAML configuration file.

    Args:
        path (Path): the YAML file to read

    Raises:
        ConfigFileError: if the file cannot be read, is not a YAML mapping or has unknown keys

    Returns:
        ConfigFile: the validated defaults
    """
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigFileError(file=path, detail=str(e)) from e
    if not isinstance(data, dict):
        raise ConfigFileError(file=path, detail="expected a mapping at top level")
    try:
        return ConfigFile.model_validate({str(k).replace("-", "_"): v for k, v in data.items()})
    except ValidationError as e:
        raise ConfigFileError(file=path, detail=str(e)) from e


class Settings(BaseModel):
    """Configuration settings for one repo_snapshot run."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True, extra="forbid")

    path: Path = Field(..., description="Repository root.")
    pattern: re.Pattern[str] | None = Field(
        default=None,
        description="Regex activating match-with-context mode.",
    )
    extensions: frozenset[str] | None = Field(
        default=None,
        description="Allowed lowercase extensions, without leading dot.",
    )
    context_lines: int = Field(
        default=DEFAULT_CONTEXT_LINES,
        ge=0,
        description="Lines of context around each match.",
    )
    git_from: str | None = Field(default=None, description="Revision to diff from.")
    git_to: str | None = Field(default=None, description="Revision to diff to.")
    excludes: tuple[re.Pattern[str], ...] = Field(
        default=(),
        description="Paths matching any of these regexes are excluded.",
    )
    strip_comments: bool = Field(default=False, description="Strip comments of supported languages.")
    no_color: bool = Field(default=False, description="Disable colored output.")
    config: Path | None = Field(default=None, description="YAML configuration file.")

    @field_validator("path")
    @classmethod
    def _existing_directory(cls, value: Path) -> Path:
        if not value.is_dir():
            msg = f"path {str(value)!r} is not a directory"
            raise ValueError(msg)
        return value

    @field_validator("pattern", mode="before")
    @classmethod
    def _compile_pattern(cls, value: Any) -> re.Pattern[str] | None:  # noqa: ANN401
        if value is None or isinstance(value, re.Pattern):
            return value
        return compile_regex(str(value))

    @field_validator("excludes", mode="before")
    @classmethod
    def _compile_excludes(cls, value: Any) -> tuple[re.Pattern[str], ...]:  # noqa: ANN401
        items = value if isinstance(value, (list, tuple)) else split_csv(value) or []
        return tuple(v if isinstance(v, re.Pattern) else compile_regex(str(v)) for v in items)

    @field_validator("extensions", mode="before")
    @classmethod
    def _normalize_extensions(cls, value: Any) -> frozenset[str] | None:  # noqa: ANN401
        items = split_csv(value) if isinstance(value, (str, list, tuple)) else value
        if items is None:
            return None
        return frozenset(item.lower().lstrip(".") for item in items if item.strip("."))

    @property
    def diff_mode(self) -> bool:
        """Diff mode is entered iff a revision was given on either side."""
        return self.git_from is not None or self.git_to is not None

    @property
    def from_revision(self) -> str:
        return self.git_from or DEFAULT_REVISION

    @property
    def to_revision(self) -> str:
        return self.git_to or DEFAULT_REVISION
