"""Path expansion helpers shared by configuration and links."""

from __future__ import annotations

import os
from pathlib import Path


def expand_path(raw: str | os.PathLike[str], *, base_dir: Path | None = None) -> Path:
    """Return an absolute, normalised ``Path`` without following symlinks.

    Environment variables and ``~`` are expanded, relative paths are anchored at
    ``base_dir`` (or the current directory) and ``..`` segments are collapsed.
    """

    expanded = Path(os.path.expandvars(os.fspath(raw))).expanduser()
    if not expanded.is_absolute():
        expanded = (base_dir if base_dir is not None else Path.cwd()) / expanded
    return Path(os.path.normpath(expanded))


def home_directory() -> Path:
    return expand_path("~")


def is_within(path: Path, directory: Path) -> bool:
    """Return ``True`` if ``path`` is ``directory`` or lies underneath it."""

    return expand_path(path).is_relative_to(expand_path(directory))
