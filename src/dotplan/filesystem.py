"""Filesystem helpers for dotplan."""

from __future__ import annotations

import os
import shutil
from functools import partial
from hashlib import blake2b
from pathlib import Path

from .models import EntryType

_CHUNK_SIZE = 1024 * 1024


def lexists(path: Path) -> bool:
    """Return ``True`` if anything, including a dangling symlink, sits at ``path``."""

    return path.exists() or path.is_symlink()


def ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def copy_entry(source: Path, destination: Path) -> EntryType:
    """Replace ``destination`` with a copy of ``source``.

    Directories are copied recursively and symlinks inside them are kept as
    symlinks.
    """

    ensure_parent(destination)
    remove_path(destination)

    if source.is_dir():
        shutil.copytree(source, destination, symlinks=True)
        return EntryType.DIRECTORY
    shutil.copy2(source, destination)
    return EntryType.FILE


def create_symlink(link: Path, target: Path) -> None:
    """Point ``link`` at the absolute path ``target``."""

    ensure_parent(link)
    remove_path(link)
    link.symlink_to(target, target_is_directory=target.is_dir())


def symlink_points_to(link: Path, target: Path) -> bool:
    return link.is_symlink() and link.resolve(strict=False) == target.resolve(strict=False)


def content_digest(path: Path) -> str:
    """Hash a file's bytes, or a directory's layout together with its files' bytes.

    Symlinks inside a directory contribute their link text, not what they
    point at.
    """

    hasher = blake2b(digest_size=32)
    if not path.is_dir():
        _feed_file(hasher, path)
        return hasher.hexdigest()

    for child in sorted(path.rglob("*")):
        hasher.update(child.relative_to(path).as_posix().encode())
        if child.is_symlink():
            hasher.update(b"\0l\0" + os.readlink(child).encode())
        elif child.is_dir():
            hasher.update(b"\0d")
        else:
            hasher.update(b"\0f\0")
            _feed_file(hasher, child)
        hasher.update(b"\0")
    return hasher.hexdigest()


def contents_match(first: Path, second: Path) -> bool:
    """Return ``True`` if two real files or directories hold identical content."""

    for path in (first, second):
        if path.is_symlink() or not path.exists():
            return False
    if first.is_dir() != second.is_dir():
        return False
    return content_digest(first) == content_digest(second)


def remove_path(path: Path) -> None:
    """Delete whatever sits at ``path``; a symlink is removed, never followed."""

    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif lexists(path):
        path.unlink()


def _feed_file(hasher, path: Path) -> None:
    with path.open("rb") as handle:
        for chunk in iter(partial(handle.read, _CHUNK_SIZE), b""):
            hasher.update(chunk)
