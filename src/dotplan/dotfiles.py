"""Placing dotfiles on disk: linking, copying, rendering and removing."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Mapping

from .errors import ConfigurationError
from .filesystem import (
    contents_match,
    copy_entry,
    create_symlink,
    ensure_parent,
    lexists,
    remove_path,
    symlink_points_to,
)
from .models import (
    DEFAULT_TARGET_DIRECTORY,
    CurrentLink,
    DiffAction,
    ExecutionMode,
    Link,
    LinkAction,
    LinkDiff,
    LinkRecord,
)
from .paths import expand_path, home_directory, is_within
from .state import Clock, local_now

logger = logging.getLogger(__name__)

BACKUP_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


def render_template(text: str, variables: Mapping[str, Any]) -> str:
    """Substitute ``{{key}}`` placeholders in ``text``."""

    for key, value in variables.items():
        text = text.replace(f"{{{{{key}}}}}", str(value))
    return text


class DotfilesManager:
    """Applies, removes and diffs ``Link`` values against the filesystem.

    In simulated mode targets are redirected under the mode's root and
    missing sources are replaced by placeholder files created there.
    """

    def __init__(self, mode: ExecutionMode | None = None, *, clock: Clock = local_now) -> None:
        self.mode = mode or ExecutionMode.real()
        self._clock = clock

    def apply(self, link: Link) -> LinkRecord:
        self.validate(link)
        source = self._source_path(link)
        target = self._target_path(link)

        self.backup_existing_target(target)
        ensure_parent(target)

        if link.action is LinkAction.LINK:
            create_symlink(target, source)
            logger.info("Linked %s -> %s", target, source)
        elif link.action is LinkAction.COPY:
            entry_type = copy_entry(source, target)
            logger.info("Copied %s %s -> %s", entry_type.value, source, target)
        else:
            target.write_text(render_template(source.read_text(), link.variables))
            logger.info("Rendered template %s -> %s", source, target)

        return LinkRecord(
            name=link.name,
            source=str(link.source),
            target=str(link.target),
            type=link.action,
            timestamp=self._clock(),
        )

    def remove(self, link: Link) -> bool:
        target = self._target_path(link)
        if not lexists(target):
            logger.info("Target does not exist: %s", target)
            return False

        self.backup_existing_target(target)
        remove_path(target)
        logger.info("Removed %s", target)
        return True

    def diff(self, link: Link) -> LinkDiff:
        source = self._source_path(link)
        target = self._target_path(link)

        def result(action: DiffAction, reason: str) -> LinkDiff:
            return LinkDiff(name=link.name, action=action, reason=reason, source=source, target=target)

        if not lexists(target):
            return result(DiffAction.CREATE, "target does not exist")

        if link.action is LinkAction.LINK and symlink_points_to(target, source):
            return result(DiffAction.NO_CHANGE, "already correct")

        if link.action is not LinkAction.LINK and not target.is_symlink():
            if self._content_matches(link, source, target):
                return result(DiffAction.NO_CHANGE, "content matches")
            return result(DiffAction.UPDATE, "content differs")

        return result(DiffAction.REPLACE, "type mismatch")

    def validate(self, link: Link) -> None:
        home = home_directory()
        if link.target == home or not is_within(link.target, home):
            raise ConfigurationError(f"Target path must be within user home directory: {link.target}")

        source = self._source_path(link)
        if self.mode.is_simulated and not lexists(source):
            self._synthesize_source(source, link.name)

        if not source.exists():
            raise ConfigurationError(f"Source path does not exist: {source}")

        target = self._target_path(link)
        if symlink_points_to(target, source):
            logger.warning("Link already exists and points to the same source: %s", target)

    def backup_existing_target(self, target: Path) -> Path | None:
        """Clear ``target`` before it is overwritten.

        Symlinks are removed; files and directories are moved to
        ``<target>.backup_<timestamp>``, which is returned.
        """

        if not lexists(target):
            return None

        if target.is_symlink():
            target.unlink()
            logger.info("Removed existing symlink: %s", target)
            return None

        stamp = self._clock().strftime(BACKUP_TIMESTAMP_FORMAT)
        backup = target.with_name(f"{target.name}.backup_{stamp}")
        remove_path(backup)
        target.rename(backup)
        logger.info("Backed up existing target to: %s", backup)
        return backup

    def list_current_links(self, directory: Path | str | None = None) -> list[CurrentLink]:
        """Describe the visible entries of a configuration directory."""

        root = self.mode.map_path(expand_path(directory or DEFAULT_TARGET_DIRECTORY))
        if not root.is_dir():
            return []

        links: list[CurrentLink] = []
        for entry in sorted(root.iterdir()):
            if entry.name.startswith("."):
                continue
            if entry.is_symlink():
                links.append(
                    CurrentLink(
                        name=entry.name,
                        target=entry,
                        type=LinkAction.LINK,
                        is_symlink=True,
                        source=os.readlink(entry),
                    )
                )
            else:
                links.append(CurrentLink(name=entry.name, target=entry, type=LinkAction.COPY, is_symlink=False))
        return links

    # ------------------------------------------------------------------
    # Internal helpers

    def _source_path(self, link: Link) -> Path:
        if self.mode.is_simulated and not lexists(link.source):
            return self.mode.map_path(link.source)
        return link.source

    def _target_path(self, link: Link) -> Path:
        return self.mode.map_path(link.target)

    def _content_matches(self, link: Link, source: Path, target: Path) -> bool:
        if link.action is LinkAction.COPY:
            return contents_match(source, target)
        if not source.is_file() or not target.is_file():
            return False
        return target.read_text() == render_template(source.read_text(), link.variables)

    def _synthesize_source(self, source: Path, name: str) -> None:
        ensure_parent(source)
        source.write_text(
            f"# Placeholder {name} configuration created for a simulated run\n"
            f"# Replace this file with your actual {name} configuration\n"
        )
        logger.info("Created placeholder source for simulated run: %s", source)
