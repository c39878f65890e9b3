"""High level orchestration of apply and diff runs."""

from __future__ import annotations

import logging
import subprocess
from typing import Any, Mapping

from .adapters import PackageManager, Registry, SupportsCasks, SupportsTaps
from .config import Configuration, DotfilesConfig, PackageManagerConfig, ProgramConfig
from .dotfiles import DotfilesManager
from .errors import AdapterError, ConfigurationError, ValidationError
from .models import (
    ApplyOutcome,
    DiffAction,
    DiffReport,
    EnginePhase,
    ExecutionMode,
    FailureKind,
    LinkDiff,
    LinkRecord,
    PackageDiff,
    ProgramAction,
    ProgramDiff,
)
from .state_manager import StateManager

logger = logging.getLogger(__name__)


def classify_failure(exc: BaseException) -> FailureKind:
    """Map an error raised while applying to its ``FailureKind``."""

    if isinstance(exc, ConfigurationError):
        return FailureKind.CONFIGURATION
    if isinstance(exc, (AdapterError, subprocess.CalledProcessError)):
        return FailureKind.ADAPTER
    if isinstance(exc, OSError):
        return FailureKind.IO
    return FailureKind.UNCLASSIFIED


class Engine:
    """Applies or diffs a ``Configuration``.

    ``apply`` checkpoints the recorded state, then handles packages, programs
    and dotfiles in that order. Any error in those steps rolls the recorded
    state back to the checkpoint; changes already made on disk or by package
    managers are not undone.
    """

    def __init__(
        self,
        state_manager: StateManager,
        dotfiles_manager: DotfilesManager | None = None,
        registry: Registry | None = None,
        *,
        keep_checkpoints: int | None = None,
    ) -> None:
        self.state_manager = state_manager
        self.dotfiles_manager = dotfiles_manager or DotfilesManager()
        self.registry = registry or Registry()
        self.keep_checkpoints = keep_checkpoints
        self.phase = EnginePhase.IDLE

    @property
    def mode(self) -> ExecutionMode:
        return self.dotfiles_manager.mode

    def apply(self, config: Configuration | None) -> ApplyOutcome:
        self.phase = EnginePhase.VALIDATING
        try:
            config = self._validate(config)
        except ValidationError:
            self.phase = EnginePhase.FAILED
            raise

        checkpoint_id = self.state_manager.create_checkpoint()
        self.phase = EnginePhase.CHECKPOINTED

        completed: list[EnginePhase] = []
        links: list[LinkRecord] = []
        try:
            self.phase = EnginePhase.APPLYING_PACKAGES
            self._apply_packages(config.packages)
            completed.append(self.phase)

            self.phase = EnginePhase.APPLYING_PROGRAMS
            self._apply_programs(config.programs)
            completed.append(self.phase)

            self.phase = EnginePhase.APPLYING_DOTFILES
            if config.dotfiles is not None:
                links = self._apply_dotfiles(config.dotfiles)
            completed.append(self.phase)

            self.state_manager.save_state()
        except Exception as exc:  # noqa: BLE001
            kind = classify_failure(exc)
            logger.error("Error applying configuration during %s (%s): %s", self.phase.value, kind.value, exc)
            logger.debug("Apply failure details", exc_info=exc)
            rolled_back = self.rollback_to_checkpoint(checkpoint_id)
            return ApplyOutcome(
                success=False,
                checkpoint_id=checkpoint_id,
                phase=self.phase,
                completed_phases=tuple(completed),
                links=tuple(links),
                error=exc,
                failure_kind=kind,
                rolled_back=rolled_back,
            )

        self.phase = EnginePhase.COMMITTED
        self._prune_checkpoints()
        return ApplyOutcome(
            success=True,
            checkpoint_id=checkpoint_id,
            phase=self.phase,
            completed_phases=tuple(completed),
            links=tuple(links),
        )

    def diff(self, config: Configuration | None) -> DiffReport:
        config = self._validate(config)
        dotfiles: tuple[LinkDiff, ...] = ()
        if config.dotfiles is not None:
            dotfiles = self._diff_dotfiles(config.dotfiles)
        return DiffReport(
            packages=self._diff_packages(config.packages),
            programs=self._diff_programs(config.programs),
            dotfiles=dotfiles,
        )

    def rollback_to_checkpoint(self, checkpoint_id: str) -> bool:
        self.phase = EnginePhase.ROLLING_BACK
        try:
            self.state_manager.rollback_to(checkpoint_id)
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to roll back to checkpoint %s: %s", checkpoint_id, exc)
            self.phase = EnginePhase.FAILED
            return False
        self.phase = EnginePhase.ROLLED_BACK
        return True

    def state_summary(self) -> dict[str, Any]:
        return self.state_manager.state_summary()

    # ------------------------------------------------------------------
    # Internal helpers

    def _validate(self, config: Configuration | None) -> Configuration:
        if config is None:
            raise ValidationError("Configuration cannot be None")
        config.validate(self.registry)
        return config

    def _apply_packages(self, packages: Mapping[str, PackageManagerConfig]) -> None:
        for name, package_config in packages.items():
            if self.mode.is_simulated:
                logger.info(
                    "Would configure %s packages: install=%s uninstall=%s taps=%s casks=%s",
                    name,
                    list(package_config.install),
                    list(package_config.uninstall),
                    list(package_config.taps),
                    list(package_config.casks),
                )
                continue

            manager = self.registry.package_manager(name)
            self._apply_extras(name, manager, package_config)

            to_install = [package for package in package_config.install if not manager.is_installed(package)]
            if to_install:
                logger.info("Installing %s packages: %s", name, ", ".join(to_install))
                manager.install(to_install)

            to_uninstall = [package for package in package_config.uninstall if manager.is_installed(package)]
            if to_uninstall:
                logger.info("Uninstalling %s packages: %s", name, ", ".join(to_uninstall))
                manager.uninstall(to_uninstall)

            recorded = set(self.state_manager.get_package_state(name))
            recorded.update(package_config.install)
            recorded.update(package_config.casks)
            recorded.difference_update(package_config.uninstall)
            if sorted(recorded) != self.state_manager.get_package_state(name):
                self.state_manager.update_package_state(name, sorted(recorded))

    def _apply_extras(self, name: str, manager: PackageManager, package_config: PackageManagerConfig) -> None:
        if package_config.taps:
            if isinstance(manager, SupportsTaps):
                missing_taps = [tap for tap in package_config.taps if not manager.has_tap(tap)]
                if missing_taps:
                    logger.info("Adding %s taps: %s", name, ", ".join(missing_taps))
                    manager.add_taps(missing_taps)
            else:
                logger.warning("%s does not support taps, ignoring: %s", name, ", ".join(package_config.taps))

        if package_config.casks:
            if isinstance(manager, SupportsCasks):
                missing_casks = [cask for cask in package_config.casks if not manager.is_cask_installed(cask)]
                if missing_casks:
                    logger.info("Installing %s casks: %s", name, ", ".join(missing_casks))
                    manager.install_casks(missing_casks)
            else:
                logger.warning("%s does not support casks, ignoring: %s", name, ", ".join(package_config.casks))

    def _apply_programs(self, programs: Mapping[str, ProgramConfig]) -> None:
        for name, program_config in programs.items():
            handler = self.registry.program(name)
            if handler.diff_configuration(program_config.options).action is ProgramAction.NO_CHANGE:
                logger.debug("%s is already configured", name)
                continue

            logger.info("Configuring %s", name)
            handler.configure(program_config.options)
            self.state_manager.update_program_state(name, program_config.options)

    def _apply_dotfiles(self, dotfiles: DotfilesConfig) -> list[LinkRecord]:
        records: list[LinkRecord] = []
        for link in dotfiles.links:
            diff = self.dotfiles_manager.diff(link)
            if diff.action is DiffAction.NO_CHANGE:
                logger.debug("Dotfile %s unchanged: %s", link.name, diff.reason)
                continue

            logger.info("Placing dotfile %s (%s, %s): %s", link.name, link.action.value, diff.action.value, diff.reason)
            record = self.dotfiles_manager.apply(link)
            self.state_manager.update_dotfile_state(record)
            records.append(record)
        return records

    def _diff_packages(self, packages: Mapping[str, PackageManagerConfig]) -> dict[str, PackageDiff]:
        changes: dict[str, PackageDiff] = {}
        for name, package_config in packages.items():
            manager = self.registry.package_manager(name)
            casks: tuple[str, ...] = ()
            if isinstance(manager, SupportsCasks):
                casks = tuple(cask for cask in package_config.casks if not manager.is_cask_installed(cask))
            changes[name] = PackageDiff(
                install=tuple(package for package in package_config.install if not manager.is_installed(package)),
                uninstall=tuple(package for package in package_config.uninstall if manager.is_installed(package)),
                casks=casks,
            )
        return changes

    def _diff_programs(self, programs: Mapping[str, ProgramConfig]) -> dict[str, ProgramDiff]:
        changes: dict[str, ProgramDiff] = {}
        for name, program_config in programs.items():
            diff = self.registry.program(name).diff_configuration(program_config.options)
            if diff.action is not ProgramAction.NO_CHANGE:
                changes[name] = diff
        return changes

    def _diff_dotfiles(self, dotfiles: DotfilesConfig) -> tuple[LinkDiff, ...]:
        diffs = (self.dotfiles_manager.diff(link) for link in dotfiles.links)
        return tuple(diff for diff in diffs if diff.action is not DiffAction.NO_CHANGE)

    def _prune_checkpoints(self) -> None:
        if self.keep_checkpoints is None:
            return
        try:
            self.state_manager.cleanup_checkpoints(self.keep_checkpoints)
        except OSError as exc:
            logger.warning("Could not remove old checkpoints: %s", exc)
