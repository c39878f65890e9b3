"""Interfaces for package managers and program handlers, and their registry."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, Sequence, runtime_checkable

from .errors import ConfigurationError
from .models import ProgramDiff


@runtime_checkable
class PackageManager(Protocol):
    """Operations the engine needs from a package manager.

    ``is_installed`` and ``list_installed`` must not change the system, since
    they are also used while diffing.
    """

    def install(self, packages: Sequence[str]) -> None: ...

    def uninstall(self, packages: Sequence[str]) -> None: ...

    def update(self, packages: Sequence[str] | None = None) -> None: ...

    def is_installed(self, package: str) -> bool: ...

    def list_installed(self) -> list[str]: ...


@runtime_checkable
class SupportsTaps(Protocol):
    """Package managers that can add third-party repositories."""

    def add_taps(self, taps: Sequence[str]) -> None: ...

    def has_tap(self, tap: str) -> bool: ...


@runtime_checkable
class SupportsCasks(Protocol):
    """Package managers that can install application bundles."""

    def install_casks(self, casks: Sequence[str]) -> None: ...

    def is_cask_installed(self, cask: str) -> bool: ...


@runtime_checkable
class ProgramHandler(Protocol):
    """Writes configuration for one program."""

    def configure(self, options: Mapping[str, Any]) -> None: ...

    def diff_configuration(self, options: Mapping[str, Any]) -> ProgramDiff: ...


@dataclass
class Registry:
    """Named package managers and program handlers available to an engine."""

    package_managers: dict[str, PackageManager] = field(default_factory=dict)
    programs: dict[str, ProgramHandler] = field(default_factory=dict)

    def register_package_manager(self, name: str, manager: PackageManager) -> None:
        self.package_managers[name] = manager

    def register_program(self, name: str, handler: ProgramHandler) -> None:
        self.programs[name] = handler

    def package_manager(self, name: str) -> PackageManager:
        try:
            return self.package_managers[name]
        except KeyError as exc:
            raise ConfigurationError(f"Unknown package manager: {name}") from exc

    def program(self, name: str) -> ProgramHandler:
        try:
            return self.programs[name]
        except KeyError as exc:
            raise ConfigurationError(f"Unknown program: {name}") from exc
