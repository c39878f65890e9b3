from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Mapping, Sequence

import pytest

from dotplan.adapters import Registry
from dotplan.errors import AdapterError
from dotplan.models import ProgramAction, ProgramDiff


class TickingClock:
    """Returns a new whole second on every call."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(seconds=1)
        return value


class FakePackageManager:
    def __init__(self, installed: Sequence[str] = ()) -> None:
        self.installed: set[str] = set(installed)
        self.taps: set[str] = set()
        self.casks: set[str] = set()
        self.calls: list[tuple[str, tuple[str, ...]]] = []
        self.fail_on_install = False

    def install(self, packages: Sequence[str]) -> None:
        self.calls.append(("install", tuple(packages)))
        if self.fail_on_install:
            raise AdapterError(f"install failed: {', '.join(packages)}")
        self.installed.update(packages)

    def uninstall(self, packages: Sequence[str]) -> None:
        self.calls.append(("uninstall", tuple(packages)))
        self.installed.difference_update(packages)

    def update(self, packages: Sequence[str] | None = None) -> None:
        self.calls.append(("update", tuple(packages or ())))

    def is_installed(self, package: str) -> bool:
        return package in self.installed

    def list_installed(self) -> list[str]:
        return sorted(self.installed)

    def add_taps(self, taps: Sequence[str]) -> None:
        self.calls.append(("add_taps", tuple(taps)))
        self.taps.update(taps)

    def has_tap(self, tap: str) -> bool:
        return tap in self.taps

    def install_casks(self, casks: Sequence[str]) -> None:
        self.calls.append(("install_casks", tuple(casks)))
        self.casks.update(casks)

    def is_cask_installed(self, cask: str) -> bool:
        return cask in self.casks


class PlainPackageManager:
    """A package manager without tap or cask support."""

    def __init__(self) -> None:
        self.installed: set[str] = set()

    def install(self, packages: Sequence[str]) -> None:
        self.installed.update(packages)

    def uninstall(self, packages: Sequence[str]) -> None:
        self.installed.difference_update(packages)

    def update(self, packages: Sequence[str] | None = None) -> None:
        pass

    def is_installed(self, package: str) -> bool:
        return package in self.installed

    def list_installed(self) -> list[str]:
        return sorted(self.installed)


class FakeProgramHandler:
    def __init__(self) -> None:
        self.configured: dict[str, Any] | None = None
        self.calls: list[dict[str, Any]] = []

    def configure(self, options: Mapping[str, Any]) -> None:
        self.calls.append(dict(options))
        self.configured = dict(options)

    def diff_configuration(self, options: Mapping[str, Any]) -> ProgramDiff:
        if self.configured == dict(options):
            return ProgramDiff(action=ProgramAction.NO_CHANGE)
        return ProgramDiff(action=ProgramAction.CONFIGURE, details="options changed")


@pytest.fixture
def fake_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    return home


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def source_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "dotfiles"
    directory.mkdir()
    return directory


@pytest.fixture
def state_dir(tmp_path: Path) -> Path:
    return tmp_path / "state"


@pytest.fixture
def package_manager() -> FakePackageManager:
    return FakePackageManager()


@pytest.fixture
def plain_package_manager() -> PlainPackageManager:
    return PlainPackageManager()


@pytest.fixture
def program_handler() -> FakeProgramHandler:
    return FakeProgramHandler()


@pytest.fixture
def registry(package_manager: FakePackageManager, program_handler: FakeProgramHandler) -> Registry:
    return Registry(package_managers={"homebrew": package_manager}, programs={"git": program_handler})
