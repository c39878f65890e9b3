"""Shared models and enums for dotplan."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import DotplanError, ValidationError
from .paths import expand_path, home_directory, is_within

DEFAULT_SOURCE_DIRECTORY = "~/.dotplan/dotfiles"
DEFAULT_TARGET_DIRECTORY = "~/.config"


class EntryType(str, Enum):
    """Kinds of filesystem entries dotplan can find at a path."""

    FILE = "file"
    DIRECTORY = "directory"


class LinkAction(str, Enum):
    """How a dotfile source is placed at its target."""

    LINK = "link"
    COPY = "copy"
    TEMPLATE = "template"


class DiffAction(str, Enum):
    """Reconciliation needed to bring a target in line with its link."""

    CREATE = "create"
    NO_CHANGE = "no_change"
    UPDATE = "update"
    REPLACE = "replace"


class ProgramAction(str, Enum):
    """Outcome reported by a program handler diff."""

    NO_CHANGE = "no_change"
    CONFIGURE = "configure"


class Link(BaseModel):
    """A single desired dotfile placement."""

    model_config = ConfigDict(frozen=True)

    name: str
    action: LinkAction = LinkAction.LINK
    source: Path
    target: Path
    variables: dict[str, Any] = Field(default_factory=dict)

    @field_validator("source", "target", mode="before")
    @classmethod
    def _expand(cls, value: Any) -> Path:
        return expand_path(value)

    @classmethod
    def build(
        cls,
        name: str,
        *,
        action: LinkAction | str = LinkAction.LINK,
        source_directory: str | Path | None = None,
        source: str | Path | None = None,
        target: str | Path | None = None,
        variables: Mapping[str, Any] | None = None,
    ) -> "Link":
        """Construct a link, filling in the default source and target paths."""

        if not name or not name.strip():
            raise ValidationError("Link name cannot be empty")

        try:
            action = LinkAction(action)
        except ValueError as exc:
            raise ValidationError(f"Unknown link action for '{name}': {action}") from exc

        base = expand_path(source_directory or DEFAULT_SOURCE_DIRECTORY)
        if source is None:
            source = base / "templates" / name if action is LinkAction.TEMPLATE else base / name
        if target is None:
            target = expand_path(DEFAULT_TARGET_DIRECTORY) / name

        return cls(
            name=name,
            action=action,
            source=source,
            target=target,
            variables=dict(variables or {}),
        )


class LinkRecord(BaseModel):
    """Metadata describing a link that has been applied."""

    model_config = ConfigDict(frozen=True)

    name: str
    source: str
    target: str
    type: LinkAction
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class LinkDiff:
    """Classification of a link against the filesystem."""

    name: str
    action: DiffAction
    reason: str
    source: Path | None = None
    target: Path | None = None


@dataclass(frozen=True, slots=True)
class CurrentLink:
    """An entry found while scanning a configuration directory."""

    name: str
    target: Path
    type: LinkAction
    is_symlink: bool
    source: str | None = None


@dataclass(frozen=True, slots=True)
class ProgramDiff:
    """Result of asking a program handler what it would change."""

    action: ProgramAction
    details: str = ""


@dataclass(frozen=True, slots=True)
class PackageDiff:
    """Packages a manager still has to install or remove."""

    install: tuple[str, ...] = ()
    uninstall: tuple[str, ...] = ()
    casks: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.install or self.uninstall or self.casks)


@dataclass(frozen=True, slots=True)
class DiffReport:
    """Everything ``Engine.diff`` found out of date."""

    packages: dict[str, PackageDiff] = field(default_factory=dict)
    programs: dict[str, ProgramDiff] = field(default_factory=dict)
    dotfiles: tuple[LinkDiff, ...] = ()

    @property
    def is_empty(self) -> bool:
        return (
            all(diff.is_empty for diff in self.packages.values())
            and not self.programs
            and not self.dotfiles
        )


class ModeKind(str, Enum):
    REAL = "real"
    SIMULATED = "simulated"


@dataclass(frozen=True, slots=True)
class ExecutionMode:
    """Whether side effects hit the real filesystem or a scratch root."""

    kind: ModeKind = ModeKind.REAL
    root: Path | None = None

    def __post_init__(self) -> None:
        if self.kind is ModeKind.SIMULATED and self.root is None:
            raise DotplanError("Simulated execution requires a root directory")

    @classmethod
    def real(cls) -> "ExecutionMode":
        return cls()

    @classmethod
    def simulated(cls, root: Path) -> "ExecutionMode":
        return cls(kind=ModeKind.SIMULATED, root=expand_path(root))

    @property
    def is_simulated(self) -> bool:
        return self.kind is ModeKind.SIMULATED

    def map_path(self, path: Path) -> Path:
        """Return where ``path`` lives under this mode."""

        if not self.is_simulated:
            return path

        if self.root is None:
            raise DotplanError("Simulated execution requires a root directory")
        expanded = expand_path(path)
        home = home_directory()
        if is_within(expanded, home):
            return self.root / "home" / expanded.relative_to(home)
        return self.root / "system" / expanded.relative_to(expanded.anchor)


class EnginePhase(str, Enum):
    """Steps of an engine run."""

    IDLE = "idle"
    VALIDATING = "validating"
    CHECKPOINTED = "checkpointed"
    APPLYING_PACKAGES = "applying_packages"
    APPLYING_PROGRAMS = "applying_programs"
    APPLYING_DOTFILES = "applying_dotfiles"
    COMMITTED = "committed"
    ROLLING_BACK = "rolling_back"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"


class FailureKind(str, Enum):
    """Category of an error that interrupted an apply."""

    CONFIGURATION = "configuration"
    IO = "io"
    ADAPTER = "adapter"
    UNCLASSIFIED = "unclassified"


@dataclass(frozen=True, slots=True)
class ApplyOutcome:
    """Result of ``Engine.apply``."""

    success: bool
    checkpoint_id: str
    phase: EnginePhase
    completed_phases: tuple[EnginePhase, ...] = ()
    links: tuple[LinkRecord, ...] = ()
    error: BaseException | None = None
    failure_kind: FailureKind | None = None
    rolled_back: bool | None = None

    def __bool__(self) -> bool:
        return self.success
