"""Configuration models and TOML loading for dotplan."""

from __future__ import annotations

import tomllib
from collections import Counter
from pathlib import Path
from typing import Any, Dict, Mapping

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from .adapters import Registry
from .errors import ValidationError
from .models import DEFAULT_SOURCE_DIRECTORY, Link
from .paths import expand_path
from .state_manager import DEFAULT_KEEP_CHECKPOINTS, DEFAULT_STATE_DIR

DEFAULT_CONFIG_FILENAME = "dotplan.toml"


class ConfigError(ValidationError):
    """Raised when a configuration file cannot be parsed or validated."""


class Settings(BaseModel):
    """Global configuration options."""

    model_config = ConfigDict(frozen=True)

    state_dir: Path = Field(default_factory=lambda: expand_path(DEFAULT_STATE_DIR))
    keep_checkpoints: int = Field(default=DEFAULT_KEEP_CHECKPOINTS, ge=1)

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any], *, base_dir: Path) -> "Settings":
        state_dir = expand_path(raw.get("state_dir", DEFAULT_STATE_DIR), base_dir=base_dir)
        return cls(
            state_dir=state_dir,
            keep_checkpoints=raw.get("keep_checkpoints", DEFAULT_KEEP_CHECKPOINTS),
        )


class PackageManagerConfig(BaseModel):
    """Packages one package manager should install or remove."""

    model_config = ConfigDict(frozen=True)

    install: tuple[str, ...] = ()
    uninstall: tuple[str, ...] = ()
    taps: tuple[str, ...] = ()
    casks: tuple[str, ...] = ()

    def validate(self, name: str = "package manager") -> None:  # type: ignore[override]
        if not (self.install or self.uninstall or self.casks):
            raise ValidationError(f"'{name}' must specify at least one package to install or uninstall")

        for package in (*self.install, *self.uninstall, *self.casks):
            if not package.strip():
                raise ValidationError(f"'{name}' package names must be non-empty strings, got: {package!r}")

        for tap in self.taps:
            if "/" not in tap:
                raise ValidationError(f"'{name}' tap names must be in format 'user/repo', got: {tap!r}")


class ProgramConfig(BaseModel):
    """Options handed to a program handler."""

    model_config = ConfigDict(frozen=True)

    options: Dict[str, Any] = Field(default_factory=dict)


class DotfilesConfig(BaseModel):
    """Source directory and the ordered links placed from it."""

    model_config = ConfigDict(frozen=True)

    source_directory: Path = Field(default_factory=lambda: expand_path(DEFAULT_SOURCE_DIRECTORY))
    links: tuple[Link, ...] = ()

    def validate(self) -> None:  # type: ignore[override]
        for link in self.links:
            if not link.name.strip():
                raise ValidationError("Link name cannot be empty")

        duplicates = sorted(name for name, count in Counter(link.name for link in self.links).items() if count > 1)
        if duplicates:
            raise ValidationError(f"Duplicate link names: {', '.join(duplicates)}")


class Configuration(BaseModel):
    """Desired packages, programs and dotfiles."""

    model_config = ConfigDict(frozen=True)

    config_path: Path | None = None
    settings: Settings = Field(default_factory=Settings)
    packages: Dict[str, PackageManagerConfig] = Field(default_factory=dict)
    programs: Dict[str, ProgramConfig] = Field(default_factory=dict)
    dotfiles: DotfilesConfig | None = None

    def validate(self, registry: Registry | None = None) -> None:  # type: ignore[override]
        """Raise ``ValidationError`` if the configuration cannot be applied.

        Package manager and program names are only checked when a ``registry``
        is supplied.
        """

        for name, package_config in self.packages.items():
            if registry is not None and name not in registry.package_managers:
                raise ValidationError(f"Unknown package manager: {name}")
            package_config.validate(name)

        if registry is not None:
            for name in self.programs:
                if name not in registry.programs:
                    raise ValidationError(f"Unknown program handler: {name}")

        if self.dotfiles is not None:
            self.dotfiles.validate()


def load_config(path: Path | None = None) -> Configuration:
    """Load and parse a configuration file.

    Args:
        path: Optional path to the TOML file or its directory. Defaults to
            ``dotplan.toml`` in the current working directory.
    """

    config_path = _resolve_config_path(path)
    base_dir = config_path.parent

    try:
        with config_path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Configuration file '{config_path}' is not valid TOML: {exc}") from exc

    try:
        return Configuration(
            config_path=config_path,
            settings=Settings.from_raw(data.get("settings", {}), base_dir=base_dir),
            packages={name: PackageManagerConfig(**body) for name, body in (data.get("packages") or {}).items()},
            programs={name: ProgramConfig(options=dict(body)) for name, body in (data.get("programs") or {}).items()},
            dotfiles=_parse_dotfiles(data.get("dotfiles"), base_dir=base_dir),
        )
    except pydantic.ValidationError as exc:
        raise ConfigError(f"Configuration file '{config_path}' is invalid: {exc}") from exc


def _parse_dotfiles(raw: Mapping[str, Any] | None, *, base_dir: Path) -> DotfilesConfig | None:
    if raw is None:
        return None

    source_directory = expand_path(raw.get("source_directory", DEFAULT_SOURCE_DIRECTORY), base_dir=base_dir)
    links: list[Link] = []
    for entry in raw.get("links", []):
        if "name" not in entry:
            raise ConfigError("Every [[dotfiles.links]] entry must define a 'name'")
        source = entry.get("source")
        target = entry.get("target")
        links.append(
            Link.build(
                entry["name"],
                action=entry.get("action", "link"),
                source_directory=source_directory,
                source=expand_path(source, base_dir=base_dir) if source is not None else None,
                target=expand_path(target, base_dir=base_dir) if target is not None else None,
                variables=entry.get("variables"),
            )
        )

    return DotfilesConfig(source_directory=source_directory, links=tuple(links))


def _resolve_config_path(path: Path | None) -> Path:
    if path is None:
        path = Path.cwd() / DEFAULT_CONFIG_FILENAME
    else:
        path = Path(path)

    if not path.exists():
        raise ConfigError(f"Configuration file '{path}' does not exist")
    if path.is_dir():
        candidate = path / DEFAULT_CONFIG_FILENAME
        if not candidate.exists():
            raise ConfigError(f"Expected to find '{DEFAULT_CONFIG_FILENAME}' inside '{path}', but none was located")
        path = candidate

    return path.resolve(strict=False)
