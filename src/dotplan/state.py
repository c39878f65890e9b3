"""The persisted record of what dotplan has applied."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Mapping

from pydantic import BaseModel, Field, field_validator

from .models import LinkAction, LinkRecord

STATE_VERSION = "1.0"

Clock = Callable[[], datetime]


def local_now() -> datetime:
    """Current local time with offset, truncated to whole seconds."""

    return datetime.now().astimezone().replace(microsecond=0)


class ProgramRecord(BaseModel):
    """Last configuration applied for a program."""

    last_configured: datetime
    configuration: dict[str, Any] = Field(default_factory=dict)


class DotfileRecord(BaseModel):
    """Link metadata stored for an applied dotfile."""

    name: str
    source: str
    target: str
    type: LinkAction
    timestamp: datetime
    last_updated: datetime


class State(BaseModel):
    """Packages, programs and dotfiles dotplan believes it has applied."""

    version: str = STATE_VERSION
    created_at: datetime = Field(default_factory=local_now)
    last_updated: datetime | None = None
    package_managers: dict[str, list[str]] = Field(default_factory=dict)
    programs: dict[str, ProgramRecord] = Field(default_factory=dict)
    dotfiles: dict[str, DotfileRecord] = Field(default_factory=dict)

    @field_validator("version")
    @classmethod
    def _version_not_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("state version must not be empty")
        return value

    @classmethod
    def default(cls, clock: Clock = local_now) -> "State":
        return cls(created_at=clock())

    def set_packages(self, manager: str, installed: list[str], *, now: datetime) -> None:
        self.package_managers[manager] = sorted(set(installed))
        self.last_updated = now

    def set_program(self, program: str, configuration: Mapping[str, Any], *, now: datetime) -> None:
        self.programs[program] = ProgramRecord(last_configured=now, configuration=dict(configuration))
        self.last_updated = now

    def set_dotfile(self, record: LinkRecord, *, now: datetime) -> None:
        self.dotfiles[record.name] = DotfileRecord(**record.model_dump(), last_updated=now)
        self.last_updated = now

    def drop_dotfile(self, name: str, *, now: datetime) -> bool:
        if self.dotfiles.pop(name, None) is None:
            return False
        self.last_updated = now
        return True
