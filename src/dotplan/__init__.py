"""Core package for the dotplan project."""

from .adapters import PackageManager, ProgramHandler, Registry, SupportsCasks, SupportsTaps
from .cli import app, run
from .config import Configuration, ConfigError, DotfilesConfig, PackageManagerConfig, ProgramConfig, load_config
from .dotfiles import DotfilesManager
from .engine import Engine
from .errors import AdapterError, ConfigurationError, DotplanError, NotFoundError, ValidationError
from .models import (
    ApplyOutcome,
    DiffAction,
    DiffReport,
    ExecutionMode,
    Link,
    LinkAction,
    LinkDiff,
    LinkRecord,
    ProgramAction,
    ProgramDiff,
)
from .state import State
from .state_manager import StateManager

__all__ = [
    "AdapterError",
    "ApplyOutcome",
    "ConfigError",
    "Configuration",
    "ConfigurationError",
    "DiffAction",
    "DiffReport",
    "DotfilesConfig",
    "DotfilesManager",
    "DotplanError",
    "Engine",
    "ExecutionMode",
    "Link",
    "LinkAction",
    "LinkDiff",
    "LinkRecord",
    "NotFoundError",
    "PackageManager",
    "PackageManagerConfig",
    "ProgramAction",
    "ProgramConfig",
    "ProgramDiff",
    "ProgramHandler",
    "Registry",
    "State",
    "StateManager",
    "SupportsCasks",
    "SupportsTaps",
    "ValidationError",
    "load_config",
    "app",
    "run",
]
