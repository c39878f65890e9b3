"""Exception hierarchy for dotplan."""

from __future__ import annotations


class DotplanError(RuntimeError):
    """Base class for every error raised by dotplan."""


class ValidationError(DotplanError):
    """Raised when a configuration is malformed, before anything is changed."""


class ConfigurationError(DotplanError):
    """Raised when a link precondition is violated while applying."""


class NotFoundError(ConfigurationError):
    """Raised when a named checkpoint does not exist."""


class AdapterError(DotplanError):
    """Raised by package managers and program handlers when a command fails."""
