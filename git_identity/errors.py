from __future__ import annotations

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_BLOCKED = 3


class GidError(Exception):
    """Base class for failures that abort a command."""

    exit_code = EXIT_FAILURE


class ConfigError(GidError):
    """Raised for a malformed store or a reference to an unknown identity."""


class RuleError(GidError):
    """Raised when a rule pattern cannot be compiled."""

    exit_code = EXIT_USAGE


class ResolutionError(GidError):
    """Raised when no identity applies to a working context."""

    def __init__(self, message: str = "no identity resolved") -> None:
        super().__init__(message)


class GitError(GidError):
    """Raised outside a repository or when git configuration cannot be changed."""
