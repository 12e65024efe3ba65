"""Custom exception hierarchy for procscale."""

from __future__ import annotations


class ProcScaleError(Exception):
    """Base exception for all procscale errors.

    All custom exceptions in procscale inherit from this class, making it
    easy to catch any procscale-specific error with a single except clause.
    """


class ConfigError(ProcScaleError):
    """Raised when configuration is invalid or missing.

    Examples:
        - ``min_workers`` is greater than ``max_workers``.
        - An environment variable has an unparsable value.
    """


class ChannelError(ProcScaleError):
    """Raised when the busy-signal channel cannot be created.

    The pool cannot scale without its signaling channel, so this is
    fatal at supervisor startup.
    """


class HandlerError(ProcScaleError):
    """Raised when a unit-of-work handler definition is invalid.

    Examples:
        - A class decorated with @handler has no @unit method.
        - A handler file cannot be loaded or parsed.
    """


class SupervisorError(ProcScaleError):
    """Raised when the worker pool fails to run."""
