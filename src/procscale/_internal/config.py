"""Scaling configuration and environment loading for procscale."""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from enum import Enum

from procscale._internal.errors import ConfigError


class TerminationMode(Enum):
    """How a worker leaves the pool after reaching its request limit.

    ``COOPERATIVE_RETIRE`` is for dispatch loops that poll
    ``should_continue()``: the worker finishes its current unit, runs its
    teardown and exits. ``IMMEDIATE_EXIT`` ends the process inside
    ``end_unit()`` with no cleanup at all.
    """

    COOPERATIVE_RETIRE = "cooperative"
    IMMEDIATE_EXIT = "immediate"


@dataclass(frozen=True)
class ScalingConfig:
    """Immutable worker pool scaling configuration.

    Attributes:
        initial_workers: Pool size at startup, and the initial target.
        min_workers: Lower bound for the target. ``None`` resolves to
            ``initial_workers``.
        max_workers: Upper bound for the target.
        step_size: Workers added or removed per adjustment.
        cooldown_seconds: Minimum time between the last adjustment and the
            next scale-down. Scale-up is never delayed.
        max_requests_per_worker: Units of work after which a worker retires.
            ``None`` means unlimited.
        termination_mode: How a worker retires once the limit is reached.
        poll_interval: Sleep between idle controller ticks, in seconds.
        channel_capacity: Maximum busy signals taken from the channel per drain.
    """

    initial_workers: int = 1
    min_workers: int | None = None
    max_workers: int = 8
    step_size: int = 5
    cooldown_seconds: float = 5.0
    max_requests_per_worker: int | None = None
    termination_mode: TerminationMode = TerminationMode.COOPERATIVE_RETIRE
    poll_interval: float = 0.1
    channel_capacity: int = 1024

    def __post_init__(self) -> None:
        if self.min_workers is None:
            object.__setattr__(self, "min_workers", self.initial_workers)
        self._validate()

    def _validate(self) -> None:
        """Check bounds.

        Raises:
            ConfigError: If any field is out of range.
        """
        if self.initial_workers < 1:
            msg = f"initial_workers must be >= 1, got {self.initial_workers}"
            raise ConfigError(msg)
        if self.lower_bound < 1:
            msg = f"min_workers must be >= 1, got {self.lower_bound}"
            raise ConfigError(msg)
        if self.max_workers < self.lower_bound:
            msg = f"max_workers ({self.max_workers}) must be >= min_workers ({self.lower_bound})"
            raise ConfigError(msg)
        if not self.lower_bound <= self.initial_workers <= self.max_workers:
            msg = (
                f"initial_workers ({self.initial_workers}) must lie within "
                f"[{self.lower_bound}, {self.max_workers}]"
            )
            raise ConfigError(msg)
        if self.step_size < 1:
            msg = f"step_size must be >= 1, got {self.step_size}"
            raise ConfigError(msg)
        if self.cooldown_seconds < 0:
            msg = f"cooldown_seconds must be non-negative, got {self.cooldown_seconds}"
            raise ConfigError(msg)
        if self.max_requests_per_worker is not None and self.max_requests_per_worker < 1:
            msg = f"max_requests_per_worker must be >= 1, got {self.max_requests_per_worker}"
            raise ConfigError(msg)
        if self.poll_interval <= 0:
            msg = f"poll_interval must be positive, got {self.poll_interval}"
            raise ConfigError(msg)
        if self.channel_capacity < 1:
            msg = f"channel_capacity must be >= 1, got {self.channel_capacity}"
            raise ConfigError(msg)

    @property
    def lower_bound(self) -> int:
        """Return ``min_workers`` as a plain int (always resolved after init)."""
        assert self.min_workers is not None
        return self.min_workers

    def replace(self, **changes: object) -> ScalingConfig:
        """Return a validated copy with *changes* applied.

        Passing ``initial_workers`` without ``min_workers`` re-resolves the
        minimum only if it was defaulted from the old initial size.
        """
        if (
            "initial_workers" in changes
            and "min_workers" not in changes
            and self.min_workers == self.initial_workers
        ):
            changes["min_workers"] = None
        return dataclasses.replace(self, **changes)  # type: ignore[arg-type]


def _env_int(name: str) -> int | None:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        msg = f"{name} must be an integer, got: {raw!r}"
        raise ConfigError(msg) from None


def _env_float(name: str) -> float | None:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return None
    try:
        return float(raw)
    except ValueError:
        msg = f"{name} must be a number, got: {raw!r}"
        raise ConfigError(msg) from None


def load_config() -> ScalingConfig:
    """Load scaling configuration from environment variables with defaults.

    Environment variables:
        PROCSCALE_INITIAL_WORKERS: Initial pool size (default: 1).
        PROCSCALE_MIN_WORKERS: Minimum target (default: initial pool size).
        PROCSCALE_MAX_WORKERS: Maximum target (default: 8).
        PROCSCALE_STEP_SIZE: Workers per adjustment (default: 5).
        PROCSCALE_COOLDOWN: Scale-down cooldown in seconds (default: 5).
        PROCSCALE_MAX_REQUESTS: Per-worker request limit (default: unlimited).
        PROCSCALE_TERMINATION_MODE: ``cooperative`` or ``immediate``.

    Returns:
        Populated ScalingConfig instance.

    Raises:
        ConfigError: If an environment variable has an invalid value or the
            resulting configuration is inconsistent.
    """
    fields: dict[str, object] = {}

    initial = _env_int("PROCSCALE_INITIAL_WORKERS")
    if initial is not None:
        fields["initial_workers"] = initial
    minimum = _env_int("PROCSCALE_MIN_WORKERS")
    if minimum is not None:
        fields["min_workers"] = minimum
    maximum = _env_int("PROCSCALE_MAX_WORKERS")
    if maximum is not None:
        fields["max_workers"] = maximum
    step = _env_int("PROCSCALE_STEP_SIZE")
    if step is not None:
        fields["step_size"] = step
    cooldown = _env_float("PROCSCALE_COOLDOWN")
    if cooldown is not None:
        fields["cooldown_seconds"] = cooldown
    max_requests = _env_int("PROCSCALE_MAX_REQUESTS")
    if max_requests is not None:
        fields["max_requests_per_worker"] = max_requests

    mode = os.environ.get("PROCSCALE_TERMINATION_MODE")
    if mode:
        try:
            fields["termination_mode"] = TerminationMode(mode.lower())
        except ValueError:
            msg = f"PROCSCALE_TERMINATION_MODE must be 'cooperative' or 'immediate', got: {mode!r}"
            raise ConfigError(msg) from None

    return ScalingConfig(**fields)  # type: ignore[arg-type]
