"""Synthetic job feeder for exercising a pool under changing load.

The ``LoadFeeder`` runs a daemon thread that submits jobs to the pool at a
rate that either holds constant or ramps linearly from ``rate`` to
``ramp_to`` over the feed duration.
"""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING, Any

from procscale._internal.errors import ConfigError, ProcScaleError
from procscale._internal.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable

logger = get_logger("engine.feeder")


class LoadFeeder:
    """Submits jobs to a pool from a background thread.

    Attributes:
        rate: Jobs per second at the start of the feed.
        ramp_to: Jobs per second at the end of the feed, or None to hold
            ``rate`` throughout.
        duration_seconds: How long to feed for.
        tick_interval: Seconds between submission bursts.
    """

    def __init__(
        self,
        submit: Callable[[Any], None],
        rate: float,
        duration_seconds: float,
        *,
        ramp_to: float | None = None,
        payload: Callable[[int], Any] | None = None,
        tick_interval: float = 0.1,
    ) -> None:
        """Initialize the feeder.

        Args:
            submit: Called with each job payload (e.g. ``PoolSupervisor.submit``).
            rate: Starting jobs per second. Must be non-negative.
            duration_seconds: Feed duration. Must be positive.
            ramp_to: Optional final jobs per second for a linear ramp.
            payload: Builds the payload for the n-th job. Defaults to ``n``.
            tick_interval: Seconds between bursts. Must be positive.

        Raises:
            ConfigError: If any argument is out of range.
        """
        if rate < 0:
            msg = f"rate must be non-negative, got {rate}"
            raise ConfigError(msg)
        if ramp_to is not None and ramp_to < 0:
            msg = f"ramp_to must be non-negative, got {ramp_to}"
            raise ConfigError(msg)
        if duration_seconds <= 0:
            msg = f"duration_seconds must be positive, got {duration_seconds}"
            raise ConfigError(msg)
        if tick_interval <= 0:
            msg = f"tick_interval must be positive, got {tick_interval}"
            raise ConfigError(msg)

        self._submit = submit
        self.rate = rate
        self.ramp_to = ramp_to
        self.duration_seconds = duration_seconds
        self.tick_interval = tick_interval
        self._payload = payload or (lambda n: n)

        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._submitted = 0

    @property
    def submitted(self) -> int:
        """Return the number of jobs submitted so far."""
        return self._submitted

    def rate_at(self, elapsed: float) -> float:
        """Return the target jobs-per-second rate *elapsed* seconds in."""
        if self.ramp_to is None:
            return self.rate
        fraction = min(max(elapsed / self.duration_seconds, 0.0), 1.0)
        return self.rate + (self.ramp_to - self.rate) * fraction

    def describe(self) -> str:
        """Return a human-readable description of the feed."""
        if self.ramp_to is None:
            return f"Constant: {self.rate:g} jobs/s for {self.duration_seconds:g}s"
        return f"Ramp: {self.rate:g} -> {self.ramp_to:g} jobs/s over {self.duration_seconds:g}s"

    def start(self) -> None:
        """Start the feeder thread."""
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="procscale-feeder",
            daemon=True,
        )
        self._thread.start()
        logger.debug("Feeder thread started: %s", self.describe())

    def stop(self) -> None:
        """Stop the feeder thread and wait for it to finish."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None
        logger.debug("Feeder stopped after %d jobs", self._submitted)

    @property
    def finished(self) -> bool:
        """Return True once the feed duration has run out or it was stopped."""
        return self._thread is None or not self._thread.is_alive()

    def _run_loop(self) -> None:
        start = time.monotonic()
        owed = 0.0
        while not self._stop_event.is_set():
            elapsed = time.monotonic() - start
            if elapsed >= self.duration_seconds:
                break

            owed += self.rate_at(elapsed) * self.tick_interval
            burst = int(owed)
            owed -= burst
            for _ in range(burst):
                try:
                    self._submit(self._payload(self._submitted))
                except (OSError, EOFError, ProcScaleError):
                    logger.debug("Pool no longer accepts jobs, feeder exiting")
                    return
                self._submitted += 1

            self._stop_event.wait(self.tick_interval)
