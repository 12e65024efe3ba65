"""Autoscale controller: the supervisor's reap / drain / decide polling loop."""

from __future__ import annotations

import dataclasses
import time
from typing import TYPE_CHECKING, Protocol

from procscale._internal.logging import get_logger
from procscale.engine.protocol import PoolEvent, ScaleAction, SignalCode

if TYPE_CHECKING:
    from collections.abc import Callable

    from procscale._internal.config import ScalingConfig
    from procscale._internal.types import Notifier, WorkerId
    from procscale.engine.protocol import BusySignal, ExitRecord
    from procscale.engine.registry import WorkerRegistry

logger = get_logger("engine.controller")


class WorkerBackend(Protocol):
    """Process operations the controller needs from the base supervisor."""

    def poll_exited(self) -> list[ExitRecord]:
        """Return workers that have exited since the last call, without blocking."""
        ...

    def kill(self, worker_id: WorkerId) -> None:
        """Hard-terminate a worker. May raise ``ProcessLookupError``."""
        ...


class SignalSource(Protocol):
    """The reading side of the busy-signal channel."""

    def try_receive_all(self) -> list[BusySignal]:
        """Drain queued signals without blocking."""
        ...


class AutoscaleController:
    """Grows and shrinks the worker pool from observed busy/idle signals.

    Each :meth:`tick` reaps exited workers, drains the busy-signal channel,
    reconciles the busy set against the registry and then applies exactly
    one decision, in priority order:

    1. scale up when every targeted worker is busy (never rate-limited);
    2. scale down, killing idle workers only, when fewer than
       ``min_workers`` are busy and the cooldown has elapsed;
    3. replenish when the live count fell below the target;
    4. otherwise hold.

    Scale-down compares the *busy* count against ``min_workers``. That
    couples the pool floor with a load threshold and is kept on purpose:
    changing it changes scaling behaviour materially.

    Attributes:
        config: Scaling bounds, step and cooldown.
        target: Current desired worker count.
        last_adjustment: Clock value of the last scale-up or scale-down.
    """

    def __init__(
        self,
        config: ScalingConfig,
        registry: WorkerRegistry,
        channel: SignalSource,
        backend: WorkerBackend,
        *,
        notify: Notifier | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the controller.

        Args:
            config: Scaling configuration.
            registry: Registry shared with the base supervisor.
            channel: Busy-signal channel to drain.
            backend: Reaps and kills worker processes.
            notify: Call-out for scaling notifications. Defaults to an
                INFO log line.
            clock: Monotonic time source, in seconds.
            sleep: Used for the idle pause between ticks.
        """
        self.config = config
        self._registry = registry
        self._channel = channel
        self._backend = backend
        self._notify: Notifier = notify or logger.info
        self._clock = clock
        self._sleep = sleep

        self.target = config.initial_workers
        self.last_adjustment = clock()

    @property
    def registry(self) -> WorkerRegistry:
        """Return the shared worker registry."""
        return self._registry

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def wait(self, should_stop: Callable[[], bool] | None = None) -> PoolEvent:
        """Tick until a worker is reaped or a spawn is requested.

        Sleeps ``poll_interval`` between ticks that need no action. This is
        the only place the controller blocks.

        Args:
            should_stop: Optional predicate checked before every tick; when it
                returns True the loop gives up and returns a HOLD event.

        Returns:
            The event of the first tick that needs the supervisor's attention.
        """
        while True:
            if should_stop is not None and should_stop():
                return self._event(ScaleAction.HOLD, used=self._registry.busy_count)
            event = self.tick()
            if event.needs_attention:
                return event
            self._sleep(self.config.poll_interval)

    def tick(self) -> PoolEvent:
        """Run one reap / drain / reconcile / decide iteration.

        Never raises for worker-side failures: lost signals, unknown ids and
        failed kills are handled here.

        Returns:
            What this tick observed and decided.
        """
        reaped = self._reap()
        self._drain()
        used = self._registry.reconcile()
        now = self._clock()

        if used >= self.target:
            event = self._scale_up(used, now)
            if event is not None:
                return self._with_reaped(event, reaped)
        elif used < self.config.lower_bound and now - self.last_adjustment >= self.config.cooldown_seconds:
            event = self._scale_down(used, now)
            if event is not None:
                return self._with_reaped(event, reaped)

        if len(self._registry) < self.target:
            self._notify(f"increase workers to {self.target}")
            return self._event(
                ScaleAction.REPLENISH,
                used=used,
                reaped=reaped,
                spawn_requested=True,
            )

        return self._event(ScaleAction.HOLD, used=used, reaped=reaped)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _reap(self) -> tuple[ExitRecord, ...]:
        reaped: list[ExitRecord] = []
        for record in self._backend.poll_exited():
            if record.worker_id not in self._registry:
                continue
            self._registry.remove(record.worker_id)
            self._notify(f"worker (pid {record.worker_id}) exited with status {record.describe()}")
            reaped.append(record)
        return tuple(reaped)

    def _drain(self) -> None:
        for signal in self._channel.try_receive_all():
            if signal.code is SignalCode.ACQUIRED:
                if not self._registry.mark_busy(signal.worker_id):
                    logger.debug("Ignoring stale busy signal from pid %d", signal.worker_id)
            elif signal.code is SignalCode.RELEASED:
                self._registry.mark_idle(signal.worker_id)

    def _scale_up(self, used: int, now: float) -> PoolEvent | None:
        new_target = min(self.target + self.config.step_size, self.config.max_workers)
        if new_target <= self.target:
            return None

        self._notify(f"increase workers count to {new_target}")
        self.target = new_target
        self.last_adjustment = now
        return self._event(ScaleAction.UP, used=used, spawn_requested=True)

    def _scale_down(self, used: int, now: float) -> PoolEvent | None:
        new_target = max(self.target - self.config.step_size, self.config.lower_bound)
        if new_target >= self.target:
            return None

        self._notify(f"decrease workers count to {new_target}")

        wanted = self.target - new_target
        killed: list[WorkerId] = []
        for worker_id in self._registry.idle_ids()[:wanted]:
            self._notify(f"kill worker {worker_id}")
            try:
                self._backend.kill(worker_id)
            except (ProcessLookupError, PermissionError):
                logger.debug("Worker %d was already gone", worker_id)
            self._registry.remove(worker_id)
            killed.append(worker_id)

        if len(killed) < wanted:
            logger.debug(
                "Scale-down wanted %d idle workers, found %d",
                wanted,
                len(killed),
            )

        self.target = new_target
        self.last_adjustment = now
        return self._event(ScaleAction.DOWN, used=used, killed=tuple(killed))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _event(
        self,
        action: ScaleAction,
        *,
        used: int,
        reaped: tuple[ExitRecord, ...] = (),
        killed: tuple[WorkerId, ...] = (),
        spawn_requested: bool = False,
    ) -> PoolEvent:
        return PoolEvent(
            action=action,
            target=self.target,
            used=used,
            live=len(self._registry),
            reaped=reaped,
            killed=killed,
            spawn_requested=spawn_requested,
        )

    @staticmethod
    def _with_reaped(event: PoolEvent, reaped: tuple[ExitRecord, ...]) -> PoolEvent:
        if not reaped:
            return event
        return dataclasses.replace(event, reaped=reaped)
