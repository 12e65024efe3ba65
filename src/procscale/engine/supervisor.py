"""Pool supervisor: spawns, reaps and kills worker processes for the controller."""

from __future__ import annotations

import multiprocessing
import multiprocessing.process
import os
import queue
import signal
import time
from dataclasses import dataclass
from multiprocessing.managers import SyncManager
from pathlib import Path
from typing import TYPE_CHECKING, Any

from procscale._internal.errors import ProcScaleError, SupervisorError
from procscale._internal.logging import get_logger
from procscale.engine.channel import BusySignalChannel
from procscale.engine.controller import AutoscaleController
from procscale.engine.protocol import ExitRecord, PoolEvent
from procscale.engine.registry import WorkerRegistry
from procscale.engine.worker import run_worker_process

if TYPE_CHECKING:
    from collections.abc import Callable

    from procscale._internal.config import ScalingConfig
    from procscale._internal.types import Notifier, WorkerId

logger = get_logger("engine.supervisor")


def _ignore_sigint() -> None:
    signal.signal(signal.SIGINT, signal.SIG_IGN)


@dataclass(frozen=True)
class PoolStatus:
    """Point-in-time view of the pool.

    Attributes:
        target: Desired worker count.
        live: Workers currently registered.
        busy: Workers currently marked busy.
        spawned: Workers started since the pool started.
        retired: Workers that exited after reaching their request limit.
        killed: Idle workers killed by scale-downs.
        failed: Workers that exited with any other status.
        last_notification: Most recent scaling notification, if any.
    """

    target: int
    live: int
    busy: int
    spawned: int = 0
    retired: int = 0
    killed: int = 0
    failed: int = 0
    last_notification: str | None = None


class PoolSupervisor:
    """Owns the worker pool and drives the autoscale controller.

    Creates the busy-signal channel and the shared work queue, spawns
    worker processes up to the controller's target, and implements the
    reap/kill operations the controller needs. The worker registry is
    shared by reference with the controller.

    Attributes:
        handler_path: Absolute path to the handler file workers load.
        config: Scaling configuration.
        registry: Live workers and their process handles.
    """

    def __init__(
        self,
        handler_path: str | Path,
        config: ScalingConfig,
        *,
        log_level: int = 20,
        on_notify: Notifier | None = None,
    ) -> None:
        """Initialize the supervisor without starting anything.

        Args:
            handler_path: Path to the handler .py file.
            config: Scaling configuration.
            log_level: Logging level passed to workers.
            on_notify: Optional extra receiver for scaling notifications.

        Raises:
            SupervisorError: If the handler file does not exist.
        """
        self.handler_path = str(Path(handler_path).resolve())
        if not Path(self.handler_path).exists():
            msg = f"Handler file not found: {self.handler_path}"
            raise SupervisorError(msg)

        self.config = config
        self._log_level = log_level
        self._on_notify = on_notify

        self._ctx = multiprocessing.get_context("spawn")
        self.registry = WorkerRegistry()
        self._channel: BusySignalChannel | None = None
        self._manager: SyncManager | None = None
        self._work_queue: queue.Queue[Any] | None = None
        self._controller: AutoscaleController | None = None

        # Hard-killed processes still to be joined.
        self._killed: list[multiprocessing.process.BaseProcess] = []
        self._next_index = 0
        self._stop_requested = False

        self._spawned = 0
        self._retired = 0
        self._killed_count = 0
        self._failed = 0
        self._last_notification: str | None = None

    @property
    def controller(self) -> AutoscaleController:
        """Return the autoscale controller.

        Raises:
            SupervisorError: If the pool has not been started.
        """
        if self._controller is None:
            msg = "Pool supervisor has not been started"
            raise SupervisorError(msg)
        return self._controller

    @property
    def started(self) -> bool:
        """Return True between :meth:`start` and :meth:`stop`."""
        return self._controller is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Create the channel and spawn the initial workers.

        Raises:
            ChannelError: If the busy-signal channel cannot be created.
        """
        self._channel = BusySignalChannel.create(self.config.channel_capacity, ctx=self._ctx)
        # Idle workers are hard-killed. A manager queue has no read lock shared
        # between workers for a killed one to leave held.
        self._manager = SyncManager(ctx=self._ctx)
        self._manager.start(_ignore_sigint)
        self._work_queue = self._manager.Queue()
        self._controller = AutoscaleController(
            self.config,
            self.registry,
            self._channel,
            self,
            notify=self._notify,
        )
        self._spawn_missing()
        logger.info(
            "Started pool: %d workers (min=%d, max=%d, step=%d, cooldown=%.1fs)",
            len(self.registry),
            self.config.lower_bound,
            self.config.max_workers,
            self.config.step_size,
            self.config.cooldown_seconds,
        )

    def submit(self, payload: Any) -> None:
        """Queue one job for the next free worker.

        Raises:
            SupervisorError: If the pool has not been started.
        """
        if self._work_queue is None:
            msg = "Pool supervisor has not been started"
            raise SupervisorError(msg)
        try:
            self._work_queue.put(payload)
        except (OSError, EOFError) as exc:
            msg = "Pool work queue is closed"
            raise SupervisorError(msg) from exc

    def step(self, should_stop: Callable[[], bool] | None = None) -> PoolEvent:
        """Wait for the controller to need action, then act on it.

        Spawns workers up to the target after a reap or spawn request.

        Args:
            should_stop: Optional predicate that cuts the wait short.

        Returns:
            The controller event that ended the wait.
        """
        event = self.controller.wait(should_stop)
        self._count(event)
        if event.needs_attention and not (should_stop is not None and should_stop()):
            self._spawn_missing()
        return event

    def run(
        self,
        duration_seconds: float | None = None,
        *,
        should_stop: Callable[[], bool] | None = None,
        on_started: Callable[[], None] | None = None,
        on_event: Callable[[PoolEvent], None] | None = None,
    ) -> PoolStatus:
        """Run the pool until the duration expires or a stop is requested.

        Blocks the calling thread. SIGINT and SIGTERM request a graceful
        stop; the previous handlers are restored on return.

        Args:
            duration_seconds: Optional maximum run time.
            should_stop: Optional external stop predicate.
            on_started: Optional callback invoked once the initial workers
                are running (e.g. to start feeding jobs).
            on_event: Optional callback invoked with every controller event.

        Returns:
            Final pool status.

        Raises:
            ChannelError: If the busy-signal channel cannot be created.
            SupervisorError: If the pool fails while running.
        """
        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)
        self._stop_requested = False

        def _signal_handler(signum: int, _frame: object) -> None:
            logger.info("Signal %d received, stopping pool", signum)
            self._stop_requested = True

        signal.signal(signal.SIGINT, _signal_handler)
        signal.signal(signal.SIGTERM, _signal_handler)

        deadline = time.monotonic() + duration_seconds if duration_seconds is not None else None

        def _should_stop() -> bool:
            if self._stop_requested:
                return True
            if deadline is not None and time.monotonic() >= deadline:
                return True
            return should_stop is not None and should_stop()

        try:
            self.start()
            if on_started is not None:
                on_started()
            while not _should_stop():
                event = self.step(_should_stop)
                if on_event is not None:
                    on_event(event)
        except ProcScaleError:
            raise
        except Exception as exc:
            logger.exception("Pool supervisor failed")
            raise SupervisorError("Pool supervisor failed") from exc
        finally:
            status = self.snapshot()
            self.stop()
            signal.signal(signal.SIGINT, original_sigint)
            signal.signal(signal.SIGTERM, original_sigterm)

        return status

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the pool. Safe to call more than once."""
        self.on_supervisor_exit(timeout=timeout)

    def on_supervisor_exit(self, timeout: float = 5.0) -> None:
        """Release the busy-signal channel, then tear down the workers.

        Works whether or not the channel was ever created.

        Args:
            timeout: Seconds to wait for each worker to exit before
                terminating it.
        """
        if self._channel is not None:
            self._channel.destroy()
        self._shutdown_workers(timeout)
        self._controller = None

    def snapshot(self) -> PoolStatus:
        """Return the current pool status."""
        return PoolStatus(
            target=self._controller.target if self._controller is not None else 0,
            live=len(self.registry),
            busy=self.registry.busy_count,
            spawned=self._spawned,
            retired=self._retired,
            killed=self._killed_count,
            failed=self._failed,
            last_notification=self._last_notification,
        )

    # ------------------------------------------------------------------
    # Backend for the controller
    # ------------------------------------------------------------------

    def poll_exited(self) -> list[ExitRecord]:
        """Return registered workers whose process has exited.

        ``is_alive()`` reaps without blocking. Processes killed by a
        scale-down are joined here too but not reported.
        """
        self._killed = [p for p in self._killed if p.is_alive()]

        exited: list[ExitRecord] = []
        for worker_id, process in self.registry.items():
            if process is None or process.is_alive():
                continue
            exit_status = process.exitcode if process.exitcode is not None else -1
            exited.append(ExitRecord(worker_id=worker_id, exit_status=exit_status))
        return exited

    def kill(self, worker_id: WorkerId) -> None:
        """Send SIGKILL to a worker.

        Raises:
            ProcessLookupError: If there is no such process.
        """
        process = self.registry.get(worker_id)
        if process is None:
            os.kill(worker_id, signal.SIGKILL)
        else:
            process.kill()
            self._killed.append(process)
        self._killed_count += 1

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _notify(self, message: str) -> None:
        logger.info(message)
        self._last_notification = message
        if self._on_notify is not None:
            self._on_notify(message)

    def _spawn_missing(self) -> None:
        target = self.controller.target
        while len(self.registry) < target:
            self._spawn_worker()

    def _spawn_worker(self) -> int:
        process = self._ctx.Process(
            target=run_worker_process,
            args=(
                self.handler_path,
                self._work_queue,
                self._channel,
                self.config,
                self._log_level,
            ),
            name=f"procscale-worker-{self._next_index}",
            daemon=False,
        )
        self._next_index += 1
        process.start()
        assert process.pid is not None
        self.registry.add(process.pid, process)
        self._spawned += 1
        logger.debug("Started worker process: pid=%d, name=%s", process.pid, process.name)
        return process.pid

    def _count(self, event: PoolEvent) -> None:
        for record in event.reaped:
            if record.retired:
                self._retired += 1
            else:
                self._failed += 1

    def _discard_pending_jobs(self) -> None:
        assert self._work_queue is not None
        dropped = 0
        while True:
            try:
                self._work_queue.get_nowait()
            except queue.Empty:
                break
            except (OSError, EOFError):
                return
            dropped += 1
        if dropped:
            logger.info("Discarded %d queued jobs on shutdown", dropped)

    def _shutdown_workers(self, timeout: float) -> None:
        processes = [p for _, p in self.registry.items() if p is not None]

        if self._work_queue is not None:
            self._discard_pending_jobs()
            for _ in processes:
                try:
                    self._work_queue.put(None)
                except (OSError, EOFError):
                    break

        for process in processes:
            process.join(timeout=timeout)
            if process.is_alive():
                logger.warning("Worker %s did not exit in time, terminating", process.name)
                process.terminate()
                process.join(timeout=2.0)

        for process in self._killed:
            process.join(timeout=2.0)
        self._killed.clear()

        for worker_id in list(self.registry):
            self.registry.remove(worker_id)

        self._work_queue = None
        if self._manager is not None:
            self._manager.shutdown()
            self._manager = None

        if processes:
            logger.info("All %d workers stopped", len(processes))
