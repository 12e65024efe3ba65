"""Worker process entry point and its cooperative dispatch loop."""

from __future__ import annotations

import queue
import signal
import sys
import time
from typing import TYPE_CHECKING, Any

from procscale._internal.logging import get_worker_logger, setup_logging
from procscale.engine.hooks import WorkerLifecycle
from procscale.engine.protocol import RETIRED_EXIT_CODE

if TYPE_CHECKING:
    from collections.abc import Callable

    from procscale._internal.config import ScalingConfig
    from procscale.dsl.definition import HandlerDefinition
    from procscale.engine.channel import BusySignalChannel

# Seconds an idle worker sleeps between non-blocking polls of the work queue.
_IDLE_SLEEP = 0.05


def run_worker_process(
    handler_path: str,
    work_queue: queue.Queue[Any],
    channel: BusySignalChannel,
    config: ScalingConfig,
    log_level: int = 20,
) -> None:
    """Entry point for a worker subprocess.

    Loads the handler file, runs its setup, then processes jobs from the
    shared work queue until told to stop or until it retires. SIGINT is
    ignored so that Ctrl-C on the terminal is handled by the supervisor
    alone.

    Exit status is ``RETIRED_EXIT_CODE`` after a cooperative retirement,
    0 after a stop sentinel and 1 if the handler could not be started.

    Args:
        handler_path: Absolute path to the handler .py file.
        work_queue: Queue of job payloads; ``None`` is a stop sentinel.
        channel: Busy-signal channel to the supervisor.
        config: Pool configuration (request limit and termination mode).
        log_level: Logging level.
    """
    signal.signal(signal.SIGINT, signal.SIG_IGN)
    setup_logging(level=log_level)

    # Workers only write; the supervisor must hold the last read end.
    channel.close_reader()

    from procscale.dsl.loader import load_handler

    lifecycle = WorkerLifecycle.from_config(channel, config)
    log = get_worker_logger("engine.worker", lifecycle.worker_id)

    try:
        definition = load_handler(handler_path)
        instance = definition.instantiate()
        if definition.setup_func is not None:
            definition.setup_func(instance)
    except Exception:
        log.exception("Handler failed to start")
        sys.exit(1)

    log.debug("Ready (handler=%s)", definition.name)

    try:
        processed = dispatch_loop(definition, instance, work_queue, lifecycle)
    finally:
        if definition.teardown_func is not None:
            try:
                definition.teardown_func(instance)
            except Exception:
                log.warning("Teardown failed", exc_info=True)

    if lifecycle.retiring:
        log.info("Retired after %d units", processed)
        sys.exit(RETIRED_EXIT_CODE)

    log.debug("Stopped after %d units", processed)


def dispatch_loop(
    definition: HandlerDefinition,
    instance: object,
    work_queue: queue.Queue[Any],
    lifecycle: WorkerLifecycle,
    *,
    idle_sleep: float = _IDLE_SLEEP,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Take and process jobs until retirement or a stop sentinel.

    ``should_continue()`` is checked before every new job, so a worker in
    cooperative mode never asks for more work once it has retired. Handler
    exceptions are logged and the worker carries on.

    The queue is only ever polled with ``get_nowait()``. An idle worker can
    be killed by a scale-down at any moment, and a blocking ``get`` left
    pending on a manager queue would hand the next job to the dead worker.

    Args:
        definition: Loaded handler definition.
        instance: Per-worker handler instance.
        work_queue: Source of job payloads; ``None`` stops the loop.
        lifecycle: Busy/idle hooks for this worker.
        idle_sleep: Seconds to sleep when no job is queued.
        sleep: Sleep function, replaceable in tests.

    Returns:
        Number of units processed.
    """
    log = get_worker_logger("engine.worker", lifecycle.worker_id)
    processed = 0
    while lifecycle.should_continue():
        try:
            job = work_queue.get_nowait()
        except queue.Empty:
            sleep(idle_sleep)
            continue
        except (EOFError, OSError):
            log.info("Work queue closed")
            break

        if job is None:
            break

        with lifecycle.unit():
            try:
                definition.unit_func(instance, job)
            except Exception:
                log.exception("Unit failed")
        processed += 1

    return processed
