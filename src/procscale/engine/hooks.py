"""Worker-side lifecycle hooks: busy/idle reporting and self-retirement."""

from __future__ import annotations

import contextlib
import os
from typing import TYPE_CHECKING

from procscale._internal.config import TerminationMode
from procscale._internal.logging import get_worker_logger
from procscale.engine.protocol import RETIRED_EXIT_CODE, SignalCode

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from procscale._internal.config import ScalingConfig
    from procscale.engine.channel import BusySignalChannel


class WorkerLifecycle:
    """Hooks a worker calls around each unit of work.

    ``begin_unit`` and ``end_unit`` report busy/idle transitions to the
    supervisor over the busy-signal channel. Sends are best-effort and never
    block or raise.

    Once the worker has completed ``max_requests`` units it retires. How it
    retires depends on ``mode``, which the embedding code must choose to
    match its dispatch loop:

    - ``COOPERATIVE_RETIRE``: ``end_unit`` only sets a flag and returns, so
      the call stack unwinds normally. The dispatch loop must poll
      :meth:`should_continue` before taking the next unit and run its own
      cleanup on the way out.
    - ``IMMEDIATE_EXIT``: ``end_unit`` ends the process on the spot with
      ``RETIRED_EXIT_CODE``. No ``finally`` blocks, atexit handlers or
      teardown hooks run, and any signals still buffered in this process may
      be lost.

    Attributes:
        worker_id: Id reported in every signal (the worker's pid).
        max_requests: Retirement threshold, or None for unlimited.
        mode: Retirement behaviour.
    """

    def __init__(
        self,
        channel: BusySignalChannel,
        *,
        worker_id: int | None = None,
        max_requests: int | None = None,
        mode: TerminationMode = TerminationMode.COOPERATIVE_RETIRE,
        exit_process: Callable[[int], object] = os._exit,
    ) -> None:
        self._channel = channel
        self.worker_id = worker_id if worker_id is not None else os.getpid()
        self.max_requests = max_requests
        self.mode = mode
        self._exit_process = exit_process
        self._request_count = 0
        self._retire = False
        self._log = get_worker_logger("engine.hooks", self.worker_id)

    @classmethod
    def from_config(
        cls,
        channel: BusySignalChannel,
        config: ScalingConfig,
        *,
        worker_id: int | None = None,
    ) -> WorkerLifecycle:
        """Build hooks using the request limit and mode from *config*."""
        return cls(
            channel,
            worker_id=worker_id,
            max_requests=config.max_requests_per_worker,
            mode=config.termination_mode,
        )

    @property
    def request_count(self) -> int:
        """Return the number of units started by this worker."""
        return self._request_count

    @property
    def retiring(self) -> bool:
        """Return True once the worker has reached its request limit."""
        return self._retire

    def begin_unit(self) -> None:
        """Report the worker busy and count the unit."""
        self._channel.send(SignalCode.ACQUIRED, self.worker_id)
        self._request_count += 1

    def end_unit(self) -> None:
        """Report the worker idle and apply the retirement policy.

        In ``IMMEDIATE_EXIT`` mode this does not return once the limit is
        reached.
        """
        self._channel.send(SignalCode.RELEASED, self.worker_id)

        if self.max_requests is None or self._request_count < self.max_requests:
            return

        if self.mode is TerminationMode.COOPERATIVE_RETIRE:
            if not self._retire:
                self._log.info(
                    "Reached %d requests, retiring after current unit",
                    self._request_count,
                )
            self._retire = True
            return

        self._log.info("Reached %d requests, exiting immediately", self._request_count)
        self._exit_process(RETIRED_EXIT_CODE)

    def should_continue(self) -> bool:
        """Return False once the worker should stop taking new units."""
        return not self._retire

    @contextlib.contextmanager
    def unit(self) -> Iterator[None]:
        """Wrap one unit of work in ``begin_unit``/``end_unit``.

        ``end_unit`` runs even when the body raises, so a failed unit still
        reports the worker idle.
        """
        self.begin_unit()
        try:
            yield
        finally:
            self.end_unit()
