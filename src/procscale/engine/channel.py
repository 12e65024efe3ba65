"""Bounded, best-effort busy-signal channel between workers and the supervisor."""

from __future__ import annotations

import multiprocessing
import os
from typing import TYPE_CHECKING

from procscale._internal.errors import ChannelError
from procscale._internal.logging import get_logger
from procscale.engine.protocol import RECORD_SIZE, BusySignal, SignalCode

if TYPE_CHECKING:
    from multiprocessing.connection import Connection
    from multiprocessing.context import BaseContext

logger = get_logger("engine.channel")


class BusySignalChannel:
    """Multi-producer, single-consumer pipe of fixed-size busy signals.

    Every worker writes its own ``ACQUIRED``/``RELEASED`` records; only the
    supervisor reads. Each record is written with a single ``os.write`` of
    ``RECORD_SIZE`` bytes, which the OS performs atomically on a pipe, so
    records from different workers never interleave and no lock is shared
    between processes. A worker killed mid-send cannot wedge the others.

    Both ends are non-blocking. Once the OS pipe buffer is full further
    sends are dropped. Dropping is the intended behaviour, the controller's
    reconciliation step tolerates lost signals.

    The channel is created by the supervisor and handed to each worker at
    spawn time; ``multiprocessing`` duplicates the pipe ends into the child,
    which drops its copy of the read end with :meth:`close_reader`.

    Attributes:
        capacity: Maximum number of records taken by one drain.
    """

    def __init__(self, reader: Connection, writer: Connection, capacity: int) -> None:
        self._reader = reader
        self._writer = writer
        self.capacity = capacity
        self._pending = b""
        self._destroyed = False

    @classmethod
    def create(
        cls,
        capacity: int = 1024,
        *,
        ctx: BaseContext | None = None,
    ) -> BusySignalChannel:
        """Create the underlying OS pipe.

        Args:
            capacity: Maximum number of records returned per drain.
            ctx: Multiprocessing context the workers will be started with.
                Defaults to the ``spawn`` context.

        Returns:
            A ready-to-use channel.

        Raises:
            ChannelError: If the pipe cannot be allocated.
        """
        ctx = ctx or multiprocessing.get_context("spawn")
        try:
            reader, writer = ctx.Pipe(duplex=False)
            # O_NONBLOCK lives on the open file description, so it carries
            # over to the descriptors duplicated into each worker.
            os.set_blocking(reader.fileno(), False)
            os.set_blocking(writer.fileno(), False)
        except (OSError, ValueError) as exc:
            msg = f"Could not create busy-signal channel (capacity={capacity}): {exc}"
            raise ChannelError(msg) from exc
        logger.debug("Busy-signal channel created (capacity=%d)", capacity)
        return cls(reader, writer, capacity)

    @property
    def destroyed(self) -> bool:
        """Return True once :meth:`destroy` has been called in this process."""
        return self._destroyed

    def send(self, code: SignalCode, worker_id: int) -> bool:
        """Write one signal without blocking.

        Never raises: a full, closed or destroyed channel just drops the
        record.

        Args:
            code: The transition to report.
            worker_id: The sending worker's pid.

        Returns:
            True if the record was written, False if it was dropped.
        """
        if self._destroyed:
            return False
        record = BusySignal(code, worker_id).encode()
        try:
            written = os.write(self._writer.fileno(), record)
        except BlockingIOError:
            return False
        except (OSError, ValueError):
            # Pipe closed underneath us, e.g. supervisor already gone.
            return False
        return written == len(record)

    def try_receive_all(self) -> list[BusySignal]:
        """Drain the currently queued signals without blocking.

        At most ``capacity`` records are returned per call so the drain stays
        finite while workers keep writing. Records that fail to decode are
        skipped.

        Returns:
            The drained signals, oldest first. Empty if nothing is queued or
            the channel is destroyed.
        """
        if self._destroyed:
            return []

        signals: list[BusySignal] = []
        while len(signals) < self.capacity:
            wanted = (self.capacity - len(signals)) * RECORD_SIZE - len(self._pending)
            try:
                chunk = os.read(self._reader.fileno(), wanted)
            except BlockingIOError:
                break
            except (OSError, ValueError):
                logger.debug("Busy-signal channel closed during drain")
                break
            if not chunk:
                break

            data = self._pending + chunk
            whole = len(data) - len(data) % RECORD_SIZE
            self._pending = data[whole:]
            for offset in range(0, whole, RECORD_SIZE):
                record = data[offset : offset + RECORD_SIZE]
                try:
                    signals.append(BusySignal.decode(record))
                except ValueError:
                    logger.debug("Skipping malformed busy signal: %r", record)
        return signals

    def close_reader(self) -> None:
        """Release the read end in a producer process. Safe to call more than once.

        Each worker inherits both ends of the pipe. Once every worker has
        dropped its read end, the supervisor's :meth:`destroy` leaves the
        pipe without readers and later sends fail at once instead of
        filling a buffer nobody drains.
        """
        if self._reader.closed:
            return
        try:
            self._reader.close()
        except OSError:
            logger.debug("Busy-signal read end already released", exc_info=True)

    def destroy(self) -> None:
        """Release this process's ends of the pipe. Safe to call more than once."""
        if self._destroyed:
            return
        self._destroyed = True
        for end in (self._reader, self._writer):
            try:
                end.close()
            except OSError:
                logger.debug("Busy-signal channel already released", exc_info=True)
        logger.debug("Busy-signal channel destroyed")
