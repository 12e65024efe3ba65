"""Supervisor-side registry of live workers and the subset currently busy."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterator

    from procscale._internal.types import WorkerId


class WorkerRegistry:
    """Live worker ids mapped to their process handles, plus busy ids.

    The supervisor and the autoscale controller share one instance by
    reference; it is the single source of truth for which workers are alive.
    Only the supervisor process mutates it, from a single thread, so there
    is no locking.

    Invariant: ``busy_ids`` is always a subset of the live ids. Removing a
    worker drops it from both.
    """

    def __init__(self) -> None:
        self._workers: dict[WorkerId, Any] = {}
        self._busy: set[WorkerId] = set()

    def add(self, worker_id: WorkerId, handle: Any = None) -> None:
        """Register a live worker.

        Args:
            worker_id: The worker's pid.
            handle: Process object owned by the base supervisor, if any.
        """
        self._workers[worker_id] = handle

    def remove(self, worker_id: WorkerId) -> Any:
        """Forget a worker, live and busy alike.

        Returns:
            The handle that was registered, or None if the id was unknown.
        """
        self._busy.discard(worker_id)
        return self._workers.pop(worker_id, None)

    def get(self, worker_id: WorkerId) -> Any:
        """Return the handle registered for *worker_id*, or None."""
        return self._workers.get(worker_id)

    def mark_busy(self, worker_id: WorkerId) -> bool:
        """Record that a worker started a unit of work.

        Unknown ids are ignored: the signal raced with the worker's reap.

        Returns:
            True if the id was known and is now busy.
        """
        if worker_id not in self._workers:
            return False
        self._busy.add(worker_id)
        return True

    def mark_idle(self, worker_id: WorkerId) -> None:
        """Record that a worker finished a unit of work. Absent ids are ignored."""
        self._busy.discard(worker_id)

    def reconcile(self) -> int:
        """Drop busy ids that are no longer live.

        Returns:
            The number of busy workers after reconciliation.
        """
        self._busy &= self._workers.keys()
        return len(self._busy)

    def is_busy(self, worker_id: WorkerId) -> bool:
        """Return True if *worker_id* is currently marked busy."""
        return worker_id in self._busy

    def idle_ids(self) -> list[WorkerId]:
        """Return live ids not marked busy, in registration order."""
        return [wid for wid in self._workers if wid not in self._busy]

    def items(self) -> list[tuple[WorkerId, Any]]:
        """Return a snapshot of ``(worker_id, handle)`` pairs."""
        return list(self._workers.items())

    @property
    def busy_ids(self) -> frozenset[WorkerId]:
        """Return a snapshot of the busy ids."""
        return frozenset(self._busy)

    @property
    def busy_count(self) -> int:
        """Return the number of ids marked busy (not reconciled)."""
        return len(self._busy)

    def __contains__(self, worker_id: object) -> bool:
        return worker_id in self._workers

    def __iter__(self) -> Iterator[WorkerId]:
        return iter(list(self._workers))

    def __len__(self) -> int:
        return len(self._workers)
