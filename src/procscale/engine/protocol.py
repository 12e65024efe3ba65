"""Wire records and result types shared by the supervisor and workers."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import Enum, IntEnum, auto

# Exit status of a worker that retired after ``max_requests_per_worker`` units.
RETIRED_EXIT_CODE = 100

# Two native signed longs: (code, worker_id).
_RECORD = struct.Struct("=ll")
RECORD_SIZE = _RECORD.size


class SignalCode(IntEnum):
    """Busy/idle transition reported by a worker."""

    ACQUIRED = 1
    RELEASED = 2


@dataclass(frozen=True)
class BusySignal:
    """A worker's busy/idle transition, as carried over the channel.

    Attributes:
        code: ``ACQUIRED`` when the worker starts a unit, ``RELEASED`` when
            it finishes.
        worker_id: The sending worker's pid.
    """

    code: SignalCode
    worker_id: int

    def encode(self) -> bytes:
        """Pack the signal into a fixed-size record."""
        return _RECORD.pack(int(self.code), self.worker_id)

    @classmethod
    def decode(cls, record: bytes) -> BusySignal:
        """Unpack a fixed-size record.

        Raises:
            ValueError: If the record has the wrong size or an unknown code.
        """
        if len(record) != RECORD_SIZE:
            msg = f"busy signal record must be {RECORD_SIZE} bytes, got {len(record)}"
            raise ValueError(msg)
        code, worker_id = _RECORD.unpack(record)
        return cls(code=SignalCode(code), worker_id=worker_id)


@dataclass(frozen=True)
class ExitRecord:
    """A reaped worker and how it exited.

    Attributes:
        worker_id: Pid of the exited worker.
        exit_status: Process exit code; negative values are the signal that
            killed it, as reported by ``multiprocessing``.
    """

    worker_id: int
    exit_status: int

    @property
    def retired(self) -> bool:
        """Return True if the worker left voluntarily at its request limit."""
        return self.exit_status == RETIRED_EXIT_CODE

    def describe(self) -> str:
        """Human-readable exit status for notifications."""
        if self.retired:
            return f"{RETIRED_EXIT_CODE} (expired max request count)"
        return str(self.exit_status)


class ScaleAction(Enum):
    """Decision taken by one controller tick."""

    UP = auto()
    DOWN = auto()
    REPLENISH = auto()
    HOLD = auto()


@dataclass(frozen=True)
class PoolEvent:
    """Outcome of a controller tick handed back to the supervisor.

    Attributes:
        action: Which decision branch fired.
        target: Desired worker count after this tick.
        used: Number of workers known to be busy.
        live: Number of workers in the registry after this tick.
        reaped: Workers found exited during this tick.
        killed: Idle workers hard-killed by a scale-down.
        spawn_requested: True when the supervisor should spawn up to ``target``.
    """

    action: ScaleAction
    target: int
    used: int
    live: int
    reaped: tuple[ExitRecord, ...] = field(default_factory=tuple)
    killed: tuple[int, ...] = field(default_factory=tuple)
    spawn_requested: bool = False

    @property
    def needs_attention(self) -> bool:
        """Return True if the supervisor must act before the next tick."""
        return self.spawn_requested or bool(self.reaped)
