"""procscale: elastic worker-process pools that grow and shrink with load."""

from __future__ import annotations

from procscale._internal.config import ScalingConfig, TerminationMode, load_config
from procscale.dsl.decorators import handler, setup, teardown, unit
from procscale.dsl.definition import HandlerDefinition
from procscale.engine.channel import BusySignalChannel
from procscale.engine.controller import AutoscaleController
from procscale.engine.hooks import WorkerLifecycle
from procscale.engine.protocol import RETIRED_EXIT_CODE, BusySignal, PoolEvent, ScaleAction, SignalCode
from procscale.engine.registry import WorkerRegistry
from procscale.engine.supervisor import PoolStatus, PoolSupervisor

__version__ = "0.1.0"

__all__ = [
    "RETIRED_EXIT_CODE",
    "AutoscaleController",
    "BusySignal",
    "BusySignalChannel",
    "HandlerDefinition",
    "PoolEvent",
    "PoolStatus",
    "PoolSupervisor",
    "ScaleAction",
    "ScalingConfig",
    "SignalCode",
    "TerminationMode",
    "WorkerLifecycle",
    "WorkerRegistry",
    "handler",
    "load_config",
    "setup",
    "teardown",
    "unit",
]
