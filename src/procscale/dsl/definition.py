"""Handler definition produced by the ``@handler`` decorator."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


class HandlerMethod(Protocol):
    """Protocol for unbound handler methods.

    ``@unit`` methods are called as ``(self, payload)``; ``@setup`` and
    ``@teardown`` methods as ``(self)``.
    """

    @property
    def __name__(self) -> str:
        """Function name."""
        ...

    def __call__(self, instance: object, *args: Any) -> Any:
        """Call the method."""
        ...


@dataclass
class HandlerDefinition:
    """Everything a worker needs to process units of work.

    Created by the ``@handler`` class decorator. A worker instantiates
    ``cls`` once, calls ``setup_func`` before its first unit, ``unit_func``
    for every job payload, and ``teardown_func`` when it leaves the pool
    cooperatively.

    Attributes:
        name: Human-readable handler name.
        cls: The original decorated class.
        unit_func: The unbound ``@unit`` method.
        setup_func: Optional per-worker setup method.
        teardown_func: Optional per-worker teardown method.
    """

    name: str
    cls: type
    unit_func: HandlerMethod
    setup_func: HandlerMethod | None = None
    teardown_func: HandlerMethod | None = None

    def instantiate(self) -> object:
        """Create the per-worker handler instance."""
        return self.cls()
