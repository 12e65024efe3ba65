"""Decorators for defining unit-of-work handlers."""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING

from procscale._internal.errors import HandlerError
from procscale.dsl.definition import HandlerDefinition, HandlerMethod

if TYPE_CHECKING:
    from collections.abc import Callable

# Marker attribute names set on decorated methods.
_UNIT_MARKER = "_procscale_unit"
_SETUP_MARKER = "_procscale_setup"
_TEARDOWN_MARKER = "_procscale_teardown"


def _find_marked(cls: type, marker: str, label: str) -> HandlerMethod | None:
    found: HandlerMethod | None = None
    for attr_name in dir(cls):
        if attr_name.startswith("__"):
            continue
        attr = getattr(cls, attr_name, None)
        if attr is None or not callable(attr) or not getattr(attr, marker, False):
            continue
        if inspect.iscoroutinefunction(attr):
            msg = f"{label} method {cls.__name__}.{attr_name} must be a regular function, not async"
            raise HandlerError(msg)
        if found is not None:
            msg = f"Handler {cls.__name__} has multiple {label.lower()} methods"
            raise HandlerError(msg)
        found = attr
    return found


def handler(*, name: str | None = None) -> Callable[[type], HandlerDefinition]:
    """Decorate a class as a procscale handler.

    The class must have exactly one ``@unit`` method and may have one
    ``@setup`` and one ``@teardown`` method.

    Args:
        name: Human-readable name. Defaults to the class name.

    Returns:
        A class decorator that turns the class into a HandlerDefinition.

    Raises:
        HandlerError: If the class has no ``@unit`` method, more than one of
            any kind, or an async marked method.
    """

    def decorator(cls: type) -> HandlerDefinition:
        unit_func = _find_marked(cls, _UNIT_MARKER, "Unit")
        if unit_func is None:
            msg = f"Handler {cls.__name__} has no @unit method. Exactly one @unit is required."
            raise HandlerError(msg)

        return HandlerDefinition(
            name=name or cls.__name__,
            cls=cls,
            unit_func=unit_func,
            setup_func=_find_marked(cls, _SETUP_MARKER, "Setup"),
            teardown_func=_find_marked(cls, _TEARDOWN_MARKER, "Teardown"),
        )

    return decorator


def unit(func: HandlerMethod) -> HandlerMethod:
    """Mark the method that processes one job payload."""
    setattr(func, _UNIT_MARKER, True)
    return func


def setup(func: HandlerMethod) -> HandlerMethod:
    """Mark a method to run once per worker before its first unit.

    Typically opens connections the worker keeps for its lifetime.
    """
    setattr(func, _SETUP_MARKER, True)
    return func


def teardown(func: HandlerMethod) -> HandlerMethod:
    """Mark a method to run once when a worker leaves the pool cooperatively.

    Not called when the worker is killed by a scale-down or exits in
    ``IMMEDIATE_EXIT`` mode.
    """
    setattr(func, _TEARDOWN_MARKER, True)
    return func
