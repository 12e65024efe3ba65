"""Handler file loading for worker processes."""

from __future__ import annotations

import importlib.util
import sys
from pathlib import Path

from procscale._internal.errors import HandlerError
from procscale.dsl.definition import HandlerDefinition

# Handlers already loaded in this process, keyed by resolved file path.
_loaded: dict[Path, HandlerDefinition] = {}


def load_handler(file_path: str | Path) -> HandlerDefinition:
    """Load the handler defined in a Python file.

    A worker loads its handler once at startup; later calls for the same
    file in the same process return the cached definition without
    re-importing it.

    The file must define exactly one ``@handler`` class. Handlers it merely
    imports from elsewhere are ignored, so a file may subclass or wrap a
    shared handler module.

    Args:
        file_path: Path to the Python handler file.

    Returns:
        The file's ``HandlerDefinition``.

    Raises:
        HandlerError: If the file does not exist, is not a .py file, fails
            to import, or defines no or several ``@handler`` classes.
    """
    path = Path(file_path).resolve()

    cached = _loaded.get(path)
    if cached is not None:
        return cached

    if not path.exists():
        msg = f"Handler file not found: {path}"
        raise HandlerError(msg)

    if path.suffix != ".py":
        msg = f"Handler file must be a .py file, got: {path}"
        raise HandlerError(msg)

    module_name = f"procscale_handler_{path.stem}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        msg = f"Could not create module spec for: {path}"
        raise HandlerError(msg)

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
        definition = _single_definition(module_name, vars(module), path)
    except HandlerError:
        sys.modules.pop(module_name, None)
        raise
    except Exception as exc:
        sys.modules.pop(module_name, None)
        msg = f"Failed to import handler file {path}: {exc}"
        raise HandlerError(msg) from exc

    _loaded[path] = definition
    return definition


def _single_definition(
    module_name: str,
    namespace: dict[str, object],
    path: Path,
) -> HandlerDefinition:
    definitions: list[HandlerDefinition] = []
    for obj in namespace.values():
        if isinstance(obj, HandlerDefinition) and obj.cls.__module__ == module_name:
            if all(obj is not seen for seen in definitions):
                definitions.append(obj)

    if not definitions:
        msg = f"No @handler-decorated class found in {path}."
        raise HandlerError(msg)
    if len(definitions) > 1:
        names = ", ".join(d.cls.__name__ for d in definitions)
        msg = f"Handler file {path} defines more than one @handler class: {names}"
        raise HandlerError(msg)
    return definitions[0]
