"""Tests for handler file loading."""

from __future__ import annotations

import pytest

from procscale._internal.errors import HandlerError
from procscale.dsl.loader import load_handler


class TestLoadHandler:
    """Tests for load_handler."""

    def test_loads_definition(self, fast_handler_file):
        definition = load_handler(fast_handler_file)
        assert definition.name == "Fast Test Handler"
        assert definition.unit_func.__name__ == "handle"

    def test_accepts_string_path(self, marker_handler_file):
        definition = load_handler(str(marker_handler_file))
        assert definition.setup_func is not None
        assert definition.teardown_func is not None

    def test_missing_file(self, tmp_path):
        with pytest.raises(HandlerError, match="Handler file not found"):
            load_handler(tmp_path / "nope.py")

    def test_not_python(self, tmp_path):
        path = tmp_path / "handler.txt"
        path.write_text("x = 1\n")
        with pytest.raises(HandlerError, match=r"must be a \.py file"):
            load_handler(path)

    def test_import_error_wrapped(self, tmp_path):
        """Exceptions raised at import time become HandlerError."""
        path = tmp_path / "broken.py"
        path.write_text("raise RuntimeError('bad module')\n")
        with pytest.raises(HandlerError, match="Failed to import handler file"):
            load_handler(path)

    def test_handler_error_propagates(self, tmp_path):
        path = tmp_path / "no_unit.py"
        path.write_text(
            "from procscale import handler\n"
            "\n"
            "@handler()\n"
            "class NoUnit:\n"
            "    pass\n"
        )
        with pytest.raises(HandlerError, match="has no @unit method"):
            load_handler(path)

    def test_no_handler_in_file(self, tmp_path):
        path = tmp_path / "plain.py"
        path.write_text("VALUE = 1\n")
        with pytest.raises(HandlerError, match="No @handler-decorated class found"):
            load_handler(path)

    def test_several_handlers_rejected(self, tmp_path):
        path = tmp_path / "two.py"
        path.write_text(
            "from procscale import handler, unit\n"
            "\n"
            "@handler()\n"
            "class First:\n"
            "    @unit\n"
            "    def handle(self, payload):\n"
            "        pass\n"
            "\n"
            "@handler()\n"
            "class Second:\n"
            "    @unit\n"
            "    def handle(self, payload):\n"
            "        pass\n"
        )
        with pytest.raises(HandlerError, match="more than one @handler class: First, Second"):
            load_handler(path)

    def test_imported_handler_ignored(self, tmp_path, monkeypatch):
        """Only handlers defined in the file itself count."""
        (tmp_path / "shared_handlers.py").write_text(
            "from procscale import handler, unit\n"
            "\n"
            "@handler(name='Shared')\n"
            "class Shared:\n"
            "    @unit\n"
            "    def handle(self, payload):\n"
            "        pass\n"
        )
        monkeypatch.syspath_prepend(str(tmp_path))
        path = tmp_path / "local.py"
        path.write_text(
            "from procscale import handler, unit\n"
            "from shared_handlers import Shared\n"
            "\n"
            "@handler(name='Local')\n"
            "class Local:\n"
            "    @unit\n"
            "    def handle(self, payload):\n"
            "        pass\n"
        )

        assert load_handler(path).name == "Local"

    def test_loaded_once_per_process(self, tmp_path):
        """A second load returns the cached definition without re-importing."""
        counter = tmp_path / "imports.txt"
        path = tmp_path / "counted.py"
        path.write_text(
            "from pathlib import Path\n"
            "\n"
            "from procscale import handler, unit\n"
            "\n"
            f"with Path({str(counter)!r}).open('a') as fh:\n"
            "    fh.write('x')\n"
            "\n"
            "@handler()\n"
            "class Counted:\n"
            "    @unit\n"
            "    def handle(self, payload):\n"
            "        pass\n"
        )

        first = load_handler(path)
        second = load_handler(str(path))

        assert first is second
        assert counter.read_text() == "x"
