"""Tests for the handler DSL decorators."""

from __future__ import annotations

import pytest

from procscale import HandlerDefinition, handler, setup, teardown, unit
from procscale._internal.errors import HandlerError


class TestHandlerDecorator:
    """Tests for the @handler decorator."""

    def test_minimal_handler(self):
        """A class with one @unit becomes a HandlerDefinition."""

        @handler(name="Minimal")
        class Minimal:
            @unit
            def handle(self, payload):
                return payload

        assert isinstance(Minimal, HandlerDefinition)
        assert Minimal.name == "Minimal"
        assert Minimal.unit_func.__name__ == "handle"
        assert Minimal.setup_func is None
        assert Minimal.teardown_func is None

    def test_name_defaults_to_class_name(self):
        @handler()
        class Unnamed:
            @unit
            def handle(self, payload):
                pass

        assert Unnamed.name == "Unnamed"

    def test_setup_and_teardown_found(self):
        @handler()
        class Full:
            @setup
            def open(self):
                self.opened = True

            @unit
            def handle(self, payload):
                pass

            @teardown
            def close(self):
                pass

        assert Full.setup_func.__name__ == "open"
        assert Full.teardown_func.__name__ == "close"

    def test_instantiate_and_call(self):
        @handler()
        class Counter:
            @setup
            def open(self):
                self.seen = []

            @unit
            def handle(self, payload):
                self.seen.append(payload)

        instance = Counter.instantiate()
        Counter.setup_func(instance)
        Counter.unit_func(instance, "a")
        Counter.unit_func(instance, "b")

        assert instance.seen == ["a", "b"]

    def test_no_unit_raises(self):
        with pytest.raises(HandlerError, match="has no @unit method"):

            @handler()
            class Empty:
                def handle(self, payload):
                    pass

    def test_two_units_raise(self):
        with pytest.raises(HandlerError, match="multiple unit methods"):

            @handler()
            class Twice:
                @unit
                def first(self, payload):
                    pass

                @unit
                def second(self, payload):
                    pass

    def test_async_unit_raises(self):
        """Units run in a synchronous dispatch loop."""
        with pytest.raises(HandlerError, match="must be a regular function, not async"):

            @handler()
            class Async:
                @unit
                async def handle(self, payload):
                    pass

    def test_two_teardowns_raise(self):
        with pytest.raises(HandlerError, match="multiple teardown methods"):

            @handler()
            class Twice:
                @unit
                def handle(self, payload):
                    pass

                @teardown
                def a(self):
                    pass

                @teardown
                def b(self):
                    pass
