"""Tests for logging setup."""

from __future__ import annotations

import json
import logging

import pytest

from procscale._internal.logging import (
    _JsonFormatter,
    get_logger,
    get_worker_logger,
    setup_logging,
)


@pytest.fixture(autouse=True)
def _reset_procscale_logger():
    logger = logging.getLogger("procscale")
    saved = list(logger.handlers)
    logger.handlers.clear()
    yield
    logger.handlers[:] = saved


class TestSetupLogging:
    def test_installs_single_handler(self):
        """Repeated calls only adjust levels."""
        logger = setup_logging(logging.INFO)
        setup_logging(logging.DEBUG)

        assert len(logger.handlers) == 1
        assert logger.level == logging.DEBUG
        assert logger.handlers[0].level == logging.DEBUG
        assert logger.propagate is False

    def test_json_format(self):
        logger = setup_logging(json_format=True)
        assert isinstance(logger.handlers[0].formatter, _JsonFormatter)


def test_get_logger_namespace():
    assert get_logger("engine.controller").name == "procscale.engine.controller"


def test_json_formatter_fields():
    record = logging.LogRecord(
        name="procscale.engine.hooks",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Worker %d retiring",
        args=(42,),
        exc_info=None,
    )
    record.worker_id = 42

    entry = json.loads(_JsonFormatter().format(record))

    assert entry["message"] == "Worker 42 retiring"
    assert entry["level"] == "INFO"
    assert entry["logger"] == "procscale.engine.hooks"
    assert entry["worker_id"] == 42
    assert "timestamp" in entry
    assert "pid" in entry


def test_worker_logger_tags_records(caplog: pytest.LogCaptureFixture):
    """Records from a worker logger carry its id."""
    logging.getLogger("procscale").propagate = True
    try:
        with caplog.at_level(logging.INFO, logger="procscale"):
            get_worker_logger("engine.hooks", 77).info("retiring")
    finally:
        logging.getLogger("procscale").propagate = False

    assert caplog.records[-1].worker_id == 77
