"""Retiring handler: workers recycle themselves after a fixed request count.

Each worker holds a (pretend) database connection that it closes in its
teardown when it retires cooperatively:

    procscale run examples/retiring.py --initial 2 --max-requests 50 \
        --rate 40 --duration 20

Add ``--immediate-exit`` to see workers leave without running teardown.
"""

from __future__ import annotations

import logging
import os
import time

from procscale import handler, setup, teardown, unit

logger = logging.getLogger("procscale.examples.retiring")


@handler(name="Retiring")
class Retiring:
    """Handler with per-worker setup and teardown."""

    @setup
    def connect(self) -> None:
        """Open the per-worker connection."""
        self.connection = f"conn-{os.getpid()}"
        logger.info("opened %s", self.connection)

    @unit
    def handle(self, payload: object) -> None:
        """Serve one request over the connection."""
        time.sleep(0.02)

    @teardown
    def disconnect(self) -> None:
        """Close the connection before the worker exits."""
        logger.info("closed %s", self.connection)
