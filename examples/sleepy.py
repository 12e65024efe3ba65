"""Sleepy handler: each job simulates a slow request.

Feed it faster than the pool can keep up and watch it scale up, then let
the feed die down and watch idle workers being killed after the cooldown:

    procscale run examples/sleepy.py --initial 2 --max 16 --step 2 \
        --rate 5 --ramp-to 60 --duration 40
"""

from __future__ import annotations

import time

from procscale import handler, unit


@handler(name="Sleepy")
class Sleepy:
    """Spend 200ms on every job."""

    @unit
    def handle(self, payload: object) -> None:
        """Pretend to serve one request."""
        time.sleep(0.2)
