"""Shared type aliases for procscale."""

from __future__ import annotations

from collections.abc import Callable

# OS pid of a worker process.
WorkerId = int

# Notification call-out for scaling decisions and worker exits.
Notifier = Callable[[str], None]
