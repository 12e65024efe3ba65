"""Logging setup shared by the supervisor and its worker processes."""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime

_ROOT = "procscale"


class _JsonFormatter(logging.Formatter):
    """One-line JSON log formatter.

    Emits objects with keys: timestamp, level, logger, pid, process, message.
    Records carrying a ``worker_id`` extra get that key as well.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as a JSON string.

        Args:
            record: The log record to format.

        Returns:
            A single-line JSON string.
        """
        log_entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "pid": record.process,
            "process": record.processName,
            "message": record.getMessage(),
        }
        worker_id = getattr(record, "worker_id", None)
        if worker_id is not None:
            log_entry["worker_id"] = worker_id
        if record.exc_info and record.exc_info[1] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def setup_logging(
    level: int = logging.INFO,
    *,
    json_format: bool = False,
) -> logging.Logger:
    """Configure and return the ``procscale`` root logger.

    Installs a single stderr handler on the ``procscale`` namespace. Calling
    it again (for example from a freshly spawned worker that inherited
    nothing, or from tests) only updates levels.

    Args:
        level: Logging level (e.g., ``logging.DEBUG``). Defaults to INFO.
        json_format: Emit JSON lines instead of human-readable text.

    Returns:
        The configured ``procscale`` logger.
    """
    logger = logging.getLogger(_ROOT)
    logger.setLevel(level)

    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    if json_format:
        formatter: logging.Formatter = _JsonFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)-8s] %(processName)s[%(process)d] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.propagate = False

    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a child logger under the ``procscale`` namespace.

    Args:
        name: Logger name, appended to the ``procscale.`` prefix.
            Example: ``get_logger("engine.controller")`` returns
            ``logging.getLogger("procscale.engine.controller")``.

    Returns:
        The child logger.
    """
    return logging.getLogger(f"{_ROOT}.{name}")


def get_worker_logger(name: str, worker_id: int) -> logging.LoggerAdapter[logging.Logger]:
    """Return a child logger that tags every record with *worker_id*.

    The JSON formatter emits the tag as a ``worker_id`` key.
    """
    return logging.LoggerAdapter(get_logger(name), {"worker_id": worker_id})
