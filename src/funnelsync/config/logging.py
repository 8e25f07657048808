"""Shared logging helpers for funnelsync."""

from __future__ import annotations

import logging

QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine")


def configure_logging(*, level: int = logging.INFO, force: bool = False) -> None:
    """Initialise the root logger once with sensible defaults.

    Parameters mirror ``logging.basicConfig`` with a simplified contract: we default
    to INFO level and a terse format suitable for CLI and cron output. Pass
    ``force=True`` to reconfigure during tests or specialised entry points.

    Per-request HTTP logging from httpx is noisy during bulk pagination, so those
    loggers are held at WARNING unless the caller asks for DEBUG.
    """

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        force=force,
    )
    if level > logging.DEBUG:
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
