"""Logging for rolesync: one stderr handler on the ``rolesync`` logger."""

from __future__ import annotations

import logging
import sys
import threading

ROOT_LOGGER = "rolesync"

_lock = threading.Lock()
_handler: logging.Handler | None = None


class TagFormatter(logging.Formatter):
    """Render ``[tag] message`` where *tag* is the logger name below ``rolesync``.

    The record's message is left untouched so other handlers (pytest's
    ``caplog`` included) see what was logged.
    """

    def __init__(self) -> None:
        super().__init__("[%(tag)s] %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        record.tag = record.name.removeprefix(f"{ROOT_LOGGER}.")
        return super().format(record)


def setup_logging(verbose: bool = False) -> None:
    """Attach the stderr handler once; INFO by default, DEBUG when *verbose*.

    Mutations are logged at INFO, so a plain run shows what it changed.
    Calling again with ``verbose=True`` lowers the level; the handler is
    never duplicated.
    """
    global _handler
    with _lock:
        logger = logging.getLogger(ROOT_LOGGER)
        if _handler is None:
            _handler = logging.StreamHandler(sys.stderr)
            _handler.setFormatter(TagFormatter())
            logger.addHandler(_handler)
            logger.propagate = False
            logger.setLevel(logging.INFO)
        if verbose:
            logger.setLevel(logging.DEBUG)


def get_logger(name: str) -> logging.Logger:
    setup_logging()
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
