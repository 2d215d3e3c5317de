"""Logging setup shared by the assetshaker pipeline and CLI."""

from __future__ import annotations

import logging
from pathlib import Path

_ROOT = "assetshaker"
_CONSOLE_FORMAT = "[assetshaker] %(levelname)s %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(threadName)s]: %(message)s"


def get_logger(component: str | None = None) -> logging.Logger:
    """Return the logger for one pipeline component, e.g. ``get_logger("scanner")``."""
    return logging.getLogger(f"{_ROOT}.{component}" if component else _ROOT)


def _level(verbose: bool, quiet: bool) -> int:
    if verbose:
        return logging.DEBUG
    if quiet:
        return logging.WARNING
    return logging.INFO


def configure_logging(
    *, verbose: bool = False, quiet: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Attach console (stderr) and optional file handlers to the assetshaker logger.

    ``quiet`` limits the console to warnings; ``verbose`` wins when both are set.
    """
    level = _level(verbose, quiet)
    logger = logging.getLogger(_ROOT)
    logger.setLevel(logging.DEBUG if log_file is not None else level)
    logger.propagate = False

    # Repeated CLI invocations in one process must not stack handlers.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file is not None:
        # The file sink records debug output regardless of the console level.
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(file_handler)

    return logger


__all__ = ["configure_logging", "get_logger"]
