"""Logging helpers for Gorgon.

Every module asks for a logger under the ``gorgon`` hierarchy; the CLI
configures output once per invocation.
"""

from __future__ import annotations

import logging

_LOGGER_NAME = "gorgon"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a module-scoped logger under the gorgon hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def configure_logging(*, verbose: bool = False) -> logging.Logger:
    """Configure the gorgon logger with a single console handler.

    Args:
        verbose: Emit DEBUG records (phase transitions, skipped writes).

    Returns:
        The configured top-level gorgon logger.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    # Reset handlers so repeated CLI invocations don't duplicate output.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(logging.Formatter("[gorgon] %(levelname)s %(message)s"))
    logger.addHandler(stream_handler)
    return logger


__all__ = ["configure_logging", "get_logger"]
