"""
Logging setup shared by the derivation engine.

Loggers live under the ``bipkeychain`` namespace. Only non-secret context
(entity ids, stages, hash function names, indices) is ever passed here.
"""

import logging
import os

from bipkeychain.config import LOG_LEVEL_ENV_VAR

_ROOT_LOGGER = "bipkeychain"


def _setup_logging():
    """Setup logging configuration for the bipkeychain logger tree."""
    logger = logging.getLogger(_ROOT_LOGGER)
    if not logger.handlers:
        handler = logging.StreamHandler()

        level = os.getenv(LOG_LEVEL_ENV_VAR, "WARNING").upper()
        logger.setLevel(getattr(logging, level, logging.WARNING))

        # Structured formatting
        formatter = logging.Formatter(
            "[%(asctime)s.%(msecs)03d] %(levelname)s [%(name)s]: %(message)s",
            datefmt="%H:%M:%S",
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a child logger of ``bipkeychain``, configuring the tree once."""
    _setup_logging()
    if name != _ROOT_LOGGER and not name.startswith(_ROOT_LOGGER + "."):
        name = f"{_ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


def log(logger: logging.Logger, level: str, message: str, **kwargs):
    """Structured logging with optional context."""
    log_method = getattr(logger, level.lower(), logger.info)

    if kwargs:
        # Add context to message
        context = " ".join([f"{k}={v}" for k, v in kwargs.items()])
        message = f"{message} | {context}"

    log_method(message)
