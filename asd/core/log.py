"""
Logging setup for the asd command line.

Library modules only create ``logging.getLogger(__name__)`` loggers; the CLI
calls :func:`configure_logging` once at startup. Secrets are never passed to
a logger, only paths, users, hosts and ports.
"""

import logging
from typing import Optional


DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def verbosity_level(quiet: bool = False, verbose: bool = False) -> int:
    """Map ``--quiet``/``--verbose`` to a logging level."""
    if verbose:
        return logging.DEBUG
    if quiet:
        return logging.ERROR
    return logging.WARNING


def configure_logging(
    level: int = logging.WARNING,
    format_string: Optional[str] = None,
    handler: Optional[logging.Handler] = None,
) -> logging.Logger:
    """
    Configure the ``asd`` logger.

    Repeated calls replace the previously installed handler.

    Args:
        level: Logging level (default: WARNING).
        format_string: Optional custom format string.
        handler: Optional custom handler (default: StreamHandler on stderr).

    Example:
        from asd.core.log import configure_logging
        configure_logging(level=logging.DEBUG)
    """
    if format_string is None:
        format_string = DEFAULT_FORMAT

    if handler is None:
        handler = logging.StreamHandler()

    handler.setFormatter(logging.Formatter(format_string))

    logger = logging.getLogger("asd")
    for existing in list(logger.handlers):
        if getattr(existing, "_asd_handler", False):
            logger.removeHandler(existing)
    handler._asd_handler = True
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger
