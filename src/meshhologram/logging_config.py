"""
Logging Configuration
=====================
Sets up the package logger for hologram generation runs.

Why is this file needed?
------------------------
1. One place decides where the run log goes (stdout and an optional file).
2. Floating-point trouble in the transforms surfaces as numpy
   RuntimeWarnings (overflow, invalid value). Those are routed through the
   same handlers so a run log shows them next to the facet that caused them.
"""
import logging
import sys
from typing import Optional

PACKAGE_LOGGER = "meshhologram"
WARNINGS_LOGGER = "py.warnings"

_FORMATTER = logging.Formatter(
    '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%H:%M:%S'
)


def _reset(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    capture_warnings: bool = True,
) -> logging.Logger:
    """
    Configures the logger for the 'meshhologram' namespace.

    Calling it again replaces the handlers of the previous call.

    Args:
        level: Logging level (e.g. logging.DEBUG, logging.INFO)
        log_file: Optional path to save logs to a file.
        capture_warnings: Route `warnings` (numpy RuntimeWarnings included) into the same handlers.

    Returns:
        The configured package logger.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)
    _reset(logger)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode='w', encoding='utf-8'))
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(_FORMATTER)
        logger.addHandler(handler)

    warnings_logger = logging.getLogger(WARNINGS_LOGGER)
    _reset(warnings_logger)
    logging.captureWarnings(capture_warnings)
    if capture_warnings:
        # py.warnings is outside the package namespace, so it gets the handlers directly
        warnings_logger.propagate = False
        for handler in handlers:
            warnings_logger.addHandler(handler)
    else:
        warnings_logger.propagate = True

    logger.info("Logging initialized.")
    return logger
