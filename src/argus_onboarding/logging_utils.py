"""Diagnostic logging for the onboarding commands.

Operator-facing progress goes through :mod:`argus_onboarding.console`; this
module only wires the stdlib ``logging`` tree that carries debug detail
(boto3 failures, terraform command lines) to stderr and an optional file.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from argus_onboarding.config import load_settings

_logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Floors applied to third-party loggers, whatever the requested level.
LIBRARY_FLOORS = {
    "botocore": logging.INFO,
    "boto3": logging.INFO,
    "urllib3": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
}


def _resolve_level(name: str, verbose: bool) -> int:
    if verbose:
        return logging.DEBUG
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def _file_handler(path: str) -> logging.Handler | None:
    try:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(path, encoding="utf-8")
    except OSError as exc:
        _logger.warning("Failed to open log file %s: %s", path, exc)
        return None


def configure_logging(verbose: bool = False) -> None:
    """Install handlers on the root logger; ``verbose`` forces DEBUG."""
    settings = load_settings()
    level = _resolve_level(settings.logging.level, verbose)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if settings.logging.file:
        file_handler = _file_handler(settings.logging.file)
        if file_handler is not None:
            handlers.append(file_handler)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    for name, floor in LIBRARY_FLOORS.items():
        logging.getLogger(name).setLevel(max(level, floor))
