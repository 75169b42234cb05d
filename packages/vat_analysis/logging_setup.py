"""Logging for ``vat_analysis``.

Engine modules log through ``get_logger("vat_analysis.<module>")`` and never
attach handlers; until :func:`configure_logging` runs, the package logger only
carries a ``NullHandler`` so library callers see nothing.

The CLI calls :func:`configure_logging` once. Records go to whatever
``sys.stderr`` is at emit time, so report output on stdout stays clean even
when stderr is swapped after startup (pytest capture, ``CliRunner``).
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TextIO

_PKG_LOGGER_NAME = "vat_analysis"
_LEVEL_ENV = "VAT_ANALYSIS_LOG_LEVEL"
_FORMAT = "%(asctime)s vat_analysis %(levelname)-7s [%(module)s] %(message)s"
_CONFIGURED = False


class _StderrHandler(logging.StreamHandler):
    @property
    def stream(self) -> TextIO:
        return sys.stderr

    @stream.setter
    def stream(self, value: TextIO) -> None:
        pass


def resolve_level(level: str | None = None) -> int:
    """Level from ``level``, else ``VAT_ANALYSIS_LOG_LEVEL``, else ``INFO``.

    Unknown names fall through to the next source.
    """

    for candidate in (level, os.getenv(_LEVEL_ENV)):
        if not candidate:
            continue
        name = candidate.strip().upper()
        if name.isdigit():
            return int(name)
        numeric = logging.getLevelNamesMapping().get(name)
        if numeric is not None:
            return numeric
    return logging.INFO


def configure_logging(level: str | None = None) -> None:
    """Send package records to stderr; later calls are no-ops."""

    global _CONFIGURED
    if _CONFIGURED:
        return

    logger = logging.getLogger(_PKG_LOGGER_NAME)
    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    handler = _StderrHandler()
    handler.setFormatter(logging.Formatter(_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(resolve_level(level))
    logger.propagate = False

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger", "resolve_level"]
