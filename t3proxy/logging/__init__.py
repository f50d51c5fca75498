"""Logging module for the proxy."""

from .setup import logger, setup_logging

__all__ = [
    "logger",
    "setup_logging",
]
