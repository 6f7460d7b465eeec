"""Observability module for structured logging.

This module provides structured logging with correlation IDs so that every
committed conversation event can be traced back to the request that caused it.
"""

from parley.observability.logging import get_logger, setup_logging

__all__ = [
    "setup_logging",
    "get_logger",
]
