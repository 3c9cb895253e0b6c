"""Structured logging module.

This module provides utilities for structured logging using structlog and logfire.
"""

from .setup import bind_log_context, clear_log_context, get_logger, setup_logging

__all__ = [
    "bind_log_context",
    "clear_log_context",
    "get_logger",
    "setup_logging",
]
