"""Utility modules for retries, logging and auditing."""
from .connection import backoff_retrying, is_transient
from .logging_config import (
    log_context,
    setup_logging,
    timed,
    timed_section,
    perf_logger,
)

__all__ = [
    "backoff_retrying",
    "is_transient",
    "log_context",
    "setup_logging",
    "timed",
    "timed_section",
    "perf_logger",
]
