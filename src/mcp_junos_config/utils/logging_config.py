"""Logging configuration for the junoscraft engine.

Every record carries the device and transaction it belongs to, set with
log_context() by the engine and the transaction coordinator:

    2024-05-01 10:00:00.123 | mcp_junos_config.config_engine.lock | INFO    | device=srx-edge tx=create vlan users | ...

Timing for transaction phases and RPCs goes to a separate perf log.

Environment Variables:
    JUNOSCRAFT_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    JUNOSCRAFT_LOG_FILE: Path to log file (default: ~/.junoscraft/junoscraft.log)
    JUNOSCRAFT_LOG_MAX_SIZE: Max log file size in MB (default: 10)
    JUNOSCRAFT_LOG_BACKUPS: Number of backup files to keep (default: 5)

Usage:
    from mcp_junos_config.utils.logging_config import log_context, setup_logging, timed

    setup_logging()  # Call once at startup

    with log_context(device="srx-edge", tx="create vlan users"):
        ...

    @timed("connect")
    async def connect(self):
        ...

    async with timed_section("load", device_id="srx-edge", statements=12):
        ...
"""
import asyncio
import functools
import logging
import os
import time
from contextlib import asynccontextmanager, contextmanager
from contextvars import ContextVar
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Callable, Any

# Performance logger - separate from main logger for easy filtering
perf_logger = logging.getLogger("junoscraft.perf")
main_logger = logging.getLogger("junoscraft")

MAIN_FORMAT = "%(asctime)s.%(msecs)03d | %(name)-25s | %(levelname)-7s | %(context)s | %(message)s"
PERF_FORMAT = "%(asctime)s.%(msecs)03d | PERF | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_context: ContextVar[dict] = ContextVar("junoscraft_log_context", default={})


@contextmanager
def log_context(**fields):
    """Attach fields (device, tx, ...) to every record logged inside the block.

    Nested blocks add to the outer fields. Fields set to None are left out.
    """
    merged = {**_context.get(), **{k: v for k, v in fields.items() if v is not None}}
    token = _context.set(merged)
    try:
        yield merged
    finally:
        _context.reset(token)


class ContextFilter(logging.Filter):
    """Renders the active log_context() onto the record as `context`."""

    def filter(self, record: logging.LogRecord) -> bool:
        fields = _context.get()
        record.context = " ".join(f"{k}={v}" for k, v in fields.items()) or "-"
        return True


def get_log_level() -> int:
    """Get log level from environment."""
    level_str = os.environ.get("JUNOSCRAFT_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_str, logging.INFO)


def get_log_file() -> Path:
    """Get log file path from environment."""
    default_path = Path.home() / ".junoscraft" / "junoscraft.log"
    path_str = os.environ.get("JUNOSCRAFT_LOG_FILE", str(default_path))
    return Path(path_str)


def _own_handler(handler: logging.Handler, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(ContextFilter())
    handler.junoscraft = True
    return handler


def _rotating(path: Path, level: int, formatter: logging.Formatter) -> logging.Handler:
    max_size_mb = int(os.environ.get("JUNOSCRAFT_LOG_MAX_SIZE", "10"))
    backup_count = int(os.environ.get("JUNOSCRAFT_LOG_BACKUPS", "5"))
    handler = RotatingFileHandler(
        path,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8"
    )
    return _own_handler(handler, level, formatter)


def teardown_logging() -> None:
    """Remove and close the handlers installed by setup_logging()."""
    for logger in (main_logger, logging.getLogger("mcp_junos_config"), perf_logger):
        for handler in [h for h in logger.handlers if getattr(h, "junoscraft", False)]:
            logger.removeHandler(handler)
            handler.close()
    perf_logger.propagate = True


def setup_logging(log_file: Optional[Path] = None, level: Optional[int] = None) -> Path:
    """Configure logging for the application. Safe to call again.

    Sets up:
    - Console handler on stderr (respects JUNOSCRAFT_LOG_LEVEL)
    - File handler with rotation (DEBUG level)
    - Performance log file for timing metrics

    Returns:
        Path of the main log file
    """
    teardown_logging()
    log_level = level if level is not None else get_log_level()
    log_file = Path(log_file) if log_file is not None else get_log_file()
    log_file.parent.mkdir(parents=True, exist_ok=True)

    main_format = logging.Formatter(MAIN_FORMAT, datefmt=DATE_FORMAT)
    perf_format = logging.Formatter(PERF_FORMAT, datefmt=DATE_FORMAT)

    # MCP stdio transport owns stdout, so the console handler writes to stderr
    console_handler = _own_handler(logging.StreamHandler(), log_level, main_format)
    file_handler = _rotating(log_file, logging.DEBUG, main_format)
    perf_log_file = log_file.parent / "junoscraft-perf.log"
    perf_handler = _rotating(perf_log_file, logging.DEBUG, perf_format)

    # Package modules log under their import names
    for logger in (main_logger, logging.getLogger("mcp_junos_config")):
        logger.setLevel(logging.DEBUG)
        logger.addHandler(console_handler)
        logger.addHandler(file_handler)

    perf_logger.setLevel(logging.DEBUG)
    perf_logger.propagate = False
    perf_logger.addHandler(perf_handler)

    main_logger.info(f"Logging initialized: level={logging.getLevelName(log_level)}, file={log_file}")
    perf_logger.info(f"Performance logging to: {perf_log_file}")
    return log_file


def _perf_line(operation: str, device_id: Optional[str], elapsed: float, status: str) -> str:
    device_id = device_id or _context.get().get("device")
    line = f"{operation:20s} | {device_id or 'N/A':15s} | {elapsed:8.2f}ms | {status}"
    tx = _context.get().get("tx")
    return f"{line} | tx={tx}" if tx else line


def timed(operation: str, device_id: Optional[str] = None):
    """Decorator to log execution time of sync/async functions.

    Args:
        operation: Name of the operation (e.g., "connect", "commit")
        device_id: Optional device identifier (otherwise taken from self.device_id)
    """
    def decorator(func: Callable) -> Callable:
        def resolve_device(args) -> Optional[str]:
            if device_id is None and args and hasattr(args[0], "device_id"):
                return args[0].device_id
            return device_id

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs) -> Any:
            dev_id = resolve_device(args)
            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.warning(_perf_line(operation, dev_id, elapsed, f"FAIL: {e}"))
                raise
            elapsed = (time.perf_counter() - start) * 1000
            perf_logger.info(_perf_line(operation, dev_id, elapsed, "OK"))
            return result

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs) -> Any:
            dev_id = resolve_device(args)
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.warning(_perf_line(operation, dev_id, elapsed, f"FAIL: {e}"))
                raise
            elapsed = (time.perf_counter() - start) * 1000
            perf_logger.info(_perf_line(operation, dev_id, elapsed, "OK"))
            return result

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


@asynccontextmanager
async def timed_section(operation: str, device_id: Optional[str] = None, **extra):
    """Async context manager for timing code sections.

    Usage:
        async with timed_section("validate", device_id="srx-edge", attempt=2):
            await session.send(...)
    """
    start = time.perf_counter()
    extra_str = " | ".join(f"{k}={v}" for k, v in extra.items()) if extra else ""

    try:
        yield
    except Exception as e:
        elapsed = (time.perf_counter() - start) * 1000
        msg = _perf_line(operation, device_id, elapsed, f"FAIL: {e}")
        if extra_str:
            msg += f" | {extra_str}"
        perf_logger.warning(msg)
        raise
    elapsed = (time.perf_counter() - start) * 1000
    msg = _perf_line(operation, device_id, elapsed, "OK")
    if extra_str:
        msg += f" | {extra_str}"
    perf_logger.info(msg)
