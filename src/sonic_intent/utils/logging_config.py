"""Logging configuration for sonic-intent.

Provides:
- Console output plus a rotating DEBUG log file
- A separate performance log fed by the ``timed`` helpers
- Per-operation timing statistics

Environment Variables:
    SONIC_INTENT_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    SONIC_INTENT_LOG_FILE: Path to log file (default: ~/.sonic-intent/sonic-intent.log)
    SONIC_INTENT_LOG_MAX_SIZE: Max log file size in MB (default: 10)
    SONIC_INTENT_LOG_BACKUPS: Number of backup files to keep (default: 5)

Usage:
    from sonic_intent.utils.logging_config import setup_logging, timed

    setup_logging()

    @timed("lock")
    async def lock(self):
        ...
"""
import asyncio
import functools
import logging
import os
import time
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Callable, Any

perf_logger = logging.getLogger("sonic_intent.perf")
main_logger = logging.getLogger("sonic_intent")


def get_log_level() -> int:
    level_str = os.environ.get("SONIC_INTENT_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_str, logging.INFO)


def get_log_file() -> Path:
    default_path = Path.home() / ".sonic-intent" / "sonic-intent.log"
    return Path(os.environ.get("SONIC_INTENT_LOG_FILE", str(default_path)))


def setup_logging() -> None:
    """Attach console, file and performance handlers to the package loggers.

    Safe to call more than once; handlers are only attached the first time.
    """
    if main_logger.handlers:
        return

    log_level = get_log_level()
    log_file = get_log_file()
    max_size_mb = int(os.environ.get("SONIC_INTENT_LOG_MAX_SIZE", "10"))
    backup_count = int(os.environ.get("SONIC_INTENT_LOG_BACKUPS", "5"))

    log_file.parent.mkdir(parents=True, exist_ok=True)

    main_format = logging.Formatter(
        "%(asctime)s.%(msecs)03d | %(name)-32s | %(levelname)-7s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    perf_format = logging.Formatter(
        "%(asctime)s.%(msecs)03d | PERF | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(main_format)

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8"
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(main_format)

    perf_log_file = log_file.parent / "sonic-intent-perf.log"
    perf_handler = RotatingFileHandler(
        perf_log_file,
        maxBytes=max_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8"
    )
    perf_handler.setLevel(logging.DEBUG)
    perf_handler.setFormatter(perf_format)

    main_logger.setLevel(logging.DEBUG)  # handlers filter
    main_logger.addHandler(console_handler)
    main_logger.addHandler(file_handler)

    # perf records also reach the file handler through propagation
    perf_logger.setLevel(logging.DEBUG)
    perf_logger.addHandler(perf_handler)

    main_logger.info(f"Logging initialized: level={logging.getLevelName(log_level)}, file={log_file}")


def _format(operation: str, device: Optional[str], elapsed: float, status: str, extra: dict) -> str:
    msg = f"{operation:24s} | {device or 'N/A':15s} | {elapsed:8.2f}ms | {status}"
    if extra:
        msg += " | " + " | ".join(f"{k}={v}" for k, v in extra.items())
    return msg


def timed(operation: str, device: Optional[str] = None):
    """Decorator logging the execution time of sync or async callables.

    The device name is taken from ``self.name`` when not given explicitly.
    Timings are also recorded in ``global_stats``.
    """
    def decorator(func: Callable) -> Callable:
        def _device(args) -> Optional[str]:
            if device is None and args and isinstance(getattr(args[0], "name", None), str):
                return args[0].name
            return device

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs) -> Any:
            dev = _device(args)
            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.warning(_format(operation, dev, elapsed, f"FAIL: {e}", {}))
                raise
            elapsed = (time.perf_counter() - start) * 1000
            global_stats.record(operation, elapsed)
            perf_logger.info(_format(operation, dev, elapsed, "OK", {}))
            return result

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs) -> Any:
            dev = _device(args)
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                elapsed = (time.perf_counter() - start) * 1000
                perf_logger.warning(_format(operation, dev, elapsed, f"FAIL: {e}", {}))
                raise
            elapsed = (time.perf_counter() - start) * 1000
            global_stats.record(operation, elapsed)
            perf_logger.info(_format(operation, dev, elapsed, "OK", {}))
            return result

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


@contextmanager
def timed_section_sync(operation: str, device: Optional[str] = None, **extra):
    """Time a block of synchronous code.

    Usage:
        with timed_section_sync("generate", device="leaf1", service="customer-l3"):
            entries = generate_service_entries(...)
    """
    start = time.perf_counter()
    try:
        yield
    except Exception as e:
        elapsed = (time.perf_counter() - start) * 1000
        perf_logger.warning(_format(operation, device, elapsed, f"FAIL: {e}", extra))
        raise
    elapsed = (time.perf_counter() - start) * 1000
    global_stats.record(operation, elapsed)
    perf_logger.info(_format(operation, device, elapsed, "OK", extra))


class PerfStats:
    """Collect and report performance statistics.

    Usage:
        stats = PerfStats()
        stats.record("apply", 150.5)
        print(stats.summary())
    """

    def __init__(self):
        self._data: dict[str, list[float]] = {}

    def record(self, operation: str, duration_ms: float) -> None:
        self._data.setdefault(operation, []).append(duration_ms)

    def count(self, operation: str) -> int:
        return len(self._data.get(operation, []))

    def summary(self) -> str:
        lines = ["Performance Summary", "=" * 60]
        for op, times in sorted(self._data.items()):
            if not times:
                continue
            count = len(times)
            avg = sum(times) / count
            lines.append(
                f"{op:24s} | count={count:4d} | "
                f"avg={avg:8.2f}ms | min={min(times):8.2f}ms | max={max(times):8.2f}ms"
            )
        return "\n".join(lines)

    def clear(self) -> None:
        self._data.clear()


global_stats = PerfStats()
