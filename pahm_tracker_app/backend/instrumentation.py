"""
Instrumentation for debugging score caching and analytics timing.

Enable via environment variables:
- INSTRUMENT_CACHE=1       - Log score cache hits, misses and invalidations
- INSTRUMENT_ANALYTICS=1   - Log analytics computation timing per operation

Use separate log files for different debugging sessions:
- INSTRUMENT_LOG_CACHE=path - Override cache log path (default: data/logs/instrumentation_cache.log)
- INSTRUMENT_LOG_ANALYTICS=path - Override analytics log path (default: data/logs/instrumentation_analytics.log)

Example:
  INSTRUMENT_CACHE=1 INSTRUMENT_LOG_CACHE=logs/cache_debug.log python -m pytest
"""
import os
import sys
import json
import time
from contextlib import contextmanager
from datetime import datetime
from typing import Optional, Any, Iterator

# Base log directory
_BASE_DIR = os.path.join(os.path.dirname(__file__), '..')
_DATA_DIR = os.path.join(_BASE_DIR, 'data')
_LOG_DIR = os.path.join(_DATA_DIR, 'logs')

# Environment-driven enable flags
_CACHE_ENABLED = os.getenv('INSTRUMENT_CACHE', '').lower() in ('1', 'true', 'yes')
_ANALYTICS_ENABLED = os.getenv('INSTRUMENT_ANALYTICS', '').lower() in ('1', 'true', 'yes')

# Log file paths (can be overridden)
_CACHE_LOG = os.getenv('INSTRUMENT_LOG_CACHE', '').strip() or os.path.join(_LOG_DIR, 'instrumentation_cache.log')
_ANALYTICS_LOG = os.getenv('INSTRUMENT_LOG_ANALYTICS', '').strip() or os.path.join(_LOG_DIR, 'instrumentation_analytics.log')


def _ensure_log_dir(path: str) -> None:
    d = os.path.dirname(path)
    if d:
        os.makedirs(d, exist_ok=True)


def _timestamp() -> str:
    return datetime.now().strftime('%Y-%m-%d %H:%M:%S.%f')


def _write_log(path: str, entry: dict) -> None:
    try:
        _ensure_log_dir(path)
        with open(path, 'a', encoding='utf-8') as f:
            f.write(json.dumps(entry, default=str) + '\n')
    except OSError as e:
        print(f"[Instrumentation] Failed to write to {path}: {e}", file=sys.stderr)


def log_cache_event(event: str, user_id: Optional[str] = None, **extra: Any) -> None:
    """Log a score cache event ('hit', 'miss', 'invalidate')."""
    if not _CACHE_ENABLED:
        return
    entry = {
        'ts': _timestamp(),
        'event': f'cache_{event}',
        'user_id': user_id,
        **extra
    }
    _write_log(_CACHE_LOG, entry)


def log_analytics_event(event: str, duration_ms: Optional[float] = None, **extra: Any) -> None:
    """Log an analytics-related event (e.g. one operation completing)."""
    if not _ANALYTICS_ENABLED:
        return
    entry = {
        'ts': _timestamp(),
        'event': event,
        **extra
    }
    if duration_ms is not None:
        entry['duration_ms'] = round(duration_ms, 2)
    _write_log(_ANALYTICS_LOG, entry)


@contextmanager
def timed(event: str, **extra: Any) -> Iterator[None]:
    """Time a block and log it as an analytics event when instrumentation is on."""
    if not _ANALYTICS_ENABLED:
        yield
        return
    start = time.perf_counter()
    try:
        yield
    finally:
        log_analytics_event(event, (time.perf_counter() - start) * 1000, **extra)


def is_cache_enabled() -> bool:
    return _CACHE_ENABLED


def is_analytics_enabled() -> bool:
    return _ANALYTICS_ENABLED
