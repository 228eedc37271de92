"""Capture instrumentation utilities.

Logging setup plus a decorator timing the asynchronous per-page steps.
"""
from __future__ import annotations

import time
import logging
from functools import wraps
from typing import Callable, Any, Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# Basic logging configuration (can be overridden by app)
logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
logger = logging.getLogger("capture")


def configure_logging(level: Optional[str] = None) -> None:
    """Change the root level (e.g. from the CLI); unknown names fall back to INFO."""
    resolved = getattr(logging, (level or "INFO").upper(), logging.INFO)
    if not isinstance(resolved, int):
        resolved = logging.INFO
    logging.getLogger().setLevel(resolved)


def time_step(step: str) -> Callable:
    """Decorator timing an async method called as method(self, page_index, ...).

    Logs step, page index and duration_ms once the coroutine finishes,
    whether it returned or raised.
    """
    def decorator(fn: Callable) -> Callable:
        @wraps(fn)
        async def wrapper(self, page_index: int, *args: Any, **kwargs: Any) -> Any:
            start = time.perf_counter()
            try:
                return await fn(self, page_index, *args, **kwargs)
            finally:
                duration_ms = int((time.perf_counter() - start) * 1000)
                logger.info("step=%s page=%d duration_ms=%d", step, page_index, duration_ms)
        return wrapper
    return decorator
