"""Fire-and-forget execution for non-critical webhook side effects"""
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Any, Callable, Optional

from photovault.core.config import settings

logger = logging.getLogger(__name__)

_executor: Optional[ThreadPoolExecutor] = None
# Separate from _executor so call_with_timeout never waits on a worker its caller holds
_stats_executor: Optional[ThreadPoolExecutor] = None


def get_executor() -> ThreadPoolExecutor:
    """Lazily create the shared executor"""
    global _executor
    if _executor is None:
        _executor = ThreadPoolExecutor(
            max_workers=settings.BACKGROUND_MAX_WORKERS,
            thread_name_prefix="webhook-bg"
        )
    return _executor


def get_stats_executor() -> ThreadPoolExecutor:
    """Lazily create the executor used by call_with_timeout"""
    global _stats_executor
    if _stats_executor is None:
        _stats_executor = ThreadPoolExecutor(
            max_workers=settings.STATS_MAX_WORKERS,
            thread_name_prefix="churn-stats"
        )
    return _stats_executor


def run_safely(fn: Callable, *args, **kwargs) -> None:
    """Run fn, logging instead of raising. Detached work has nobody left to raise to."""
    try:
        fn(*args, **kwargs)
    except Exception as e:
        logger.error(f"Background task {getattr(fn, '__name__', fn)} failed: {e}", exc_info=True)


def fire_and_forget(fn: Callable, *args, **kwargs) -> None:
    """Schedule fn without waiting for it. Its failures never reach the caller."""
    try:
        get_executor().submit(run_safely, fn, *args, **kwargs)
    except RuntimeError as e:
        # Executor already shut down (process exiting)
        logger.warning(f"Could not schedule background task {getattr(fn, '__name__', fn)}: {e}")


def call_with_timeout(fn: Callable, timeout: float, default: Any, *args, **kwargs) -> Any:
    """Run fn on the stats executor and return `default` if it errors or exceeds `timeout` seconds.

    Safe to call from a fire_and_forget task: the two never share workers.
    """
    try:
        future = get_stats_executor().submit(fn, *args, **kwargs)
    except RuntimeError as e:
        logger.warning(f"Could not schedule {getattr(fn, '__name__', fn)}: {e}")
        return default
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError:
        logger.warning(f"{getattr(fn, '__name__', fn)} did not finish within {timeout}s, using default")
        future.cancel()
        return default
    except Exception as e:
        logger.error(f"{getattr(fn, '__name__', fn)} failed: {e}", exc_info=True)
        return default


def shutdown(wait: bool = False) -> None:
    """Stop both executors (application shutdown)"""
    global _executor, _stats_executor
    if _executor is not None:
        _executor.shutdown(wait=wait)
        _executor = None
    if _stats_executor is not None:
        _stats_executor.shutdown(wait=wait)
        _stats_executor = None
