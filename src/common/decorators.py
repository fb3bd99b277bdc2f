"""
Error Handling Decorators

Decorators for consistent error handling and timing across vmprobe.
"""

from __future__ import annotations

import functools
import inspect
import logging
import time
from typing import Type, Callable, Any, Optional

from .exceptions import VMProbeError

logger = logging.getLogger(__name__)


def handle_errors(
    *exception_types: Type[Exception],
    default: Any = None,
    log_level: int = logging.ERROR,
    reraise: bool = False,
    message: Optional[str] = None,
):
    """
    Decorator to handle exceptions consistently.

    vmprobe errors are logged by message, with their ``to_dict()`` attached
    to the record as ``error`` for the JSON log formatter. Tracebacks are
    only logged at ERROR and above.

    Args:
        exception_types: Exception types to catch (default: Exception)
        default: Value to return on error
        log_level: Logging level for errors
        reraise: Whether to re-raise after logging
        message: Custom error message prefix

    Example:
        @handle_errors(ProbeError, default=None, log_level=logging.DEBUG)
        def read_metrics(vm):
            ...
    """
    if not exception_types:
        exception_types = (Exception,)

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except exception_types as e:
                prefix = message or f"{func.__name__} failed"
                if isinstance(e, VMProbeError):
                    text, extra = e.message, {"error": e.to_dict()}
                else:
                    text, extra = str(e), None
                logger.log(
                    log_level,
                    f"{prefix}: {text}",
                    exc_info=log_level >= logging.ERROR,
                    extra=extra,
                )
                if reraise:
                    raise
                return default
        return wrapper
    return decorator


def _vm_label(signature: Optional[inspect.Signature], args, kwargs) -> str:
    """``[web01]`` when the call has a ``vm_name`` argument."""
    if signature is None or "vm_name" not in signature.parameters:
        return ""
    try:
        vm_name = signature.bind_partial(*args, **kwargs).arguments.get("vm_name")
    except TypeError:
        return ""
    return f"[{vm_name}]" if vm_name else ""


def timed(func: Optional[Callable] = None, *, slow_after: Optional[float] = None):
    """
    Decorator to log function execution time.

    Timings go out at DEBUG, or at INFO once they reach ``slow_after``
    seconds. Calls with a ``vm_name`` argument are labelled with it.

    Example:
        @timed(slow_after=10.0)
        def discover(self, vm_name):
            ...
    """
    def decorator(func: Callable) -> Callable:
        try:
            signature = inspect.signature(func)
        except (TypeError, ValueError):
            signature = None

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                elapsed = time.perf_counter() - start
                slow = slow_after is not None and elapsed >= slow_after
                logger.log(
                    logging.INFO if slow else logging.DEBUG,
                    f"{func.__qualname__}{_vm_label(signature, args, kwargs)} "
                    f"completed in {elapsed:.3f}s",
                )
        return wrapper

    if func is not None:
        return decorator(func)
    return decorator
