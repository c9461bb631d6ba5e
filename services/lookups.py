"""
Bounded data-access calls.

Both engines read reference data through injected accessors. A lookup that
hangs must not hold up checkout, so callers can pass a timeout: the call runs
on its own daemon thread and LookupTimeout is raised once the timeout
elapses. The thread is abandoned, not cancelled; the data-access layer owns
its own connection timeouts.

Every call gets a fresh thread, so abandoned lookups never queue in front of
later ones: a hung backend delays only the evaluations that wait on it.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, Optional, TypeVar

T = TypeVar("T")


class LookupTimeout(TimeoutError):
    """Raised when a data-access call exceeds the caller's timeout."""

    def __init__(self, lookup: str, timeout: float):
        self.lookup = lookup
        self.timeout = timeout
        super().__init__(f"Lookup {lookup} exceeded {timeout:.3f}s")


def _run_into(future: Future, fn: Callable[..., Any], args: tuple) -> None:
    if not future.set_running_or_notify_cancel():
        return
    try:
        result = fn(*args)
    except BaseException as exc:
        # Handed to the waiting caller, which re-raises it.
        future.set_exception(exc)
    else:
        future.set_result(result)


def bounded_call(fn: Callable[..., T], *args: Any, timeout: Optional[float] = None) -> T:
    """
    Call fn(*args), bounded by timeout seconds.

    timeout=None calls inline. Exceptions raised by fn propagate unchanged.
    """
    if timeout is None:
        return fn(*args)

    name = getattr(fn, "__name__", repr(fn))
    future: Future = Future()
    worker = threading.Thread(
        target=_run_into,
        args=(future, fn, args),
        name=f"rules-lookup-{name}",
        daemon=True,
    )
    worker.start()
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError:
        raise LookupTimeout(name, timeout) from None


__all__ = [
    "LookupTimeout",
    "bounded_call",
]
