"""
Best-effort execution of side effects (activity recording, notifications).

A side effect runs only after the primary write has committed. Its failure or timeout is
logged and never propagated, so it cannot undo or block the committed state change.
"""

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from concurrent.futures import wait
from typing import Any, Callable, Optional, Set

from matterdesk.utils.logging_config import get_logger


class BestEffortRunner:
    """Runs callables on a small worker pool with a bounded wait."""

    def __init__(self, timeout_seconds: float = 5.0, max_workers: int = 4):
        self.timeout_seconds = timeout_seconds
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="side-effect")
        self._pending: Set[Future] = set()
        self._lock = threading.Lock()
        self.logger = get_logger("services.side_effects")

    def _track(self, label: str, future: Future, report_errors: bool = True) -> Future:
        with self._lock:
            self._pending.add(future)

        def _done(done: Future):
            with self._lock:
                self._pending.discard(done)
            if report_errors:
                self._log_late_failure(label, done)

        future.add_done_callback(_done)
        return future

    def _log_failure(self, label: str, error: BaseException):
        self.logger.error(
            "Side effect failed",
            extra={
                "event": "side_effect_failed",
                "side_effect": label,
                "error": str(error),
                "error_type": type(error).__name__,
            },
            exc_info=(type(error), error, error.__traceback__),
        )

    def _log_late_failure(self, label: str, future: Future):
        if not future.cancelled() and future.exception() is not None:
            self._log_failure(label, future.exception())

    def run(self, label: str, func: Callable[..., Any], *args, **kwargs) -> bool:
        """
        Run a side effect and wait for it up to the configured timeout.

        Returns:
            True if it completed successfully in time, False otherwise
        """
        future = self._track(label, self._executor.submit(func, *args, **kwargs), report_errors=False)
        try:
            future.result(timeout=self.timeout_seconds)
            return True
        except FutureTimeoutError:
            self.logger.warning(
                "Side effect timed out; continuing without it",
                extra={"event": "side_effect_timeout", "side_effect": label, "timeout_seconds": self.timeout_seconds},
            )
            future.add_done_callback(lambda late: self._log_late_failure(label, late))
            return False
        except Exception as e:
            self._log_failure(label, e)
            return False

    def submit(self, label: str, func: Callable[..., Any], *args, **kwargs) -> Future:
        """Fire a side effect without waiting for it."""
        return self._track(label, self._executor.submit(func, *args, **kwargs))

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until every tracked side effect has finished; used by tests and shutdown."""
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait_for_pending: bool = True):
        self._executor.shutdown(wait=wait_for_pending)
