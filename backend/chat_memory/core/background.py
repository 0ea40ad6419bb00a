"""Fire-and-forget execution on a worker pool."""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable

from chat_memory.core.logging import get_logger

logger = get_logger(__name__)


class BackgroundRunner:
    """Run callables off the request path; failures are logged and never re-raised.

    ``wait_idle`` blocks until every submitted task has finished, which lets
    tests observe background side effects deterministically.
    """

    def __init__(
        self,
        name: str,
        workers: int = 4,
        on_failure: Callable[[BaseException], None] | None = None,
    ) -> None:
        self.name = name
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix=name)
        self._on_failure = on_failure
        self._pending: set[Future] = set()
        self._lock = threading.Lock()

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        future = self._executor.submit(self._guarded, fn, *args, **kwargs)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._discard)
        return future

    def wait_idle(self, timeout: float | None = None) -> bool:
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait_for_pending: bool = True) -> None:
        self._executor.shutdown(wait=wait_for_pending)

    def _guarded(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except Exception as exc:
            logger.exception("Background task %s failed", getattr(fn, "__name__", repr(fn)))
            if self._on_failure is not None:
                self._on_failure(exc)
            return None

    def _discard(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)


__all__ = ["BackgroundRunner"]
