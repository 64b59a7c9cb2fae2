"""Background execution for model training."""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class TrainingWorker:
    """
    Runs training jobs on a single background thread.

    At most one job is in flight; a request made while one is pending gets
    the pending job's future instead of starting another. When disabled the
    job runs synchronously on the caller's thread and a completed future is
    returned, so callers handle both paths the same way.
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._executor: Optional[ThreadPoolExecutor] = None
        self._pending: Optional[Future] = None
        self._lock = threading.Lock()

        if enabled:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="cinematch-training")
            logger.info("Training worker initialized")
        else:
            logger.info("Training worker disabled, training runs on the caller's thread")

    @property
    def busy(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def submit(self, fn: Callable[..., Any], *args, **kwargs) -> Future:
        """
        Schedule a training job.

        Args:
            fn: Training function
            *args: Positional arguments for fn
            **kwargs: Keyword arguments for fn

        Returns:
            Future resolving to fn's result
        """
        with self._lock:
            if self.busy:
                logger.info("Training already in progress, coalescing request")
                return self._pending  # type: ignore[return-value]

            if self._executor is None:
                future: Future = Future()
                try:
                    future.set_result(fn(*args, **kwargs))
                except Exception as e:
                    future.set_exception(e)
                return future

            self._pending = self._executor.submit(fn, *args, **kwargs)
            return self._pending

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None
