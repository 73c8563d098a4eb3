import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional, Set

logger = logging.getLogger(__name__)


class TaskRunner:
    """Owns every queued, running or delayed fetch of one client.

    close() cancels timers and queued work; fetches already running finish
    on their own and rely on the cache guard to drop their writes.
    """

    def __init__(self, max_workers: int = 4):
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="ffclient-fetch")
        self._lock = threading.Lock()
        self._futures: Set[Future] = set()
        self._timers: Set[threading.Timer] = set()
        self._closed = False

    def submit(self, fn: Callable[..., Any], *args: Any) -> Optional[Future]:
        with self._lock:
            if self._closed:
                return None
            future = self._executor.submit(fn, *args)
            self._futures.add(future)
        future.add_done_callback(self._forget)
        return future

    def submit_later(self, delay: float, fn: Callable[..., Any], *args: Any) -> Optional[threading.Timer]:
        timer = None

        def fire():
            with self._lock:
                self._timers.discard(timer)
            self.submit(fn, *args)

        with self._lock:
            if self._closed:
                return None
            timer = threading.Timer(delay, fire)
            timer.daemon = True
            self._timers.add(timer)
            timer.start()
        return timer

    def pending(self) -> int:
        with self._lock:
            return len(self._futures) + len(self._timers)

    def _forget(self, future: Future):
        with self._lock:
            self._futures.discard(future)
        if not future.cancelled() and future.exception() is not None:
            logger.error("Fetch task failed", exc_info=future.exception())

    def close(self):
        with self._lock:
            if self._closed:
                return
            self._closed = True
            timers, self._timers = self._timers, set()
        for timer in timers:
            timer.cancel()
        self._executor.shutdown(wait=False, cancel_futures=True)
