import logging
import queue
import threading
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class TaskFailure:
    name: str
    error: BaseException


class TaskWorker:
    """
    Runs deferred work on a background thread.

    Used where a caller has to be answered before the work is done (the
    Telegram webhook). A failing task never propagates: it is logged and kept
    in ``failures``, and ``on_error`` is called when given.
    """

    def __init__(self, on_error: Optional[Callable[[TaskFailure], None]] = None, max_failures: int = 100):
        self.on_error = on_error
        self.failures = deque(maxlen=max_failures)
        self._queue = queue.Queue()
        self._thread = None
        self._stopping = object()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.running:
            return
        self._thread = threading.Thread(target=self._run, name="task-worker", daemon=True)
        self._thread.start()
        logger.info("Task worker started")

    def stop(self, timeout: float = 5.0):
        if not self.running:
            return
        self._queue.put(self._stopping)
        self._thread.join(timeout)
        self._thread = None
        logger.info("Task worker stopped")

    def submit(self, name: str, func: Callable, *args, **kwargs):
        if not self.running:
            self.start()
        self._queue.put((name, func, args, kwargs))

    def drain(self):
        """Blocks until every task submitted so far has finished."""
        self._queue.join()

    def _run(self):
        while True:
            task = self._queue.get()
            try:
                if task is self._stopping:
                    return
                name, func, args, kwargs = task
                try:
                    func(*args, **kwargs)
                except Exception as e:
                    logger.exception("Background task %s failed", name)
                    failure = TaskFailure(name, e)
                    self.failures.append(failure)
                    if self.on_error is not None:
                        try:
                            self.on_error(failure)
                        except Exception:
                            logger.exception("Error handler failed for task %s", name)
            finally:
                self._queue.task_done()
