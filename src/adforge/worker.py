import threading
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, Dict, List

from .config import Config
from .logger import AdForgeLogger


@dataclass
class TaskError:
    key: str
    error: Exception


class GenerationWorker:
    """Runs generation passes in background threads and collects their failures.

    Callers get a Future back immediately. Exceptions raised by a task are logged
    and kept in an error channel readable through ``errors()``; only the most
    recent ``error_history`` failures are kept.
    """

    def __init__(self, max_workers: int = None, logger: AdForgeLogger = None, error_history: int = None):
        self.logger = logger or AdForgeLogger()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or Config.WORKER_MAX_WORKERS, thread_name_prefix="adforge-gen"
        )
        self._lock = threading.Lock()
        # Only unfinished tasks; each one removes itself when it ends
        self._pending: Dict[str, Future] = {}
        self._errors = deque(maxlen=error_history or Config.WORKER_ERROR_HISTORY)

    def submit(self, key: str, fn: Callable, *args, **kwargs) -> Future:
        with self._lock:
            running = self._pending.get(key)
            if running is not None and not running.done():
                self.logger.warning(f"Task {key} is already running")
                return running
            future = self._executor.submit(self._run, key, fn, args, kwargs)
            self._pending[key] = future

        self.logger.debug(f"Task {key} submitted")
        return future

    def _run(self, key: str, fn: Callable, args: tuple, kwargs: dict):
        try:
            return fn(*args, **kwargs)
        except Exception as e:
            self.logger.exception(f"Task {key} failed: {e!r}")
            with self._lock:
                self._errors.append(TaskError(key, e))
            raise
        finally:
            with self._lock:
                self._pending.pop(key, None)

    def errors(self) -> List[TaskError]:
        with self._lock:
            return list(self._errors)

    def is_running(self, key: str) -> bool:
        with self._lock:
            future = self._pending.get(key)
        return future is not None and not future.done()

    def join(self, timeout: float = None) -> bool:
        """Wait for all submitted tasks; returns False if some are still running at timeout."""
        with self._lock:
            futures = list(self._pending.values())
        _, not_done = wait(futures, timeout=timeout)
        return not not_done

    def shutdown(self, wait_for_tasks: bool = True) -> None:
        self._executor.shutdown(wait=wait_for_tasks)
