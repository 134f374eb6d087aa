"""
Request worker: the single channel through which remote calls are made.

Calls are queued and executed one at a time on a daemon thread. Callers get a
Future back immediately and either wait on it or register a callback.
"""

import logging
import threading
import uuid
from dataclasses import dataclass
from queue import Queue, Empty
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class Future:
    """Future object for getting task results."""

    def __init__(self, task_id: str):
        self._task_id = task_id
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._result: Any = None
        self._exception: Optional[Exception] = None
        self._callbacks: List[Callable[['Future'], None]] = []

    @property
    def task_id(self) -> str:
        return self._task_id

    def set_result(self, result: Any) -> None:
        """Set the result of the task."""
        with self._lock:
            self._result = result
            self._event.set()
        self._run_callbacks()

    def set_exception(self, exception: Exception) -> None:
        """Set an exception for the task."""
        with self._lock:
            self._exception = exception
            self._event.set()
        self._run_callbacks()

    def add_done_callback(self, fn: Callable[['Future'], None]) -> None:
        """
        Register a callback to run once the task is done.

        The callback receives this future. If the task is already done the
        callback runs immediately in the calling thread.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(fn)
                return
        fn(self)

    def _run_callbacks(self) -> None:
        with self._lock:
            callbacks, self._callbacks = self._callbacks, []
        for fn in callbacks:
            try:
                fn(self)
            except Exception:
                logger.exception(f'[Future] Callback for task {self._task_id[:8]} failed')

    def get(self, timeout: Optional[float] = None) -> Any:
        """
        Get the result of the task.

        Args:
            timeout: Maximum time to wait in seconds (None = wait forever)

        Returns:
            The result of the task

        Raises:
            TimeoutError: If timeout occurs
            Exception: The exception raised during task execution
        """
        if not self._event.wait(timeout=timeout):
            raise TimeoutError(f"Task {self._task_id} timed out")

        if self._exception is not None:
            raise self._exception

        return self._result

    def exception(self) -> Optional[Exception]:
        """Get the task's exception without raising it (None if none or not done)."""
        return self._exception

    def is_done(self) -> bool:
        """Check if the task is completed."""
        return self._event.is_set()


def chain(source: Future,
          on_result: Callable[[Any], Any],
          on_error: Callable[[Exception], Any]) -> Future:
    """
    Derive a future that resolves after a handler has processed the source.

    The handlers run in whichever thread completes the source future. The
    derived future gets the handler's return value, or the exception the
    handler raises.

    Args:
        source: Future of a remote call
        on_result: Called with the result on success
        on_error: Called with the exception on failure

    Returns:
        The derived Future
    """
    derived = Future(source.task_id)

    def _done(done: Future) -> None:
        try:
            exc = done.exception()
            value = on_result(done.get()) if exc is None else on_error(exc)
        except Exception as e:
            derived.set_exception(e)
            return
        derived.set_result(value)

    source.add_done_callback(_done)
    return derived


@dataclass
class Task:
    """A remote call waiting to be executed."""
    id: str
    method: str
    args: tuple
    kwargs: dict
    future: Future


class RequestWorker(threading.Thread):
    """
    Daemon thread executing remote calls against one API client.

    There is no retry: a failed call resolves its future with the exception
    and the caller decides what to do.
    """

    def __init__(self, api, name: str = 'RequestWorker', poll_interval: float = 0.1):
        """
        Initialize the worker.

        Args:
            api: KnowledgeBaseAPI (or compatible object) performing the calls
            name: Worker name for logging
            poll_interval: Time to wait for a task before checking for shutdown (seconds)
        """
        super().__init__(daemon=True, name=name)
        self._api = api
        self._queue: Queue[Task] = Queue()
        self._poll_interval = poll_interval
        self._shutdown_event = threading.Event()
        self._methods: Dict[str, Callable] = {}
        self._total_requests: int = 0
        self._total_failures: int = 0

        self._register_methods()

    def _register_methods(self) -> None:
        """Register the remote calls this worker can perform."""
        self._methods = {
            'list': self._api.list_knowledge_bases,
            'get': self._api.get_knowledge_base,
            'upload': self._api.upload_knowledge_base,
            'delete': self._api.delete_knowledge_base,
            'query': self._api.query_knowledge_base,
        }

    def submit(self, method: str, *args, **kwargs) -> Future:
        """
        Submit a remote call.

        Args:
            method: Name of the registered call ('list', 'get', 'upload', 'delete', 'query')
            *args: Positional arguments for the call
            **kwargs: Keyword arguments for the call

        Returns:
            A Future object for getting the result
        """
        task_id = str(uuid.uuid4())
        future = Future(task_id)
        self._queue.put(Task(id=task_id, method=method, args=args, kwargs=kwargs, future=future))
        return future

    def _execute_task(self, task: Task) -> None:
        self._total_requests += 1
        try:
            if task.method not in self._methods:
                raise ValueError(f"Unknown method: {task.method}")
            result = self._methods[task.method](*task.args, **task.kwargs)
        except Exception as e:
            self._total_failures += 1
            print(f"[{self.name}] Task {task.id[:8]} ({task.method}) failed: {e}")
            task.future.set_exception(e)
            return
        task.future.set_result(result)

    def run(self) -> None:
        """Main worker loop."""
        print(f"[{self.name}] Worker started")

        while not self._shutdown_event.is_set():
            try:
                task = self._queue.get(timeout=self._poll_interval)
            except Empty:
                continue
            self._execute_task(task)

        # Drain what was queued before shutdown so no future is left hanging
        while True:
            try:
                task = self._queue.get_nowait()
            except Empty:
                break
            self._execute_task(task)

        print(f"[{self.name}] Worker stopped")

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        """
        Shutdown the worker gracefully.

        Args:
            wait: If True, wait for the worker to finish
            timeout: Maximum time to wait in seconds
        """
        self._shutdown_event.set()

        if wait and self.is_alive():
            self.join(timeout=timeout)

        if self._total_requests > 0:
            print(f"[{self.name}] Request statistics: total_requests={self._total_requests}, total_failures={self._total_failures}")

    def get_status(self) -> dict:
        """Get the current status of the worker."""
        return {
            'name': self.name,
            'is_alive': self.is_alive(),
            'queue_size': self._queue.qsize(),
            'total_requests': self._total_requests,
            'total_failures': self._total_failures,
        }
