"""
Unit tests for worker module.
"""

import threading
import time
import pytest
from unittest.mock import Mock

from kbclient.errors import TransportError
from kbclient.worker import Future, RequestWorker, Task, chain


@pytest.mark.unit
class TestFuture:
    """Test cases for Future class."""

    def test_future_creation(self):
        """Test Future object creation."""
        future = Future("test-task-id")
        assert future.task_id == "test-task-id"
        assert future.is_done() is False

    def test_set_result(self):
        """Test setting result."""
        future = Future("test-task-id")
        future.set_result("test result")

        assert future.is_done() is True
        assert future.get() == "test result"
        assert future.exception() is None

    def test_set_exception(self):
        """Test setting exception."""
        future = Future("test-task-id")
        future.set_exception(ValueError("test error"))

        assert future.is_done() is True
        assert isinstance(future.exception(), ValueError)
        with pytest.raises(ValueError, match="test error"):
            future.get()

    def test_get_timeout(self):
        """Test get with timeout."""
        future = Future("test-task-id")

        with pytest.raises(TimeoutError):
            future.get(timeout=0.1)

    def test_get_waits_for_result(self):
        """Test that get waits for result."""
        future = Future("test-task-id")

        def set_result_later():
            time.sleep(0.1)
            future.set_result("delayed result")

        thread = threading.Thread(target=set_result_later)
        thread.start()

        assert future.get(timeout=1.0) == "delayed result"
        thread.join()

    def test_callback_runs_on_completion(self):
        future = Future("id")
        seen = []
        future.add_done_callback(lambda f: seen.append(f.get()))
        assert seen == []

        future.set_result(42)
        assert seen == [42]

    def test_callback_on_done_future_runs_immediately(self):
        future = Future("id")
        future.set_result("done")
        seen = []
        future.add_done_callback(lambda f: seen.append(f.get()))
        assert seen == ["done"]

    def test_failing_callback_does_not_block_others(self):
        future = Future("id")
        seen = []

        def broken(_):
            raise RuntimeError("boom")

        future.add_done_callback(broken)
        future.add_done_callback(lambda f: seen.append("ran"))
        future.set_result(None)
        assert seen == ["ran"]


@pytest.mark.unit
class TestChain:
    """Test cases for chain()."""

    def test_result_passes_through_handler(self):
        source = Future("id")
        derived = chain(source, lambda value: value * 2, lambda exc: None)
        assert derived.is_done() is False

        source.set_result(21)
        assert derived.get(timeout=1.0) == 42

    def test_error_handler_can_recover(self):
        source = Future("id")
        derived = chain(source, lambda value: value, lambda exc: f"recovered: {exc}")

        source.set_exception(TransportError("offline"))
        assert derived.get(timeout=1.0) == "recovered: offline"

    def test_error_handler_can_reraise(self):
        source = Future("id")

        def reraise(exc):
            raise exc

        derived = chain(source, lambda value: value, reraise)
        source.set_exception(TransportError("offline"))
        with pytest.raises(TransportError):
            derived.get(timeout=1.0)

    def test_derived_resolves_after_handler(self):
        """The derived future is only done once the handler has finished."""
        source = Future("id")
        state = {}

        def handler(value):
            state['applied'] = value
            return value

        derived = chain(source, handler, lambda exc: None)
        derived.add_done_callback(lambda f: state.setdefault('seen_by_waiter', state.get('applied')))
        source.set_result("v")
        assert state['seen_by_waiter'] == "v"


@pytest.mark.unit
class TestTask:
    """Test cases for Task dataclass."""

    def test_task_creation(self):
        future = Future("test-id")
        task = Task(id="test-id", method="list", args=(), kwargs={}, future=future)
        assert task.method == "list"
        assert task.future is future


@pytest.mark.unit
class TestRequestWorker:
    """Test cases for RequestWorker class."""

    def test_registers_api_methods(self):
        worker = RequestWorker(Mock())
        assert set(worker._methods) == {'list', 'get', 'upload', 'delete', 'query'}
        assert worker.name == 'RequestWorker'
        assert worker.is_alive() is False

    def test_executes_calls(self):
        api = Mock()
        api.query_knowledge_base.return_value = "answer"
        worker = RequestWorker(api, poll_interval=0.01)
        worker.start()

        future = worker.submit('query', [5], "What is X?")
        assert future.get(timeout=2.0) == "answer"
        api.query_knowledge_base.assert_called_once_with([5], "What is X?")

        worker.shutdown(wait=True, timeout=2.0)
        assert worker.is_alive() is False

    def test_failure_is_delivered_without_retry(self):
        api = Mock()
        api.list_knowledge_bases.side_effect = TransportError("connection refused")
        worker = RequestWorker(api, poll_interval=0.01)
        worker.start()

        future = worker.submit('list')
        with pytest.raises(TransportError):
            future.get(timeout=2.0)
        assert api.list_knowledge_bases.call_count == 1

        worker.shutdown(wait=True, timeout=2.0)
        assert worker.get_status()['total_failures'] == 1

    def test_unknown_method(self):
        worker = RequestWorker(Mock(), poll_interval=0.01)
        worker.start()

        future = worker.submit('rename', 1)
        with pytest.raises(ValueError, match="Unknown method"):
            future.get(timeout=2.0)

        worker.shutdown(wait=True, timeout=2.0)

    def test_calls_run_in_submission_order(self):
        api = Mock()
        order = []
        api.delete_knowledge_base.side_effect = lambda kb_id: order.append(('delete', kb_id))
        api.list_knowledge_bases.side_effect = lambda: order.append(('list',)) or []
        worker = RequestWorker(api, poll_interval=0.01)
        worker.start()

        futures = [worker.submit('delete', 5), worker.submit('list'), worker.submit('delete', 7)]
        for future in futures:
            future.get(timeout=2.0)
        assert order == [('delete', 5), ('list',), ('delete', 7)]

        worker.shutdown(wait=True, timeout=2.0)

    def test_shutdown_drains_queue(self):
        api = Mock()
        api.get_knowledge_base.return_value = "entry"
        worker = RequestWorker(api, poll_interval=0.01)
        future = worker.submit('get', 1)
        worker.start()
        worker.shutdown(wait=True, timeout=2.0)
        assert future.is_done() is True
        assert future.get() == "entry"

    def test_get_status(self):
        worker = RequestWorker(Mock())
        status = worker.get_status()
        assert status['name'] == 'RequestWorker'
        assert status['queue_size'] == 0
        assert status['is_alive'] is False
