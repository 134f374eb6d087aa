"""
Pytest configuration and shared fixtures.
"""

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import pytest

from kbclient.models import KnowledgeBaseEntry
from kbclient.session import KnowledgeBaseSession
from kbclient.worker import Future


@dataclass
class Call:
    """A request submitted to the manual channel."""
    method: str
    args: tuple
    kwargs: dict
    future: Future


class ManualChannel:
    """
    Request channel whose futures are resolved by the test.

    Lets a test hold a request "in flight" while it changes session state,
    then deliver the response.
    """

    def __init__(self):
        self.calls: List[Call] = []

    def submit(self, method: str, *args, **kwargs) -> Future:
        future = Future(f'{method}-{len(self.calls)}')
        self.calls.append(Call(method, args, kwargs, future))
        return future

    def pending(self, method: Optional[str] = None) -> List[Call]:
        return [c for c in self.calls
                if not c.future.is_done() and (method is None or c.method == method)]

    def count(self, method: str) -> int:
        return sum(1 for c in self.calls if c.method == method)

    def resolve(self, method: str, result=None) -> Call:
        """Resolve the oldest pending call of `method`."""
        call = self.pending(method)[0]
        call.future.set_result(result)
        return call

    def fail(self, method: str, exc: Exception) -> Call:
        """Fail the oldest pending call of `method`."""
        call = self.pending(method)[0]
        call.future.set_exception(exc)
        return call


def make_entry(kb_id: int, name: Optional[str] = None, **kwargs) -> KnowledgeBaseEntry:
    """Build a knowledge base entry for tests."""
    return KnowledgeBaseEntry(
        id=kb_id,
        name=name or f'Doc {kb_id}',
        original_filename=kwargs.pop('original_filename', f'doc{kb_id}.pdf'),
        file_size=kwargs.pop('file_size', 2048),
        content_type=kwargs.pop('content_type', 'application/pdf'),
        uploaded_at=kwargs.pop('uploaded_at', '2024-05-01T10:00:00'),
        **kwargs
    )


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def mock_env_vars():
    """Set up mock environment variables for testing."""
    env_vars = {
        'KB_API_URL': 'https://kb.test.com/',
        'KB_API_TIMEOUT': '30',
        'KB_UPLOAD_MAX_BYTES': '1048576',
    }

    original_env = os.environ.copy()
    os.environ.update(env_vars)

    yield env_vars

    # Restore original environment
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def channel():
    """Manual request channel."""
    return ManualChannel()


@pytest.fixture
def session(channel):
    """Session on a manual channel, not yet loaded."""
    return KnowledgeBaseSession(channel=channel, max_upload_bytes=1024 * 1024)


@pytest.fixture
def loaded_session(session, channel):
    """Session whose registry holds entries 5 and 7."""
    session.start()
    channel.resolve('list', [make_entry(5, 'Doc A'), make_entry(7, 'Doc B')])
    return session


@pytest.fixture
def sample_file(temp_dir):
    """A small PDF-named document."""
    path = temp_dir / 'doc.pdf'
    path.write_bytes(b'%PDF-1.4 sample content')
    return path
