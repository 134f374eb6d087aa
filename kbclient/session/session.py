"""
Knowledge base interaction session.

Owns the registry, selection, transcript, upload, query and deletion
components for the lifetime of one view, together with the lock they share.
"""

import threading
from typing import FrozenSet, Optional

from ..api import DEFAULT_TIMEOUT, KnowledgeBaseAPI
from ..knowledge_base import KnowledgeBaseRegistry, SelectionSet
from ..worker import Future, RequestWorker
from .deletion import DeletionWorkflow
from .query import QuerySession, Transcript
from .upload import UploadSession


class KnowledgeBaseSession:
    """
    One client session against the knowledge base service.

    All state mutations take the session lock, so a reader never sees, for
    example, a selection that still holds a deleted id.
    """

    def __init__(self,
                 api: Optional[KnowledgeBaseAPI] = None,
                 channel=None,
                 max_upload_bytes: Optional[int] = None):
        """
        Initialize the session.

        Args:
            api: API client (None = one configured from the environment)
            channel: Request channel to use instead of a RequestWorker
            max_upload_bytes: Client-side upload limit (None = from environment)
        """
        self._api = api
        self._worker: Optional[RequestWorker] = None
        if channel is None:
            self._api = api or KnowledgeBaseAPI()
            self._worker = RequestWorker(self._api)
            channel = self._worker
        self._channel = channel
        self._lock = threading.RLock()

        self.registry = KnowledgeBaseRegistry(channel, self._lock)
        self.transcript = Transcript(self._lock)
        self.selection = SelectionSet(self.registry, self._lock, on_change=self.transcript.clear)
        self.query = QuerySession(channel, self.selection, self.transcript, self._lock)
        self.upload = UploadSession(channel, self.registry, self._lock, max_bytes=max_upload_bytes)
        self.deletion = DeletionWorkflow(self.registry, self._lock)

        self.registry.add_removal_listener(self._on_removed)

    def _on_removed(self, removed: FrozenSet[int]) -> None:
        self.selection.prune(self.registry.ids())

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def timeout(self) -> float:
        """Request ceiling callers should use when waiting on futures."""
        return self._api.timeout if self._api is not None else DEFAULT_TIMEOUT

    def start(self) -> Future:
        """
        Start the request worker and load the knowledge base list.

        Returns:
            Future of the initial refresh
        """
        if self._worker is not None and not self._worker.is_alive():
            self._worker.start()
        return self.registry.refresh()

    def shutdown(self, wait: bool = True, timeout: Optional[float] = 30) -> None:
        """Stop the request worker, if this session owns one."""
        if self._worker is not None:
            self._worker.shutdown(wait=wait, timeout=timeout)

    def __enter__(self) -> 'KnowledgeBaseSession':
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown()

    def snapshot(self) -> dict:
        """
        Get a consistent view of the whole session.

        Returns:
            Dict with registry ids, selection, transcript and component states
        """
        with self._lock:
            transcript = self.transcript.snapshot()
            pending = self.deletion.pending
            return {
                'registry': [entry.id for entry in self.registry.entries],
                'selection': sorted(self.selection.ids),
                'transcript': list(transcript.turns),
                'transcript_scope': sorted(transcript.scope) if transcript.scope is not None else None,
                'query_state': self.query.state.value,
                'upload_state': self.upload.state.value,
                'pending_deletion': pending.kb_id if pending else None,
            }
