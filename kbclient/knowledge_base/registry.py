"""
Knowledge base registry.

Holds the list of knowledge bases known to the client. The list is only ever
replaced wholesale by a list fetch, or shrunk by a successful delete.
"""

import logging
import threading
from typing import Callable, FrozenSet, List, Optional, Set, Tuple

from ..errors import DeletionError, error_message
from ..models import KnowledgeBaseEntry
from ..worker import Future, chain

logger = logging.getLogger(__name__)

DELETE_FAILED_MESSAGE = '删除失败，请稍后重试'


class KnowledgeBaseRegistry:
    """
    Client-side view of the service's knowledge base list.

    Remote calls go through `channel` (a RequestWorker or anything with the
    same submit() method). State is guarded by `lock`, which the session
    shares with the other components.
    """

    def __init__(self, channel, lock: Optional[threading.RLock] = None):
        """
        Initialize the registry.

        Args:
            channel: Request channel returning Futures from submit()
            lock: Lock shared with the rest of the session
        """
        self._channel = channel
        self._lock = lock or threading.RLock()
        self._entries: Tuple[KnowledgeBaseEntry, ...] = ()
        self._refresh_seq = 0
        self._applied_seq = 0
        self._pending_refreshes = 0
        self._deleting: Set[int] = set()
        self._removal_listeners: List[Callable[[FrozenSet[int]], None]] = []
        self._last_error: Optional[Exception] = None

    def add_removal_listener(self, listener: Callable[[FrozenSet[int]], None]) -> None:
        """
        Register a callback for ids that leave the registry.

        Listeners run under the registry lock, in the same step that removes
        the ids.
        """
        self._removal_listeners.append(listener)

    @property
    def entries(self) -> Tuple[KnowledgeBaseEntry, ...]:
        with self._lock:
            return self._entries

    def ids(self) -> FrozenSet[int]:
        with self._lock:
            return frozenset(entry.id for entry in self._entries)

    def get(self, kb_id: int) -> Optional[KnowledgeBaseEntry]:
        """
        Get a knowledge base by ID.

        Args:
            kb_id: Knowledge base ID

        Returns:
            KnowledgeBaseEntry if present, None otherwise
        """
        with self._lock:
            for entry in self._entries:
                if entry.id == kb_id:
                    return entry
        return None

    def __contains__(self, kb_id: int) -> bool:
        return self.get(kb_id) is not None

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def is_loading(self) -> bool:
        with self._lock:
            return self._pending_refreshes > 0

    @property
    def last_error(self) -> Optional[Exception]:
        """Error of the most recent failed refresh, cleared by a successful one."""
        return self._last_error

    def is_deleting(self, kb_id: int) -> bool:
        with self._lock:
            return kb_id in self._deleting

    def refresh(self) -> Future:
        """
        Reload the full list from the service.

        On failure the current entries are kept and the returned future
        raises the TransportError or RemoteError.

        Returns:
            Future resolving to the entries now held
        """
        with self._lock:
            self._refresh_seq += 1
            seq = self._refresh_seq
            self._pending_refreshes += 1

        def _on_result(entries: List[KnowledgeBaseEntry]) -> Tuple[KnowledgeBaseEntry, ...]:
            with self._lock:
                self._pending_refreshes -= 1
                if seq < self._applied_seq:
                    logger.warning(f'[Registry] Dropped stale list response (#{seq}, already applied #{self._applied_seq})')
                    return self._entries
                self._apply(entries, seq)
                return self._entries

        def _on_error(exc: Exception):
            with self._lock:
                self._pending_refreshes -= 1
                self._last_error = exc
            print(f'[Registry] Failed to load knowledge bases: {exc}')
            raise exc

        return chain(self._channel.submit('list'), _on_result, _on_error)

    def _apply(self, entries: List[KnowledgeBaseEntry], seq: int) -> None:
        unique = []
        seen = set()
        for entry in entries:
            if entry.id in seen:
                logger.warning(f'[Registry] Duplicate knowledge base id {entry.id} in list response, keeping first')
                continue
            seen.add(entry.id)
            unique.append(entry)

        removed = frozenset(entry.id for entry in self._entries) - seen
        self._entries = tuple(unique)
        self._applied_seq = seq
        self._last_error = None
        print(f'[Registry] Loaded {len(self._entries)} knowledge base(s)')

        if removed:
            self._notify_removed(removed)

    def _notify_removed(self, removed: FrozenSet[int]) -> None:
        for listener in self._removal_listeners:
            listener(removed)

    def fetch(self, kb_id: int) -> Future:
        """
        Fetch a single knowledge base from the service.

        The registry itself is not modified.

        Args:
            kb_id: Knowledge base ID

        Returns:
            Future resolving to the KnowledgeBaseEntry
        """
        return self._channel.submit('get', kb_id)

    def remove(self, kb_id: int) -> Optional[Future]:
        """
        Delete a knowledge base on the service and drop it locally.

        Only one delete per id may be in flight; a repeated call while one is
        pending returns None and sends nothing.

        Args:
            kb_id: Knowledge base ID

        Returns:
            Future resolving to the id on success (raises DeletionError on
            failure), or None if a delete for this id is already pending
        """
        with self._lock:
            if kb_id in self._deleting:
                return None
            self._deleting.add(kb_id)

        def _on_result(_) -> int:
            with self._lock:
                self._deleting.discard(kb_id)
                before = len(self._entries)
                self._entries = tuple(entry for entry in self._entries if entry.id != kb_id)
                if len(self._entries) != before:
                    self._notify_removed(frozenset([kb_id]))
            print(f'[Registry] Deleted knowledge base: {kb_id}')
            return kb_id

        def _on_error(exc: Exception):
            with self._lock:
                self._deleting.discard(kb_id)
            raise DeletionError(error_message(exc, DELETE_FAILED_MESSAGE), cause=exc) from exc

        return chain(self._channel.submit('delete', kb_id), _on_result, _on_error)


def log_refresh_failure(future: Future) -> None:
    """Done-callback for refreshes nobody waits on."""
    exc = future.exception()
    if exc is not None:
        logger.warning(f'[Registry] Background refresh failed: {exc}')
