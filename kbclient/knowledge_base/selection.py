"""
Selection of knowledge bases used to scope questions.
"""

import threading
from typing import Callable, FrozenSet, Iterable, Optional, Set

from .registry import KnowledgeBaseRegistry


class SelectionSet:
    """
    Set of knowledge base ids chosen for question answering.

    Only ids present in the registry can be selected. Every change of the
    set calls `on_change`, which the session uses to clear the transcript.
    """

    def __init__(self,
                 registry: KnowledgeBaseRegistry,
                 lock: Optional[threading.RLock] = None,
                 on_change: Optional[Callable[[], None]] = None):
        self._registry = registry
        self._lock = lock or threading.RLock()
        self._on_change = on_change
        self._ids: Set[int] = set()

    @property
    def ids(self) -> FrozenSet[int]:
        with self._lock:
            return frozenset(self._ids)

    def __contains__(self, kb_id: int) -> bool:
        with self._lock:
            return kb_id in self._ids

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)

    @property
    def is_empty(self) -> bool:
        return len(self) == 0

    def _changed(self) -> None:
        if self._on_change:
            self._on_change()

    def toggle(self, kb_id: int) -> bool:
        """
        Select or deselect a knowledge base.

        Ids not in the registry are ignored.

        Args:
            kb_id: Knowledge base ID

        Returns:
            True if membership changed
        """
        with self._lock:
            if kb_id not in self._registry:
                return False
            if kb_id in self._ids:
                self._ids.remove(kb_id)
            else:
                self._ids.add(kb_id)
            self._changed()
            return True

    def clear(self) -> None:
        """Deselect everything. Always clears the transcript."""
        with self._lock:
            self._ids.clear()
            self._changed()

    def discard(self, kb_id: int) -> bool:
        """Remove an id if selected. Returns True if the set changed."""
        with self._lock:
            if kb_id not in self._ids:
                return False
            self._ids.remove(kb_id)
            self._changed()
            return True

    def prune(self, valid_ids: Iterable[int]) -> bool:
        """
        Drop selected ids that are no longer valid.

        Args:
            valid_ids: Ids currently present in the registry

        Returns:
            True if the set changed
        """
        with self._lock:
            stale = self._ids - set(valid_ids)
            if not stale:
                return False
            self._ids -= stale
            self._changed()
            return True
