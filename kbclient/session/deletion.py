"""
Confirmation gate in front of knowledge base deletion.
"""

import threading
from enum import Enum
from typing import Optional

from ..errors import DeletionError
from ..knowledge_base.registry import KnowledgeBaseRegistry, log_refresh_failure
from ..models import PendingDeletion
from ..worker import Future, chain


class DeletionState(Enum):
    """Deletion workflow state."""
    NONE = 'none'
    CONFIRMING = 'confirming'


class DeletionWorkflow:
    """
    Request, confirm or cancel the deletion of one knowledge base.

    Selection and transcript cleanup happens inside Registry.remove(); this
    class only drives the confirmation and the follow-up refresh.
    """

    def __init__(self, registry: KnowledgeBaseRegistry, lock: Optional[threading.RLock] = None):
        self._registry = registry
        self._lock = lock or threading.RLock()
        self._pending: Optional[PendingDeletion] = None
        self._error: Optional[str] = None
        self._last_refresh: Optional[Future] = None

    @property
    def state(self) -> DeletionState:
        with self._lock:
            return DeletionState.CONFIRMING if self._pending else DeletionState.NONE

    @property
    def pending(self) -> Optional[PendingDeletion]:
        with self._lock:
            return self._pending

    @property
    def error(self) -> Optional[str]:
        with self._lock:
            return self._error

    @property
    def last_refresh(self) -> Optional[Future]:
        """Refresh issued after the most recent successful delete."""
        with self._lock:
            return self._last_refresh

    @property
    def is_deleting(self) -> bool:
        with self._lock:
            return self._pending is not None and self._registry.is_deleting(self._pending.kb_id)

    def request_delete(self, kb_id: int, name: str) -> Optional[PendingDeletion]:
        """
        Open a confirmation for deleting a knowledge base.

        Args:
            kb_id: Knowledge base ID
            name: Display name shown in the prompt

        Returns:
            The pending deletion, or None while a confirmed delete is still
            running
        """
        with self._lock:
            if self.is_deleting:
                return None
            self._pending = PendingDeletion(kb_id=kb_id, name=name)
            self._error = None
            return self._pending

    def confirm(self) -> Optional[Future]:
        """
        Carry out the pending deletion.

        Returns:
            Future resolving to True on success or False on failure (the
            message is in `error` and the confirmation stays open), or None
            if there is nothing to confirm or the delete is already running
        """
        with self._lock:
            pending = self._pending
            if pending is None:
                return None
            source = self._registry.remove(pending.kb_id)
            if source is None:
                return None
            self._error = None

        def _on_result(_) -> bool:
            with self._lock:
                if self._pending == pending:
                    self._pending = None
            refresh = self._registry.refresh()
            refresh.add_done_callback(log_refresh_failure)
            with self._lock:
                self._last_refresh = refresh
            return True

        def _on_error(exc: Exception) -> bool:
            message = exc.message if isinstance(exc, DeletionError) else str(exc)
            with self._lock:
                if self._pending == pending:
                    self._error = message
            print(f'[DeletionWorkflow] Failed to delete knowledge base {pending.kb_id}: {message}')
            return False

        return chain(source, _on_result, _on_error)

    def cancel(self) -> bool:
        """
        Close the confirmation without deleting anything.

        Returns:
            False while the confirmed delete is still running
        """
        with self._lock:
            if self.is_deleting:
                return False
            self._pending = None
            self._error = None
            return True
