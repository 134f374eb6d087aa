"""
Question answering over the selected knowledge bases.
"""

import logging
import threading
from enum import Enum
from typing import FrozenSet, List, Optional, Tuple

from ..errors import ValidationError, error_message
from ..knowledge_base.selection import SelectionSet
from ..models import QueryAnswer, QueryTurn, TranscriptSnapshot
from ..worker import Future, chain

logger = logging.getLogger(__name__)

QUERY_FAILED_MESSAGE = '回答失败，请重试'


class Transcript:
    """
    Ordered question/answer history for the current selection.

    Each clear() starts a new epoch. A request remembers the epoch it was
    issued in; its response is only appended if the epoch is unchanged.
    """

    def __init__(self, lock: Optional[threading.RLock] = None):
        self._lock = lock or threading.RLock()
        self._turns: List[QueryTurn] = []
        self._scope: Optional[FrozenSet[int]] = None
        self._epoch = 0

    @property
    def epoch(self) -> int:
        with self._lock:
            return self._epoch

    @property
    def turns(self) -> Tuple[QueryTurn, ...]:
        with self._lock:
            return tuple(self._turns)

    @property
    def scope(self) -> Optional[FrozenSet[int]]:
        """Selection at the time of the first turn, None while empty."""
        with self._lock:
            return self._scope

    def __len__(self) -> int:
        with self._lock:
            return len(self._turns)

    @property
    def is_empty(self) -> bool:
        return len(self) == 0

    def append(self, turn: QueryTurn, scope: FrozenSet[int]) -> None:
        with self._lock:
            if not self._turns:
                self._scope = frozenset(scope)
            self._turns.append(turn)

    def clear(self) -> None:
        with self._lock:
            self._turns = []
            self._scope = None
            self._epoch += 1

    def snapshot(self) -> TranscriptSnapshot:
        with self._lock:
            return TranscriptSnapshot(turns=tuple(self._turns), scope=self._scope, epoch=self._epoch)

    def to_messages(self) -> List[dict]:
        """Turns as chat message dicts."""
        return [turn.to_message() for turn in self.turns]


class QueryState(Enum):
    """Query cycle state."""
    IDLE = 'idle'
    PENDING = 'pending'


class QuerySession:
    """
    Asks questions against the current selection and records the transcript.

    One question at a time. The user's turn is appended as soon as the
    question is accepted; the answer (or the error message) follows when the
    response arrives, unless the transcript was cleared in between.
    """

    def __init__(self,
                 channel,
                 selection: SelectionSet,
                 transcript: Optional[Transcript] = None,
                 lock: Optional[threading.RLock] = None):
        """
        Initialize the query session.

        Args:
            channel: Request channel returning Futures from submit()
            selection: Selection providing the scope of each question
            transcript: Transcript to append to (a new one if omitted)
            lock: Lock shared with the rest of the session
        """
        self._channel = channel
        self._selection = selection
        self._lock = lock or threading.RLock()
        self._transcript = transcript or Transcript(self._lock)
        self._state = QueryState.IDLE
        self._last_error: Optional[str] = None

    @property
    def state(self) -> QueryState:
        with self._lock:
            return self._state

    @property
    def is_pending(self) -> bool:
        return self.state is QueryState.PENDING

    @property
    def transcript(self) -> Transcript:
        return self._transcript

    @property
    def turns(self) -> Tuple[QueryTurn, ...]:
        return self._transcript.turns

    @property
    def last_error(self) -> Optional[str]:
        """Message of the last rejected question, if any."""
        return self._last_error

    def validate(self, question: str) -> str:
        """
        Check that a question can be asked.

        Args:
            question: Raw question text

        Returns:
            The trimmed question

        Raises:
            ValidationError: If nothing is selected or the question is blank
        """
        if self._selection.is_empty:
            raise ValidationError('请先选择一个知识库')
        text = (question or '').strip()
        if not text:
            raise ValidationError('请输入问题')
        return text

    def can_ask(self, question: str) -> bool:
        if self.is_pending:
            return False
        try:
            self.validate(question)
        except ValidationError:
            return False
        return True

    def ask(self, question: str) -> Optional[Future]:
        """
        Ask a question against the current selection.

        Args:
            question: Question text

        Returns:
            Future resolving to the appended assistant turn (None if the
            response was discarded), or None if the question was not accepted
        """
        with self._lock:
            if self._state is QueryState.PENDING:
                return None
            try:
                text = self.validate(question)
            except ValidationError as e:
                self._last_error = e.message
                print(f'[QuerySession] Question rejected: {e.message}')
                return None

            scope = self._selection.ids
            self._transcript.append(QueryTurn.user(text), scope)
            epoch = self._transcript.epoch
            self._state = QueryState.PENDING
            self._last_error = None

        print(f'[QuerySession] Asking {sorted(scope)}: {text}')

        def _on_result(answer: QueryAnswer) -> Optional[QueryTurn]:
            return self._complete(epoch, QueryTurn.answer(answer))

        def _on_error(exc: Exception) -> Optional[QueryTurn]:
            return self._complete(epoch, QueryTurn.failure(error_message(exc, QUERY_FAILED_MESSAGE)))

        return chain(self._channel.submit('query', sorted(scope), text), _on_result, _on_error)

    def _complete(self, epoch: int, turn: QueryTurn) -> Optional[QueryTurn]:
        with self._lock:
            self._state = QueryState.IDLE
            if self._transcript.epoch != epoch:
                logger.warning('[QuerySession] Discarded response for a cleared transcript')
                return None
            self._transcript.append(turn, self._transcript.scope or frozenset())
            return turn
