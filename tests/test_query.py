"""
Unit tests for the query session and transcript.
"""

import pytest

from kbclient.errors import RemoteError, TransportError
from kbclient.models import QueryAnswer, QueryTurn, Role
from kbclient.session import QueryState, Transcript


def answer(text, kb_id=5, kb_name='Doc A'):
    return QueryAnswer(answer=text, knowledge_base_id=kb_id, knowledge_base_name=kb_name)


@pytest.mark.unit
class TestTranscript:
    """Test cases for Transcript."""

    def test_scope_set_by_first_append(self):
        transcript = Transcript()
        assert transcript.scope is None

        transcript.append(QueryTurn.user("q1"), frozenset({5}))
        transcript.append(QueryTurn.user("q2"), frozenset({5, 7}))
        assert transcript.scope == {5}
        assert len(transcript) == 2

    def test_clear_starts_new_epoch(self):
        transcript = Transcript()
        transcript.append(QueryTurn.user("q"), frozenset({5}))
        epoch = transcript.epoch

        transcript.clear()
        assert transcript.is_empty is True
        assert transcript.scope is None
        assert transcript.epoch == epoch + 1

    def test_snapshot_and_messages(self):
        transcript = Transcript()
        transcript.append(QueryTurn.user("q"), frozenset({5}))
        snapshot = transcript.snapshot()
        assert snapshot.scope == {5}
        assert snapshot.turns[0].content == "q"
        assert transcript.to_messages() == [{'role': 'user', 'content': 'q'}]


@pytest.mark.unit
class TestQuerySession:
    """Test cases for QuerySession."""

    def test_ask_appends_question_immediately(self, loaded_session, channel):
        loaded_session.selection.toggle(5)
        future = loaded_session.query.ask("  What is X?  ")

        assert future is not None
        assert loaded_session.query.state is QueryState.PENDING
        turns = loaded_session.query.turns
        assert len(turns) == 1
        assert turns[0].role is Role.USER
        assert turns[0].content == "What is X?"
        assert channel.pending('query')[0].args == ([5], "What is X?")

    def test_answer_is_appended(self, loaded_session, channel):
        loaded_session.selection.toggle(5)
        future = loaded_session.query.ask("What is X?")
        channel.resolve('query', answer("X is Y"))

        turn = future.get(timeout=1.0)
        assert turn.role is Role.ASSISTANT
        assert turn.content == "X is Y"
        assert turn.knowledge_base_id == 5
        assert turn.knowledge_base_name == 'Doc A'
        assert loaded_session.query.state is QueryState.IDLE
        assert [t.role for t in loaded_session.query.turns] == [Role.USER, Role.ASSISTANT]

    def test_scope_covers_all_selected(self, loaded_session, channel):
        loaded_session.selection.toggle(7)
        loaded_session.selection.toggle(5)
        loaded_session.query.ask("Compare")
        assert channel.pending('query')[0].args[0] == [5, 7]
        assert loaded_session.transcript.scope == {5, 7}

    def test_failure_appears_inline(self, loaded_session, channel):
        loaded_session.selection.toggle(5)
        future = loaded_session.query.ask("What is X?")
        channel.fail('query', RemoteError("知识库内容为空", code=500))

        turn = future.get(timeout=1.0)
        assert turn.is_error is True
        assert turn.role is Role.ASSISTANT
        assert turn.content == "知识库内容为空"
        assert loaded_session.query.state is QueryState.IDLE
        assert len(loaded_session.query.turns) == 2

    def test_failure_fallback_message(self, loaded_session, channel):
        loaded_session.selection.toggle(5)
        future = loaded_session.query.ask("q")
        channel.fail('query', KeyError('answer'))
        assert future.get(timeout=1.0).content == "回答失败，请重试"

    def test_second_question_while_pending_is_rejected(self, loaded_session, channel):
        loaded_session.selection.toggle(5)
        loaded_session.query.ask("first")

        assert loaded_session.query.ask("second") is None
        assert channel.count('query') == 1
        assert len(loaded_session.query.turns) == 1
        assert loaded_session.query.can_ask("second") is False

    def test_empty_selection_is_rejected(self, loaded_session, channel):
        assert loaded_session.query.ask("What is X?") is None
        assert loaded_session.query.last_error == "请先选择一个知识库"
        assert channel.count('query') == 0
        assert loaded_session.query.turns == ()

    def test_blank_question_is_rejected(self, loaded_session, channel):
        loaded_session.selection.toggle(5)
        assert loaded_session.query.ask("   ") is None
        assert loaded_session.query.last_error == "请输入问题"
        assert channel.count('query') == 0
        assert loaded_session.query.can_ask("ok") is True

    def test_turn_order_is_preserved(self, loaded_session, channel):
        loaded_session.selection.toggle(5)
        loaded_session.query.ask("Q1")
        channel.resolve('query', answer("A1"))
        loaded_session.query.ask("Q2")
        channel.resolve('query', answer("A2"))

        assert [t.content for t in loaded_session.query.turns] == ["Q1", "A1", "Q2", "A2"]

    def test_response_after_selection_change_is_discarded(self, loaded_session, channel):
        """An answer for {5} never lands in the transcript for {5, 7}."""
        loaded_session.selection.toggle(5)
        future = loaded_session.query.ask("What is X?")

        loaded_session.selection.toggle(7)
        assert loaded_session.query.turns == ()

        channel.resolve('query', answer("X is Y"))

        assert future.get(timeout=1.0) is None
        assert loaded_session.query.turns == ()
        assert loaded_session.query.state is QueryState.IDLE

    def test_failure_after_selection_change_is_discarded(self, loaded_session, channel):
        loaded_session.selection.toggle(5)
        future = loaded_session.query.ask("q")
        loaded_session.selection.clear()
        channel.fail('query', TransportError("timeout"))

        assert future.get(timeout=1.0) is None
        assert loaded_session.query.turns == ()

    def test_new_question_after_discarded_response(self, loaded_session, channel):
        loaded_session.selection.toggle(5)
        loaded_session.query.ask("old")
        loaded_session.selection.toggle(7)
        channel.resolve('query', answer("stale"))

        future = loaded_session.query.ask("new")
        channel.resolve('query', answer("fresh"))

        assert future.get(timeout=1.0).content == "fresh"
        assert [t.content for t in loaded_session.query.turns] == ["new", "fresh"]
        assert loaded_session.transcript.scope == {5, 7}
