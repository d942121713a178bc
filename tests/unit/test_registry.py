import logging
import pytest

from quizdesk.engine.session import FinishReason, SessionState
from quizdesk.errors import PersistenceError, SetupError
from quizdesk.models.answer import SingleChoice
from quizdesk.models.attempt import AttemptStatus


class TestSessionRegistry:
    """Live session bookkeeping"""

    def test_add_and_get(self, registry, make_quiz, three_questions, start_session):
        session = start_session(make_quiz(), three_questions)

        registry.add(session)

        assert registry.get(session.attempt.id) is session
        assert registry.find_live("quiz-1", session.student_id) is session

    def test_second_live_session_is_rejected(self, registry, make_quiz, three_questions, start_session):
        registry.add(start_session(make_quiz(), three_questions))

        with pytest.raises(SetupError):
            registry.add(start_session(make_quiz(), three_questions))

    def test_finished_session_is_not_live(self, registry, make_quiz, three_questions, start_session):
        first = start_session(make_quiz(), three_questions)
        registry.add(first)
        first.submit_quiz()

        second = registry.add(start_session(make_quiz(), three_questions))

        assert registry.find_live("quiz-1", first.student_id) is second

    def test_stats(self, registry, make_quiz, three_questions, start_session):
        session = start_session(make_quiz(), three_questions)
        registry.add(session)

        stats = registry.get_stats()

        assert stats == {"total_sessions": 1, "by_state": {"in_progress": 1}}

    def test_remove_unknown_is_harmless(self, registry):
        registry.remove("missing")
        assert registry.get_stats()["total_sessions"] == 0


class TestStaleCleanup:
    """Periodic eviction never drops an unsaved attempt"""

    @pytest.mark.asyncio
    async def test_finished_sessions_are_removed(self, registry, make_quiz, make_question, start_session):
        finished = start_session(make_quiz(id="quiz-a"), [make_question("q1")])
        finished.abandon(confirm=True)
        fresh = start_session(make_quiz(id="quiz-b"), [make_question("q1")])
        registry.add(finished)
        registry.add(fresh)

        removed = await registry.cleanup_stale_sessions(max_age_seconds=600)

        assert removed == 1
        assert list(registry.sessions) == [fresh.attempt.id]

    @pytest.mark.asyncio
    async def test_old_session_with_time_left_is_kept(self, registry, make_quiz, three_questions,
                                                      start_session, store):
        session = start_session(make_quiz(duration_minutes=300), three_questions)
        session.submit_answer(SingleChoice(option_id="q1-a"))
        session.created_at -= 4 * 3600 + 60
        registry.add(session)

        removed = await registry.cleanup_stale_sessions(max_age_seconds=4 * 3600)

        assert removed == 0
        assert registry.get(session.attempt.id) is session
        assert session.state == SessionState.IN_PROGRESS
        assert store.calls.count("finalize_attempt") == 0

    @pytest.mark.asyncio
    async def test_session_past_its_deadline_is_saved_then_removed(self, registry, make_quiz, three_questions,
                                                                   start_session, store):
        session = start_session(make_quiz(duration_minutes=10), three_questions)
        session.submit_answer(SingleChoice(option_id="q1-a"))
        session.created_at -= 3600
        registry.add(session)

        removed = await registry.cleanup_stale_sessions(max_age_seconds=600)

        assert removed == 1
        assert session.state == SessionState.COMPLETED
        assert session.finish_reason == FinishReason.TIMEOUT
        assert store.attempts[session.attempt.id].status == AttemptStatus.COMPLETED
        assert list(store.responses_for(session.attempt.id)) == ["q1"]

    @pytest.mark.asyncio
    async def test_stuck_finalizing_session_is_retried(self, registry, make_quiz, three_questions,
                                                       start_session, store):
        session = start_session(make_quiz(), three_questions)
        session.submit_answer(SingleChoice(option_id="q1-a"))
        store.fail("finalize_attempt")
        with pytest.raises(PersistenceError):
            session.submit_quiz()
        session.created_at -= 3600
        registry.add(session)

        removed = await registry.cleanup_stale_sessions(max_age_seconds=600)

        assert removed == 1
        assert session.state == SessionState.COMPLETED
        assert store.calls.count("insert_response") == 1
        assert store.attempts[session.attempt.id].status == AttemptStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_session_that_cannot_be_saved_is_kept(self, registry, make_quiz, three_questions,
                                                        start_session, store, caplog):
        session = start_session(make_quiz(), three_questions)
        store.fail("finalize_attempt", times=10)
        with pytest.raises(PersistenceError):
            session.submit_quiz()
        session.created_at -= 3600
        registry.add(session)

        with caplog.at_level(logging.ERROR, logger="quizdesk.engine.registry"):
            removed = await registry.cleanup_stale_sessions(max_age_seconds=600)

        assert removed == 0
        assert registry.get(session.attempt.id) is session
        assert session.state == SessionState.FINALIZING
        assert "could not be saved" in caplog.text
