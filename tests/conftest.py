import asyncio
import pytest
import random
from datetime import datetime
from typing import Dict, List, Optional
from httpx import AsyncClient, ASGITransport

from quizdesk.engine.registry import SessionRegistry
from quizdesk.engine.session import AttemptSession
from quizdesk.errors import PersistenceError
from quizdesk.main import app
from quizdesk.models.attempt import Attempt, AttemptStatus, AttemptSummary, StudentResponse
from quizdesk.models.quiz import Question, Quiz
from quizdesk.routes.attempts import get_attempt_store, get_session_registry
from quizdesk.utils.auth_utils import get_current_user

STUDENT_ID = "student-1"


class FakeAttemptStore:
    """In-memory AttemptStore that records call order and can simulate outages"""

    def __init__(self):
        self.quizzes: Dict[str, Quiz] = {}
        self.questions: Dict[str, List[Question]] = {}
        self.attempts: Dict[str, Attempt] = {}
        self.responses: Dict[tuple, StudentResponse] = {}
        self.profiles: Dict[str, dict] = {STUDENT_ID: {"total_quizzes_taken": 0, "total_score": 0}}
        self.calls: List[str] = []
        self.failures: Dict[str, int] = {}

    def add_quiz(self, quiz: Quiz, questions: List[Question]) -> None:
        self.quizzes[quiz.id] = quiz
        self.questions[quiz.id] = list(questions)

    def fail(self, operation: str, times: int = 1) -> None:
        self.failures[operation] = times

    def _record(self, operation: str) -> None:
        self.calls.append(operation)
        if self.failures.get(operation, 0) > 0:
            self.failures[operation] -= 1
            raise PersistenceError(operation, "simulated outage")

    def load_quiz(self, quiz_id: str) -> Optional[Quiz]:
        self._record("load_quiz")
        return self.quizzes.get(quiz_id)

    def load_questions(self, quiz_id: str) -> List[Question]:
        self._record("load_questions")
        return list(self.questions.get(quiz_id, []))

    def count_attempts(self, quiz_id: str, student_id: str) -> int:
        self._record("count_attempts")
        return sum(
            1 for attempt in self.attempts.values()
            if attempt.quiz_id == quiz_id and attempt.user_id == student_id
            and attempt.status == AttemptStatus.COMPLETED
        )

    def create_attempt(self, quiz_id, student_id, max_score, total_questions, attempt_number=1) -> Attempt:
        self._record("create_attempt")
        attempt = Attempt(
            id=f"attempt-{len(self.attempts) + 1}",
            quiz_id=quiz_id,
            user_id=student_id,
            attempt_number=attempt_number,
            max_score=max_score,
            total_questions=total_questions,
            started_at=datetime.utcnow(),
        )
        self.attempts[attempt.id] = attempt
        return attempt

    def insert_response(self, response: StudentResponse) -> None:
        self._record("insert_response")
        self.responses[(response.attempt_id, response.question_id)] = response

    def finalize_attempt(self, attempt_id: str, summary: AttemptSummary) -> None:
        self._record("finalize_attempt")
        attempt = self.attempts[attempt_id]
        self.attempts[attempt_id] = attempt.model_copy(update={
            "status": summary.status,
            "score": summary.score,
            "percentage": summary.percentage,
            "passed": summary.passed,
            "correct_answers": summary.correct_count,
            "wrong_answers": summary.wrong_count,
            "unattempted": summary.unattempted_count,
            "time_taken_seconds": summary.time_taken_seconds,
            "completed_at": summary.completed_at,
        })

    def abandon_attempt(self, attempt_id: str) -> None:
        self._record("abandon_attempt")
        attempt = self.attempts[attempt_id]
        self.attempts[attempt_id] = attempt.model_copy(update={"status": AttemptStatus.ABANDONED})

    def increment_student_stats(self, student_id: str, quizzes_taken: int, total_score: float) -> None:
        self._record("increment_student_stats")
        profile = self.profiles.setdefault(student_id, {"total_quizzes_taken": 0, "total_score": 0})
        profile["total_quizzes_taken"] += quizzes_taken
        profile["total_score"] += total_score

    def load_attempt(self, attempt_id: str) -> Optional[Attempt]:
        self._record("load_attempt")
        return self.attempts.get(attempt_id)

    def load_responses(self, attempt_id: str) -> List[StudentResponse]:
        self._record("load_responses")
        return [r for (aid, _), r in self.responses.items() if aid == attempt_id]

    def responses_for(self, attempt_id: str) -> Dict[str, StudentResponse]:
        return {qid: r for (aid, qid), r in self.responses.items() if aid == attempt_id}


@pytest.fixture
def store():
    return FakeAttemptStore()


@pytest.fixture
def make_quiz():
    """Build a quiz; keyword arguments override the defaults"""
    def _make_quiz(**overrides):
        data = {
            "id": "quiz-1",
            "title": "General Knowledge",
            "duration_minutes": 1,
            "passing_percentage": 50,
            "allow_navigation": True,
            "allow_review": True,
        }
        data.update(overrides)
        return Quiz(**data)
    return _make_quiz


@pytest.fixture
def make_question():
    """Build a question whose option ids are '<question id>-<letter>'"""
    def _make_question(question_id, question_type="single_select", marks=1, correct=("a",),
                       letters=("a", "b", "c", "d"), texts=None, order=0, **extra):
        texts = texts or {}
        options = [
            {
                "id": f"{question_id}-{letter}",
                "option_text": texts.get(letter, f"Option {letter.upper()}"),
                "is_correct": letter in correct,
                "option_order": position,
            }
            for position, letter in enumerate(letters)
        ]
        return Question(
            id=question_id,
            quiz_id="quiz-1",
            question_type=question_type,
            question_text=f"Question {question_id}",
            question_order=order,
            marks=marks,
            question_options=options,
            **extra,
        )
    return _make_question


@pytest.fixture
def three_questions(make_question):
    """Marks [1, 1, 2], option a correct everywhere"""
    return [
        make_question("q1", marks=1, order=1),
        make_question("q2", marks=1, order=2),
        make_question("q3", marks=2, order=3),
    ]


@pytest.fixture
def start_session(store):
    """Create and start an AttemptSession against the fake store"""
    def _start_session(quiz, questions, rng=None):
        session = AttemptSession(quiz, questions, STUDENT_ID, store, rng=rng or random.Random(7))
        session.start()
        return session
    return _start_session


@pytest.fixture
def registry():
    registry = SessionRegistry()
    yield registry
    registry.close_all()


@pytest.fixture
async def client(store, registry):
    """API client authenticated as STUDENT_ID, backed by the fake store"""
    current_user = {"id": STUDENT_ID, "email": "student@example.com", "metadata": {}}
    app.dependency_overrides[get_current_user] = lambda: current_user
    app.dependency_overrides[get_attempt_store] = lambda: store
    app.dependency_overrides[get_session_registry] = lambda: registry

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    # timers live on this test's loop
    registry.close_all()
    await asyncio.sleep(0)
    app.dependency_overrides.clear()


@pytest.fixture
def as_user():
    """Switch the authenticated user for subsequent requests"""
    def _as_user(user_id: str):
        app.dependency_overrides[get_current_user] = lambda: {"id": user_id, "email": f"{user_id}@example.com", "metadata": {}}
    return _as_user
