"""Data-access boundary between the attempt engine and Supabase."""
import logging
import time
from typing import Callable, List, Optional, Protocol, TypeVar

from quizdesk.config import settings
from quizdesk.database import Database, db
from quizdesk.errors import PersistenceError
from quizdesk.models.answer import answer_from_columns
from quizdesk.models.attempt import Attempt, AttemptStatus, AttemptSummary, StudentResponse
from quizdesk.models.quiz import Question, Quiz, QuestionType
from quizdesk.utils.time_utils import now

logger = logging.getLogger(__name__)

T = TypeVar("T")

FREE_TEXT_TYPES = {QuestionType.FILL_BLANK, QuestionType.SHORT_ANSWER, QuestionType.NUMERICAL}


class AttemptStore(Protocol):
    """What the engine needs from persistence. Every method raises PersistenceError on failure."""

    def load_quiz(self, quiz_id: str) -> Optional[Quiz]: ...

    def load_questions(self, quiz_id: str) -> List[Question]: ...

    def count_attempts(self, quiz_id: str, student_id: str) -> int: ...

    def create_attempt(self, quiz_id: str, student_id: str, max_score: float,
                       total_questions: int, attempt_number: int = 1) -> Attempt: ...

    def insert_response(self, response: StudentResponse) -> None: ...

    def finalize_attempt(self, attempt_id: str, summary: AttemptSummary) -> None: ...

    def abandon_attempt(self, attempt_id: str) -> None: ...

    def increment_student_stats(self, student_id: str, quizzes_taken: int, total_score: float) -> None: ...

    def load_attempt(self, attempt_id: str) -> Optional[Attempt]: ...

    def load_responses(self, attempt_id: str) -> List[StudentResponse]: ...


class SupabaseAttemptStore:
    """AttemptStore over the Supabase REST API.

    Calls block, retry backoff included; async callers run them through
    ``asyncio.to_thread``.
    """

    def __init__(self, database: Optional[Database] = None, retries: Optional[int] = None,
                 backoff_seconds: Optional[float] = None, sleep: Callable[[float], None] = time.sleep):
        self.db = database or db
        self.retries = settings.persistence_retries if retries is None else retries
        self.backoff_seconds = settings.persistence_backoff_seconds if backoff_seconds is None else backoff_seconds
        self._sleep = sleep

    def _call(self, operation: str, fn: Callable[[], T], retry: bool = False) -> T:
        """Run one store call, retrying idempotent writes with linear backoff"""
        attempts = self.retries + 1 if retry else 1
        for attempt in range(attempts):
            try:
                return fn()
            except Exception as e:
                logger.warning(f"{operation} failed (attempt {attempt + 1}/{attempts}): {e}")
                if attempt == attempts - 1:
                    logger.error(f"Giving up on {operation} after {attempts} attempts")
                    raise PersistenceError(operation, str(e)) from e
                self._sleep(self.backoff_seconds * (attempt + 1))

    def load_quiz(self, quiz_id: str) -> Optional[Quiz]:
        rows = self._call("load_quiz", lambda: self.db.select("quizzes", "*", {"id": quiz_id}))
        return Quiz(**rows[0]) if rows else None

    def load_questions(self, quiz_id: str) -> List[Question]:
        rows = self._call(
            "load_questions",
            lambda: self.db.select("questions", "*, question_options(*)", {"quiz_id": quiz_id}, order="question_order"),
        )
        questions = []
        for row in rows or []:
            row = dict(row)
            row["question_options"] = sorted(row.get("question_options") or [], key=lambda o: o.get("option_order", 0))
            questions.append(Question(**row))
        questions.sort(key=lambda q: q.question_order)
        return questions

    def count_attempts(self, quiz_id: str, student_id: str) -> int:
        rows = self._call(
            "count_attempts",
            lambda: self.db.select("quiz_attempts", "id", {"quiz_id": quiz_id, "user_id": student_id,
                                                           "status": AttemptStatus.COMPLETED.value}),
        )
        return len(rows or [])

    def create_attempt(self, quiz_id: str, student_id: str, max_score: float,
                       total_questions: int, attempt_number: int = 1) -> Attempt:
        data = {
            "quiz_id": quiz_id,
            "user_id": student_id,
            "attempt_number": attempt_number,
            "status": AttemptStatus.IN_PROGRESS.value,
            "max_score": max_score,
            "total_questions": total_questions,
            "started_at": now().isoformat(),
        }
        row = self._call("create_attempt", lambda: self.db.insert("quiz_attempts", data))
        if not row:
            raise PersistenceError("create_attempt", "no row returned")
        return Attempt(**row)

    def insert_response(self, response: StudentResponse) -> None:
        # keyed on (attempt_id, question_id) so a retried finalize rewrites instead of duplicating
        self._call(
            "insert_response",
            lambda: self.db.upsert("student_responses", response.to_row(), on_conflict="attempt_id,question_id"),
            retry=True,
        )

    def finalize_attempt(self, attempt_id: str, summary: AttemptSummary) -> None:
        self._call(
            "finalize_attempt",
            lambda: self.db.update("quiz_attempts", summary.to_row(), {"id": attempt_id}),
            retry=True,
        )

    def abandon_attempt(self, attempt_id: str) -> None:
        self._call(
            "abandon_attempt",
            lambda: self.db.update("quiz_attempts", {"status": AttemptStatus.ABANDONED.value}, {"id": attempt_id}),
            retry=True,
        )

    def increment_student_stats(self, student_id: str, quizzes_taken: int, total_score: float) -> None:
        rows = self._call(
            "load_profile",
            lambda: self.db.select("users_profile", "total_quizzes_taken,total_score", {"user_id": student_id}),
        )
        if not rows:
            logger.warning(f"No profile for student {student_id}; stats not updated")
            return

        profile = rows[0]
        data = {
            "total_quizzes_taken": (profile.get("total_quizzes_taken") or 0) + quizzes_taken,
            "total_score": (profile.get("total_score") or 0) + total_score,
            "updated_at": now().isoformat(),
        }
        self._call(
            "increment_student_stats",
            lambda: self.db.update("users_profile", data, {"user_id": student_id}),
        )

    def load_attempt(self, attempt_id: str) -> Optional[Attempt]:
        rows = self._call("load_attempt", lambda: self.db.select("quiz_attempts", "*", {"id": attempt_id}))
        return Attempt(**rows[0]) if rows else None

    def load_responses(self, attempt_id: str) -> List[StudentResponse]:
        rows = self._call(
            "load_responses",
            lambda: self.db.select("student_responses", "*, questions(question_type, question_order)",
                                   {"attempt_id": attempt_id}),
        )
        # authoring order, matching the in-session review
        rows = sorted(rows or [], key=lambda r: (r.get("questions") or {}).get("question_order") or 0)
        responses = []
        for row in rows:
            question_type = (row.get("questions") or {}).get("question_type")
            free_text = question_type in {t.value for t in FREE_TEXT_TYPES}
            responses.append(StudentResponse(
                attempt_id=row["attempt_id"],
                question_id=row["question_id"],
                answer=answer_from_columns(row, free_text=free_text),
                is_correct=row.get("is_correct", False),
                marks_awarded=row.get("marks_awarded", 0),
                is_flagged=row.get("is_flagged", False),
                time_taken_seconds=row.get("time_taken_seconds", 0),
                answered_at=row.get("answered_at"),
            ))
        return responses
