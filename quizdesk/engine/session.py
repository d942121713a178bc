"""Lifecycle of a single quiz attempt.

An ``AttemptSession`` walks one student through one quiz:

    INITIALIZING -> IN_PROGRESS -> FINALIZING -> COMPLETED
                         |
                         +-> ABANDONED

Only answers the student explicitly submitted are scored. An answer that was
selected for a question but never submitted (a draft) is dropped when the
attempt finalizes, including when the countdown runs out.
"""
import asyncio
import logging
import random
import time
from enum import Enum
from typing import Dict, List, Optional, Set

from quizdesk.engine.scoring import ScoreSheet, grade_for, is_correct, max_score_for, score_attempt
from quizdesk.errors import SetupError, ValidationError, PersistenceError
from quizdesk.models.answer import Answer, UNANSWERED, is_blank
from quizdesk.models.attempt import Attempt, AttemptStatus, AttemptSummary, QuestionFeedback, StudentResponse
from quizdesk.models.quiz import FeedbackTiming, Question, Quiz
from quizdesk.models.views import (
    AttemptResult, AttemptView, OptionView, PaletteEntry, QuestionReview, QuestionView,
)
from quizdesk.store import AttemptStore
from quizdesk.utils.time_utils import format_duration, now

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    INITIALIZING = "initializing"
    IN_PROGRESS = "in_progress"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class FinishReason(str, Enum):
    SUBMITTED = "submitted"
    TIMEOUT = "timeout"
    ABANDONED = "abandoned"


class AttemptSession:
    """Owns the answers, flags and countdown of one attempt until it is finalized."""

    def __init__(self, quiz: Quiz, questions: List[Question], student_id: str,
                 store: AttemptStore, rng: Optional[random.Random] = None):
        if not questions:
            raise SetupError(f"Quiz {quiz.id} has no questions to attempt")

        self.quiz = quiz
        self.student_id = student_id
        self.store = store
        self.state = SessionState.INITIALIZING
        self.attempt: Optional[Attempt] = None
        self.finish_reason: Optional[FinishReason] = None
        self.last_error: Optional[PersistenceError] = None
        self.created_at = time.time()

        # authoring order, used for scoring and reporting
        self._questions = list(questions)
        self._by_id: Dict[str, Question] = {q.id: q for q in self._questions}
        self._rng = rng or random.Random()

        # display order and per-question option order
        self._order: List[str] = [q.id for q in self._questions]
        self._option_order: Dict[str, List[str]] = {}
        self._current_index = 0

        self._drafts: Dict[str, Answer] = {}
        self._submissions: Dict[str, Answer] = {}
        self._feedback: Dict[str, QuestionFeedback] = {}
        self._flagged: Set[str] = set()
        self._locked: Set[str] = set()
        self._time_spent: Dict[str, int] = {}

        self.max_score = max_score_for(self._questions)
        self.time_remaining = quiz.duration_minutes * 60
        self._timer = None

        self._sheet: Optional[ScoreSheet] = None
        self._completed_at = None
        self._responses_written: Set[str] = set()
        self._summary_written = False
        self._stats_recorded = False
        self._save_lock: Optional[asyncio.Lock] = None

    @classmethod
    def begin(cls, store: AttemptStore, quiz_id: str, student_id: str,
              rng: Optional[random.Random] = None) -> "AttemptSession":
        """Load a quiz and its questions from the store and start an attempt on it"""
        quiz = store.load_quiz(quiz_id)
        if quiz is None or not quiz.is_active:
            raise SetupError(f"Quiz {quiz_id} not found or not active")

        questions = store.load_questions(quiz_id)
        session = cls(quiz, questions, student_id, store, rng=rng)
        session.start()
        return session

    # Lifecycle

    def start(self) -> Attempt:
        if self.state != SessionState.INITIALIZING:
            raise ValidationError(f"Attempt already started (state={self.state.value})")

        previous = self.store.count_attempts(self.quiz.id, self.student_id)
        if self.quiz.max_attempts is not None and previous >= self.quiz.max_attempts:
            raise SetupError(
                f"Attempt limit reached for quiz {self.quiz.id} ({previous}/{self.quiz.max_attempts})"
            )

        if self.quiz.total_marks and self.quiz.total_marks != self.max_score:
            logger.warning(
                f"Quiz {self.quiz.id} total_marks={self.quiz.total_marks} is stale; "
                f"scoring against {self.max_score} from its questions"
            )

        if self.quiz.shuffle_questions:
            self._rng.shuffle(self._order)
        if self.quiz.shuffle_options:
            for question in self._questions:
                option_ids = [option.id for option in question.options]
                self._rng.shuffle(option_ids)
                self._option_order[question.id] = option_ids

        self.attempt = self.store.create_attempt(
            self.quiz.id,
            self.student_id,
            max_score=self.max_score,
            total_questions=len(self._questions),
            attempt_number=previous + 1,
        )
        self.state = SessionState.IN_PROGRESS
        logger.info(
            f"Attempt {self.attempt.id} started by {self.student_id} on quiz {self.quiz.id} "
            f"({len(self._questions)} questions, {self.time_remaining}s)"
        )
        return self.attempt

    def attach_timer(self, timer) -> None:
        self._timer = timer

    def stop_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    @property
    def is_running(self) -> bool:
        return self.state == SessionState.IN_PROGRESS

    @property
    def is_finished(self) -> bool:
        return self.state in (SessionState.COMPLETED, SessionState.ABANDONED)

    def _require_running(self, operation: str) -> None:
        if self.state != SessionState.IN_PROGRESS:
            raise ValidationError(f"Cannot {operation}: attempt is {self.state.value}")

    # Question state

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def current_question(self) -> Question:
        return self._by_id[self._order[self._current_index]]

    @property
    def display_order(self) -> List[str]:
        return list(self._order)

    @property
    def answered_count(self) -> int:
        return len(self._submissions)

    @property
    def submissions(self) -> Dict[str, Answer]:
        return dict(self._submissions)

    @property
    def flagged(self) -> Set[str]:
        return set(self._flagged)

    @property
    def current_feedback(self) -> Optional[QuestionFeedback]:
        """Feedback for the current question, only while feedback is immediate"""
        if self.quiz.show_feedback != FeedbackTiming.IMMEDIATE:
            return None
        return self._feedback.get(self.current_question.id)

    def is_submitted(self, question_id: str) -> bool:
        return question_id in self._submissions

    # Operations

    def select_answer(self, answer: Answer) -> bool:
        """Hold ``answer`` as the current question's draft until it is submitted"""
        self._require_running("select an answer")
        question = self.current_question
        if question.id in self._submissions or question.id in self._locked:
            logger.debug(f"Ignoring selection for closed question {question.id}")
            return False

        if is_blank(answer):
            self._drafts.pop(question.id, None)
        else:
            self._drafts[question.id] = answer
        return True

    def submit_answer(self, answer: Optional[Answer] = None) -> bool:
        """Submit ``answer`` (or the current draft) for the current question.

        Returns False without changing anything when the question was already
        submitted, its own time limit ran out, or there is nothing to submit.
        """
        self._require_running("submit an answer")
        question = self.current_question

        if question.id in self._submissions:
            logger.debug(f"Question {question.id} already submitted; keeping first answer")
            return False
        if question.id in self._locked:
            logger.debug(f"Question {question.id} is past its time limit")
            return False

        if answer is None:
            answer = self._drafts.get(question.id, UNANSWERED)
        if is_blank(answer):
            return False

        self._submissions[question.id] = answer
        self._drafts.pop(question.id, None)

        correct = is_correct(question, answer)
        self._feedback[question.id] = QuestionFeedback(
            question_id=question.id,
            correct=correct,
            message="Great job!" if correct else "Not quite right",
            explanation=question.explanation or "",
        )
        logger.debug(f"Attempt {self.attempt.id}: question {question.id} submitted")
        return True

    def advance(self) -> bool:
        self._require_running("advance")
        if self._current_index >= len(self._order) - 1:
            return False
        self._current_index += 1
        return True

    def retreat(self) -> bool:
        self._require_running("go back")
        if not self.quiz.allow_navigation or self._current_index == 0:
            return False
        self._current_index -= 1
        return True

    def jump_to(self, index: int) -> bool:
        self._require_running("jump")
        if not self.quiz.allow_navigation or not 0 <= index < len(self._order):
            return False
        self._current_index = index
        return True

    def toggle_flag(self) -> bool:
        """Flag or unflag the current question for review; returns the new flag"""
        self._require_running("flag")
        question_id = self.current_question.id
        if question_id in self._flagged:
            self._flagged.discard(question_id)
            return False
        self._flagged.add(question_id)
        return True

    def tick(self, persist: bool = True) -> bool:
        """Advance the countdown by one second. Returns True if this tick ended the attempt.

        With ``persist=False`` the ending tick only scores the attempt and leaves
        it in FINALIZING; the caller then saves it with :meth:`save`.
        """
        if self.state != SessionState.IN_PROGRESS:
            return False

        self.time_remaining = max(0, self.time_remaining - 1)
        question = self.current_question
        spent = self._time_spent.get(question.id, 0) + 1
        self._time_spent[question.id] = spent

        limit = question.time_limit_seconds
        if limit and spent >= limit and question.id not in self._locked:
            self._locked.add(question.id)
            logger.debug(f"Question {question.id} hit its {limit}s limit")
            if self._current_index < len(self._order) - 1:
                self._current_index += 1

        if self.time_remaining == 0:
            logger.info(f"Attempt {self.attempt.id} ran out of time")
            self._begin_finalize(FinishReason.TIMEOUT)
            if persist:
                self._persist()
            return True
        return False

    def submit_quiz(self) -> AttemptResult:
        """Finalize the attempt. Calling again after a PersistenceError retries the writes."""
        self._prepare_submit()
        if self.state == SessionState.FINALIZING:
            self._persist()
        return self.result

    async def submit_quiz_async(self) -> AttemptResult:
        """Same as :meth:`submit_quiz`, with the store writes off the event loop"""
        self._prepare_submit()
        await self.save()
        return self.result

    def _prepare_submit(self) -> None:
        if self.state == SessionState.IN_PROGRESS:
            self._begin_finalize(FinishReason.SUBMITTED)
        elif self.state not in (SessionState.FINALIZING, SessionState.COMPLETED):
            raise ValidationError(f"Cannot submit: attempt is {self.state.value}")

    async def save(self) -> None:
        """Persist a FINALIZING attempt in a worker thread, one save at a time"""
        if self._save_lock is None:
            self._save_lock = asyncio.Lock()
        async with self._save_lock:
            if self.state != SessionState.FINALIZING:
                return
            await asyncio.to_thread(self._persist)

    async def expire(self) -> None:
        """End an attempt whose countdown is over but was never finalized, then save it"""
        if self.state == SessionState.IN_PROGRESS:
            logger.warning(f"Attempt {self.attempt.id} outlived its countdown; finalizing as timed out")
            self.time_remaining = 0
            self._begin_finalize(FinishReason.TIMEOUT)
        await self.save()

    @property
    def deadline(self) -> float:
        """Wall-clock time the countdown ends at if it was never paused"""
        return self.created_at + self.quiz.duration_minutes * 60

    def abandon(self, confirm: bool = False) -> bool:
        """Leave the attempt without scoring it. Nothing happens unless ``confirm`` is set."""
        if not self._begin_abandon(confirm):
            return False
        self._record_abandon()
        return True

    async def abandon_async(self, confirm: bool = False) -> bool:
        if not self._begin_abandon(confirm):
            return False
        await asyncio.to_thread(self._record_abandon)
        return True

    def _begin_abandon(self, confirm: bool) -> bool:
        self._require_running("abandon")
        if not confirm:
            return False

        self.state = SessionState.ABANDONED
        self.finish_reason = FinishReason.ABANDONED
        self.stop_timer()
        self._drafts.clear()
        logger.info(f"Attempt {self.attempt.id} abandoned by {self.student_id}")
        return True

    def _record_abandon(self) -> None:
        self.store.abandon_attempt(self.attempt.id)
        self.attempt = self.attempt.model_copy(update={"status": AttemptStatus.ABANDONED})

    # Finalization

    def _begin_finalize(self, reason: FinishReason) -> None:
        self.state = SessionState.FINALIZING
        self.finish_reason = reason
        self.stop_timer()

        if self._drafts:
            logger.info(f"Attempt {self.attempt.id}: discarding {len(self._drafts)} unsubmitted selections")
            self._drafts.clear()

        self._sheet = score_attempt(
            self.quiz,
            self._questions,
            self._submissions,
            flagged=self._flagged,
            time_spent=self._time_spent,
            max_score=self.max_score,
        )
        self._completed_at = now()

    def _summary(self) -> AttemptSummary:
        sheet = self._sheet
        return AttemptSummary(
            score=sheet.score,
            percentage=sheet.percentage,
            passed=sheet.passed,
            correct_count=sheet.correct_count,
            wrong_count=sheet.wrong_count,
            unattempted_count=sheet.unattempted_count,
            time_taken_seconds=self.quiz.duration_minutes * 60 - self.time_remaining,
            completed_at=self._completed_at,
        )

    def _persist(self) -> None:
        """Write responses, then the attempt row, then the profile counters"""
        summary = self._summary()
        try:
            for outcome in self._sheet.outcomes:
                if not outcome.submitted or outcome.question_id in self._responses_written:
                    continue
                self.store.insert_response(StudentResponse(
                    attempt_id=self.attempt.id,
                    question_id=outcome.question_id,
                    answer=outcome.answer,
                    is_correct=outcome.is_correct,
                    marks_awarded=outcome.marks_awarded,
                    is_flagged=outcome.flagged,
                    time_taken_seconds=outcome.time_spent_seconds,
                    answered_at=self._completed_at,
                ))
                self._responses_written.add(outcome.question_id)

            if not self._summary_written:
                self.store.finalize_attempt(self.attempt.id, summary)
                self._summary_written = True

            if not self._stats_recorded:
                self.store.increment_student_stats(self.student_id, quizzes_taken=1, total_score=self._sheet.score)
                self._stats_recorded = True
        except PersistenceError as e:
            self.last_error = e
            logger.error(f"Attempt {self.attempt.id} could not be finalized: {e}")
            raise

        self.last_error = None
        self.attempt = self.attempt.model_copy(update={
            "status": AttemptStatus.COMPLETED,
            "score": summary.score,
            "percentage": summary.percentage,
            "passed": summary.passed,
            "correct_answers": summary.correct_count,
            "wrong_answers": summary.wrong_count,
            "unattempted": summary.unattempted_count,
            "time_taken_seconds": summary.time_taken_seconds,
            "completed_at": summary.completed_at,
        })
        self.state = SessionState.COMPLETED
        logger.info(
            f"Attempt {self.attempt.id} completed ({self.finish_reason.value}): "
            f"{summary.score}/{self.max_score} = {summary.percentage:.1f}%"
        )

    # Results

    @property
    def score_sheet(self) -> Optional[ScoreSheet]:
        return self._sheet

    @property
    def result(self) -> Optional[AttemptResult]:
        if self.state != SessionState.COMPLETED:
            return None
        return AttemptResult(
            attempt=self.attempt,
            grade=grade_for(self.attempt.percentage),
            finish_reason=self.finish_reason.value,
            review=self.review(),
        )

    def review(self) -> List[QuestionReview]:
        """Per-question breakdown in authoring order; empty when the quiz forbids review"""
        if self.state != SessionState.COMPLETED:
            raise ValidationError("Review is only available once the attempt is completed")
        if not self.quiz.allow_review:
            return []

        reviews = []
        for outcome in self._sheet.outcomes:
            question = self._by_id[outcome.question_id]
            reviews.append(QuestionReview(
                question_id=question.id,
                question_text=question.question_text,
                answer=outcome.answer if outcome.submitted else None,
                correct_option_ids=sorted(question.correct_option_ids()),
                is_correct=outcome.is_correct,
                marks_awarded=outcome.marks_awarded,
                flagged=outcome.flagged,
                explanation=question.explanation or "",
            ))
        return reviews

    def snapshot(self) -> AttemptView:
        question_view = None
        palette = []
        if self.state in (SessionState.IN_PROGRESS, SessionState.INITIALIZING):
            question_view = self._question_view()
            for position, question_id in enumerate(self._order):
                if question_id in self._submissions:
                    status = "answered"
                elif question_id in self._flagged:
                    status = "flagged"
                else:
                    status = "unanswered"
                palette.append(PaletteEntry(
                    position=position,
                    question_id=question_id,
                    status=status,
                    current=position == self._current_index,
                ))

        return AttemptView(
            attempt_id=self.attempt.id if self.attempt else None,
            quiz_id=self.quiz.id,
            state=self.state.value,
            finish_reason=self.finish_reason.value if self.finish_reason else None,
            current_index=self._current_index,
            total_questions=len(self._order),
            answered_count=self.answered_count,
            time_remaining_seconds=self.time_remaining,
            time_remaining_display=format_duration(self.time_remaining),
            allow_navigation=self.quiz.allow_navigation,
            question=question_view,
            feedback=self.current_feedback if self.is_running else None,
            palette=palette,
            result=self.result,
            last_error=str(self.last_error) if self.last_error else None,
        )

    def _question_view(self) -> QuestionView:
        question = self.current_question
        options = {option.id: option for option in question.options}
        option_ids = self._option_order.get(question.id) or [option.id for option in question.options]
        return QuestionView(
            id=question.id,
            position=self._current_index,
            question_type=question.question_type,
            question_text=question.question_text,
            marks=question.marks,
            difficulty=question.difficulty,
            hint=question.hint,
            time_limit_seconds=question.time_limit_seconds,
            time_spent_seconds=self._time_spent.get(question.id, 0),
            options=[OptionView(id=oid, option_text=options[oid].option_text) for oid in option_ids],
            draft=self._drafts.get(question.id),
            submitted=question.id in self._submissions,
            locked=question.id in self._locked,
            flagged=question.id in self._flagged,
        )
