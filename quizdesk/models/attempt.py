from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from enum import Enum

from quizdesk.models.answer import Answer, UNANSWERED, answer_to_columns

class AttemptStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"

class Attempt(BaseModel):
    """A quiz_attempts row"""
    id: str
    quiz_id: str
    user_id: str
    attempt_number: int = 1
    status: AttemptStatus = AttemptStatus.IN_PROGRESS
    score: float = 0
    max_score: float = 0
    percentage: float = 0
    passed: bool = False
    total_questions: int = 0
    correct_answers: int = 0
    wrong_answers: int = 0
    unattempted: int = 0
    time_taken_seconds: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

class StudentResponse(BaseModel):
    """A student_responses row: one scored submission"""
    attempt_id: str
    question_id: str
    answer: Answer = UNANSWERED
    is_correct: bool = False
    marks_awarded: float = 0
    is_flagged: bool = False
    time_taken_seconds: int = 0
    answered_at: Optional[datetime] = None

    def to_row(self) -> dict:
        row = {
            "attempt_id": self.attempt_id,
            "question_id": self.question_id,
            "is_correct": self.is_correct,
            "marks_awarded": self.marks_awarded,
            "is_flagged": self.is_flagged,
            "time_taken_seconds": self.time_taken_seconds,
        }
        row.update(answer_to_columns(self.answer))
        if self.answered_at:
            row["answered_at"] = self.answered_at.isoformat()
        return row

class AttemptSummary(BaseModel):
    """Final aggregates written onto the attempt row"""
    status: AttemptStatus = AttemptStatus.COMPLETED
    score: float
    percentage: float
    passed: bool
    correct_count: int
    wrong_count: int
    unattempted_count: int
    time_taken_seconds: int
    completed_at: datetime

    def to_row(self) -> dict:
        return {
            "status": self.status.value,
            "score": self.score,
            "percentage": self.percentage,
            "passed": self.passed,
            "correct_answers": self.correct_count,
            "wrong_answers": self.wrong_count,
            "unattempted": self.unattempted_count,
            "time_taken_seconds": self.time_taken_seconds,
            "completed_at": self.completed_at.isoformat(),
        }

class QuestionFeedback(BaseModel):
    question_id: str
    correct: bool
    message: str
    explanation: str = ""
