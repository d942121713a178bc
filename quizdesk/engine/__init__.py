from .scoring import ScoreSheet, QuestionOutcome, is_correct, marks_for, score_attempt, grade_for
from .session import AttemptSession, SessionState, FinishReason
from .timer import CountdownTimer
from .registry import SessionRegistry, session_registry

__all__ = [
    "ScoreSheet", "QuestionOutcome", "is_correct", "marks_for", "score_attempt", "grade_for",
    "AttemptSession", "SessionState", "FinishReason",
    "CountdownTimer", "SessionRegistry", "session_registry",
]
