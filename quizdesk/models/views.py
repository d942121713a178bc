from pydantic import BaseModel
from typing import List, Optional

from quizdesk.models.answer import Answer
from quizdesk.models.attempt import Attempt, QuestionFeedback
from quizdesk.models.quiz import Difficulty, QuestionType

class OptionView(BaseModel):
    id: str
    option_text: str

class QuestionView(BaseModel):
    """The current question as shown to a student (no correctness flags)"""
    id: str
    position: int
    question_type: QuestionType
    question_text: str
    marks: int
    difficulty: Difficulty
    hint: Optional[str] = None
    time_limit_seconds: Optional[int] = None
    time_spent_seconds: int = 0
    options: List[OptionView] = []
    draft: Optional[Answer] = None
    submitted: bool = False
    locked: bool = False
    flagged: bool = False

class PaletteEntry(BaseModel):
    position: int
    question_id: str
    status: str  # answered, flagged or unanswered
    current: bool = False

class QuestionReview(BaseModel):
    question_id: str
    question_text: str
    answer: Optional[Answer] = None
    correct_option_ids: List[str] = []
    is_correct: bool = False
    marks_awarded: float = 0
    flagged: bool = False
    explanation: str = ""

class AttemptResult(BaseModel):
    attempt: Attempt
    grade: str
    finish_reason: str
    review: List[QuestionReview] = []

class AttemptView(BaseModel):
    attempt_id: Optional[str] = None
    quiz_id: str
    state: str
    finish_reason: Optional[str] = None
    current_index: int
    total_questions: int
    answered_count: int
    time_remaining_seconds: int
    time_remaining_display: str
    allow_navigation: bool
    question: Optional[QuestionView] = None
    feedback: Optional[QuestionFeedback] = None
    palette: List[PaletteEntry] = []
    result: Optional[AttemptResult] = None
    last_error: Optional[str] = None
