from pydantic import BaseModel, Field
from typing import List, Optional
from enum import Enum

class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

class FeedbackTiming(str, Enum):
    IMMEDIATE = "immediate"
    AFTER_SUBMISSION = "after_submission"
    AT_END = "at_end"

class QuestionType(str, Enum):
    SINGLE_SELECT = "single_select"
    MULTIPLE_SELECT = "multiple_select"
    TRUE_FALSE = "true_false"
    FILL_BLANK = "fill_blank"
    SHORT_ANSWER = "short_answer"
    NUMERICAL = "numerical"
    MATCHING = "matching"
    DRAG_DROP = "drag_drop"
    MATRIX = "matrix"
    HOTSPOT = "hotspot"

class QuestionOption(BaseModel):
    id: str
    question_id: Optional[str] = None
    option_text: str
    is_correct: bool = False
    option_order: int = 0
    explanation: Optional[str] = None

class Question(BaseModel):
    id: str
    quiz_id: str
    question_type: QuestionType
    question_text: str
    question_order: int = 0
    marks: int = Field(default=1, gt=0)
    negative_marking: float = Field(default=0, ge=0)
    time_limit_seconds: Optional[int] = None
    difficulty: Difficulty = Difficulty.MEDIUM
    allow_partial_marking: bool = False
    hint: Optional[str] = None
    explanation: Optional[str] = None
    options: List[QuestionOption] = Field(default_factory=list, alias="question_options")

    class Config:
        populate_by_name = True

    def correct_option_ids(self) -> frozenset:
        return frozenset(option.id for option in self.options if option.is_correct)

    def correct_option_texts(self) -> List[str]:
        return [option.option_text for option in self.options if option.is_correct]

class Quiz(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    difficulty: Difficulty = Difficulty.MEDIUM
    duration_minutes: int = Field(gt=0)
    shuffle_questions: bool = False
    shuffle_options: bool = False
    show_feedback: FeedbackTiming = FeedbackTiming.AFTER_SUBMISSION
    allow_review: bool = True
    allow_navigation: bool = True
    passing_percentage: float = 50
    max_attempts: Optional[int] = None
    total_questions: int = 0
    total_marks: int = 0
    is_active: bool = True
