from .quiz import Quiz, Question, QuestionOption, QuestionType, FeedbackTiming, Difficulty
from .answer import Answer, SingleChoice, MultiChoice, FreeText, Unanswered, UNANSWERED
from .attempt import Attempt, AttemptStatus, AttemptSummary, StudentResponse, QuestionFeedback

__all__ = [
    "Quiz", "Question", "QuestionOption", "QuestionType", "FeedbackTiming", "Difficulty",
    "Answer", "SingleChoice", "MultiChoice", "FreeText", "Unanswered", "UNANSWERED",
    "Attempt", "AttemptStatus", "AttemptSummary", "StudentResponse", "QuestionFeedback",
]
