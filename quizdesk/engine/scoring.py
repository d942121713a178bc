"""Correctness, marks and aggregate scoring for a quiz attempt.

Everything here is a pure function of the quiz, its questions and the
submitted answers.
"""
from pydantic import BaseModel
from typing import Dict, Iterable, List, Optional, Set

from quizdesk.models.quiz import Question, QuestionType, Quiz
from quizdesk.models.answer import Answer, SingleChoice, MultiChoice, FreeText, UNANSWERED

CHOICE_TYPES = {QuestionType.SINGLE_SELECT, QuestionType.TRUE_FALSE}
TEXT_TYPES = {QuestionType.FILL_BLANK, QuestionType.SHORT_ANSWER}

GRADE_BANDS = [
    (90, "A+"),
    (80, "A"),
    (70, "B"),
    (60, "C"),
    (50, "D"),
]


class QuestionOutcome(BaseModel):
    question_id: str
    answer: Answer = UNANSWERED
    submitted: bool = False
    is_correct: bool = False
    marks_awarded: float = 0
    flagged: bool = False
    time_spent_seconds: int = 0

    @property
    def contribution(self) -> float:
        return max(0, self.marks_awarded)


class ScoreSheet(BaseModel):
    outcomes: List[QuestionOutcome]
    score: float
    max_score: float
    percentage: float
    passed: bool
    total_questions: int
    correct_count: int
    wrong_count: int
    unattempted_count: int


def _normalize_text(text: str) -> str:
    return " ".join(text.split()).casefold()


def _as_number(text: str) -> Optional[float]:
    try:
        return float(text.strip())
    except ValueError:
        return None


def is_correct(question: Question, answer: Answer) -> bool:
    """Decide whether ``answer`` is right for ``question``.

    Defined for every question type and answer variant; pairings that cannot
    be graded automatically are incorrect.
    """
    if question.question_type in CHOICE_TYPES:
        if not isinstance(answer, SingleChoice):
            return False
        return answer.option_id in question.correct_option_ids()

    if question.question_type == QuestionType.MULTIPLE_SELECT:
        if not isinstance(answer, MultiChoice):
            return False
        # all or nothing; allow_partial_marking is not honoured yet
        return set(answer.option_ids) == set(question.correct_option_ids())

    if question.question_type in TEXT_TYPES:
        if not isinstance(answer, FreeText) or not answer.text.strip():
            return False
        given = _normalize_text(answer.text)
        return any(given == _normalize_text(text) for text in question.correct_option_texts())

    if question.question_type == QuestionType.NUMERICAL:
        if not isinstance(answer, FreeText):
            return False
        given = _as_number(answer.text)
        if given is None:
            return False
        return any(given == _as_number(text) for text in question.correct_option_texts())

    return False


def marks_for(question: Question, answer: Answer, submitted: bool) -> float:
    """Marks awarded for one question, negative when a wrong answer is penalised"""
    if not submitted:
        return 0
    if is_correct(question, answer):
        return question.marks
    return -question.negative_marking


def max_score_for(questions: Iterable[Question]) -> int:
    return sum(question.marks for question in questions)


def percentage_of(score: float, max_score: float) -> float:
    if max_score <= 0:
        return 0.0
    return 100 * score / max_score


def grade_for(percentage: float) -> str:
    for floor, grade in GRADE_BANDS:
        if percentage >= floor:
            return grade
    return "F"


def score_attempt(
    quiz: Quiz,
    questions: List[Question],
    submissions: Dict[str, Answer],
    flagged: Optional[Set[str]] = None,
    time_spent: Optional[Dict[str, int]] = None,
    max_score: Optional[float] = None,
) -> ScoreSheet:
    """Score every question in ``questions`` order.

    Only questions present in ``submissions`` count as answered. Each question
    contributes ``max(0, marks_awarded)`` so a penalty can zero a question but
    never eat into the marks earned elsewhere.
    """
    flagged = flagged or set()
    time_spent = time_spent or {}
    if max_score is None:
        max_score = max_score_for(questions)

    outcomes = []
    score = 0.0
    correct_count = 0
    wrong_count = 0

    for question in questions:
        submitted = question.id in submissions
        answer = submissions.get(question.id, UNANSWERED)
        correct = submitted and is_correct(question, answer)
        marks_awarded = marks_for(question, answer, submitted)

        if correct:
            correct_count += 1
        elif submitted:
            wrong_count += 1

        outcome = QuestionOutcome(
            question_id=question.id,
            answer=answer,
            submitted=submitted,
            is_correct=correct,
            marks_awarded=marks_awarded,
            flagged=question.id in flagged,
            time_spent_seconds=time_spent.get(question.id, 0),
        )
        score += outcome.contribution
        outcomes.append(outcome)

    percentage = percentage_of(score, max_score)

    return ScoreSheet(
        outcomes=outcomes,
        score=score,
        max_score=max_score,
        percentage=percentage,
        passed=percentage >= quiz.passing_percentage,
        total_questions=len(questions),
        correct_count=correct_count,
        wrong_count=wrong_count,
        unattempted_count=len(questions) - correct_count - wrong_count,
    )
