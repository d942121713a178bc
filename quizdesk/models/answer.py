"""Answer payloads a student can give for a question.

An answer is one of four variants, told apart by its ``kind`` field so that
it round-trips through JSON request bodies unchanged.
"""
from pydantic import BaseModel, Field
from typing import Annotated, FrozenSet, List, Literal, Optional, Union

class SingleChoice(BaseModel):
    kind: Literal["single_choice"] = "single_choice"
    option_id: str

    class Config:
        frozen = True

class MultiChoice(BaseModel):
    kind: Literal["multi_choice"] = "multi_choice"
    option_ids: FrozenSet[str] = frozenset()

    class Config:
        frozen = True

class FreeText(BaseModel):
    kind: Literal["free_text"] = "free_text"
    text: str

    class Config:
        frozen = True

class Unanswered(BaseModel):
    kind: Literal["unanswered"] = "unanswered"

    class Config:
        frozen = True

Answer = Annotated[
    Union[SingleChoice, MultiChoice, FreeText, Unanswered],
    Field(discriminator="kind"),
]

UNANSWERED = Unanswered()

def is_blank(answer: Answer) -> bool:
    """True when the answer carries nothing a student could have meant to submit"""
    if isinstance(answer, Unanswered):
        return True
    if isinstance(answer, MultiChoice):
        return not answer.option_ids
    if isinstance(answer, FreeText):
        return not answer.text.strip()
    return not answer.option_id

def answer_to_columns(answer: Answer) -> dict:
    """Map an answer onto the user_answer / selected_options response columns"""
    user_answer: Optional[str] = None
    selected_options: Optional[List[str]] = None

    if isinstance(answer, SingleChoice):
        user_answer = answer.option_id
    elif isinstance(answer, FreeText):
        user_answer = answer.text
    elif isinstance(answer, MultiChoice):
        selected_options = sorted(answer.option_ids)

    return {"user_answer": user_answer, "selected_options": selected_options}

def answer_from_columns(row: dict, free_text: bool = False) -> Answer:
    """Rebuild an answer from a student_responses row"""
    if row.get("selected_options") is not None:
        return MultiChoice(option_ids=frozenset(row["selected_options"]))

    user_answer = row.get("user_answer")
    if user_answer is None:
        return UNANSWERED
    if free_text:
        return FreeText(text=user_answer)
    return SingleChoice(option_id=user_answer)
