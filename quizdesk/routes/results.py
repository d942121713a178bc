from fastapi import APIRouter, Depends, HTTPException

from quizdesk.engine.scoring import grade_for
from quizdesk.models.attempt import AttemptStatus
from quizdesk.routes.attempts import get_attempt_store, to_http_error
from quizdesk.store import AttemptStore
from quizdesk.utils.auth_utils import get_current_user

router = APIRouter()

@router.get("/{attempt_id}")
async def get_attempt_result(attempt_id: str, current_user: dict = Depends(get_current_user),
                             store: AttemptStore = Depends(get_attempt_store)):
    """Get the finalized result of one of the current student's attempts"""
    try:
        attempt = store.load_attempt(attempt_id)
        if not attempt:
            raise HTTPException(status_code=404, detail="Result not found")
        if attempt.user_id != current_user["id"]:
            raise HTTPException(status_code=403, detail="Access denied")
        if attempt.status != AttemptStatus.COMPLETED:
            raise HTTPException(status_code=400, detail=f"Attempt is {attempt.status.value}, not completed")

        quiz = store.load_quiz(attempt.quiz_id)
        allow_review = quiz.allow_review if quiz else False
        responses = store.load_responses(attempt_id) if allow_review else []

        return {
            "quiz_title": quiz.title if quiz else None,
            "passing_percentage": quiz.passing_percentage if quiz else None,
            "attempt": attempt,
            "grade": grade_for(attempt.percentage),
            "responses": responses,
            "review_allowed": allow_review
        }

    except HTTPException:
        raise
    except Exception as e:
        raise to_http_error(e, "get result")
