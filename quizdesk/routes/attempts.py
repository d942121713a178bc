from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Optional
import asyncio
import logging

from quizdesk.engine.registry import SessionRegistry, session_registry
from quizdesk.engine.session import AttemptSession
from quizdesk.engine.timer import CountdownTimer
from quizdesk.errors import SetupError, ValidationError, PersistenceError
from quizdesk.models.answer import Answer
from quizdesk.store import AttemptStore, SupabaseAttemptStore
from quizdesk.utils.auth_utils import get_current_user

router = APIRouter()
logger = logging.getLogger(__name__)

class SelectAnswerRequest(BaseModel):
    answer: Answer

class SubmitAnswerRequest(BaseModel):
    answer: Optional[Answer] = None

class JumpRequest(BaseModel):
    index: int

class AbandonRequest(BaseModel):
    confirm: bool = False

def get_attempt_store() -> AttemptStore:
    return SupabaseAttemptStore()

def get_session_registry() -> SessionRegistry:
    return session_registry

def get_owned_session(attempt_id: str, current_user: dict, registry: SessionRegistry) -> AttemptSession:
    session = registry.get(attempt_id)
    if not session:
        raise HTTPException(status_code=404, detail="Attempt not found or no longer active")
    if session.student_id != current_user["id"]:
        raise HTTPException(status_code=403, detail="Access denied. This attempt belongs to another student.")
    return session

def to_http_error(e: Exception, action: str) -> HTTPException:
    if isinstance(e, SetupError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, ValidationError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, PersistenceError):
        return HTTPException(status_code=503, detail=f"Could not save attempt, please retry: {str(e)}")
    return HTTPException(status_code=400, detail=f"Failed to {action}: {str(e)}")

@router.post("/quizzes/{quiz_id}/attempts")
async def start_attempt(quiz_id: str, current_user: dict = Depends(get_current_user),
                        store: AttemptStore = Depends(get_attempt_store),
                        registry: SessionRegistry = Depends(get_session_registry)):
    """Start a timed attempt on a quiz"""
    try:
        live = registry.find_live(quiz_id, current_user["id"])
        if live:
            raise HTTPException(status_code=409, detail=f"Attempt {live.attempt.id} is already in progress")

        session = await asyncio.to_thread(AttemptSession.begin, store, quiz_id, current_user["id"])
        registry.add(session)
        CountdownTimer(session).start()

        return session.snapshot()

    except HTTPException:
        raise
    except Exception as e:
        raise to_http_error(e, "start attempt")

@router.get("/attempts/{attempt_id}")
async def get_attempt(attempt_id: str, current_user: dict = Depends(get_current_user),
                      registry: SessionRegistry = Depends(get_session_registry)):
    """Current state of a live attempt"""
    session = get_owned_session(attempt_id, current_user, registry)
    return session.snapshot()

@router.post("/attempts/{attempt_id}/select")
async def select_answer(attempt_id: str, request: SelectAnswerRequest, current_user: dict = Depends(get_current_user),
                        registry: SessionRegistry = Depends(get_session_registry)):
    """Choose an answer for the current question without submitting it"""
    session = get_owned_session(attempt_id, current_user, registry)
    try:
        accepted = session.select_answer(request.answer)
        return {"accepted": accepted, "attempt": session.snapshot()}
    except Exception as e:
        raise to_http_error(e, "select answer")

@router.post("/attempts/{attempt_id}/submit-answer")
async def submit_answer(attempt_id: str, request: SubmitAnswerRequest, current_user: dict = Depends(get_current_user),
                        registry: SessionRegistry = Depends(get_session_registry)):
    """Lock in the answer for the current question"""
    session = get_owned_session(attempt_id, current_user, registry)
    try:
        accepted = session.submit_answer(request.answer)
        return {"accepted": accepted, "attempt": session.snapshot()}
    except Exception as e:
        raise to_http_error(e, "submit answer")

@router.post("/attempts/{attempt_id}/advance")
async def advance(attempt_id: str, current_user: dict = Depends(get_current_user),
                  registry: SessionRegistry = Depends(get_session_registry)):
    session = get_owned_session(attempt_id, current_user, registry)
    try:
        moved = session.advance()
        return {"moved": moved, "attempt": session.snapshot()}
    except Exception as e:
        raise to_http_error(e, "advance")

@router.post("/attempts/{attempt_id}/retreat")
async def retreat(attempt_id: str, current_user: dict = Depends(get_current_user),
                  registry: SessionRegistry = Depends(get_session_registry)):
    session = get_owned_session(attempt_id, current_user, registry)
    try:
        moved = session.retreat()
        return {"moved": moved, "attempt": session.snapshot()}
    except Exception as e:
        raise to_http_error(e, "go back")

@router.post("/attempts/{attempt_id}/jump")
async def jump(attempt_id: str, request: JumpRequest, current_user: dict = Depends(get_current_user),
               registry: SessionRegistry = Depends(get_session_registry)):
    session = get_owned_session(attempt_id, current_user, registry)
    try:
        moved = session.jump_to(request.index)
        return {"moved": moved, "attempt": session.snapshot()}
    except Exception as e:
        raise to_http_error(e, "jump")

@router.post("/attempts/{attempt_id}/flag")
async def toggle_flag(attempt_id: str, current_user: dict = Depends(get_current_user),
                      registry: SessionRegistry = Depends(get_session_registry)):
    session = get_owned_session(attempt_id, current_user, registry)
    try:
        flagged = session.toggle_flag()
        return {"flagged": flagged, "attempt": session.snapshot()}
    except Exception as e:
        raise to_http_error(e, "flag question")

@router.post("/attempts/{attempt_id}/submit")
async def submit_attempt(attempt_id: str, current_user: dict = Depends(get_current_user),
                         registry: SessionRegistry = Depends(get_session_registry)):
    """Finalize the attempt; safe to call again if saving failed"""
    session = get_owned_session(attempt_id, current_user, registry)
    try:
        return await session.submit_quiz_async()
    except Exception as e:
        raise to_http_error(e, "submit attempt")

@router.post("/attempts/{attempt_id}/abandon")
async def abandon_attempt(attempt_id: str, request: AbandonRequest, current_user: dict = Depends(get_current_user),
                          registry: SessionRegistry = Depends(get_session_registry)):
    """Exit the attempt without a score (requires confirm=true)"""
    session = get_owned_session(attempt_id, current_user, registry)
    try:
        abandoned = await session.abandon_async(confirm=request.confirm)
        if abandoned:
            registry.remove(attempt_id)
        return {"abandoned": abandoned, "attempt": session.snapshot()}
    except Exception as e:
        raise to_http_error(e, "abandon attempt")
