import logging
import time
from typing import Any, Dict, Optional

from quizdesk.engine.session import AttemptSession
from quizdesk.errors import PersistenceError, SetupError

logger = logging.getLogger(__name__)

class SessionRegistry:
    """Live attempt sessions, keyed by attempt id"""

    def __init__(self):
        self.sessions: Dict[str, AttemptSession] = {}

    def add(self, session: AttemptSession) -> AttemptSession:
        live = self.find_live(session.quiz.id, session.student_id)
        if live is not None and live is not session:
            raise SetupError(f"Attempt {live.attempt.id} is already in progress for this quiz")
        self.sessions[session.attempt.id] = session
        return session

    def get(self, attempt_id: str) -> Optional[AttemptSession]:
        return self.sessions.get(attempt_id)

    def find_live(self, quiz_id: str, student_id: str) -> Optional[AttemptSession]:
        for session in self.sessions.values():
            if session.quiz.id == quiz_id and session.student_id == student_id and not session.is_finished:
                return session
        return None

    def remove(self, attempt_id: str) -> None:
        session = self.sessions.pop(attempt_id, None)
        if session is not None:
            session.stop_timer()

    async def cleanup_stale_sessions(self, max_age_seconds: int) -> int:
        """Drop finished sessions and save overdue ones; returns how many were removed.

        A session older than max_age_seconds is only evicted once it is saved:
        one still counting down is kept until its deadline, and one whose save
        fails stays registered so a later submit or sweep can retry it.
        """
        current_time = time.time()
        to_remove = []
        for attempt_id, session in list(self.sessions.items()):
            if session.is_finished:
                to_remove.append(attempt_id)
                continue
            if current_time - session.created_at <= max_age_seconds:
                continue
            if session.is_running and current_time < session.deadline:
                continue

            try:
                await session.expire()
            except PersistenceError as e:
                logger.error(f"Stale attempt {attempt_id} could not be saved, keeping it: {e}")
                continue
            to_remove.append(attempt_id)

        for attempt_id in to_remove:
            self.remove(attempt_id)
        if to_remove:
            logger.info(f"Removed {len(to_remove)} stale attempt sessions")
        return len(to_remove)

    def close_all(self) -> None:
        for attempt_id in list(self.sessions):
            self.remove(attempt_id)

    def get_stats(self) -> Dict[str, Any]:
        states: Dict[str, int] = {}
        for session in self.sessions.values():
            states[session.state.value] = states.get(session.state.value, 0) + 1
        return {"total_sessions": len(self.sessions), "by_state": states}

# Global session registry
session_registry = SessionRegistry()
