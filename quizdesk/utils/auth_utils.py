from fastapi import HTTPException, Depends, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from quizdesk.database import supabase
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer()

def verify_supabase_token(token: str):
    """Resolve a student's access token to their Supabase user, or None if it is not accepted"""
    try:
        response = supabase().auth.get_user(token)
    except Exception as e:
        logger.warning(f"Rejected access token: {e}")
        return None
    return response.user if response else None

async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)):
    """The student taking or reviewing an attempt, as {id, email, metadata}"""
    user = verify_supabase_token(credentials.credentials)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials"
        )

    return {
        "id": user.id,
        "email": user.email,
        "metadata": user.user_metadata
    }
