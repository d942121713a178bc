import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from quizdesk import __version__
from quizdesk.config import settings
from quizdesk.engine.registry import session_registry
from quizdesk.routes import attempts, results
from quizdesk.utils.logging_config import configure_logging

logger = configure_logging()

CLEANUP_INTERVAL_SECONDS = 300

async def periodic_cleanup():
    """Evict finished and expired attempt sessions"""
    while True:
        try:
            await asyncio.sleep(CLEANUP_INTERVAL_SECONDS)
            await session_registry.cleanup_stale_sessions(settings.session_max_age_seconds)
        except asyncio.CancelledError:
            break
        except Exception as e:
            logging.getLogger(__name__).error(f"Error in periodic cleanup: {e}")

@asynccontextmanager
async def lifespan(app: FastAPI):
    cleanup_task = asyncio.create_task(periodic_cleanup())
    yield
    cleanup_task.cancel()
    session_registry.close_all()

app = FastAPI(title=settings.app_name, version=__version__,
              description="Timed quiz attempts: answering, scoring and results", lifespan=lifespan)

# CORS middleware for cross-origin requests (adjust origins for production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers with prefixes and tags
app.include_router(attempts.router, tags=["Attempts"])
app.include_router(results.router, prefix="/results", tags=["Results"])

# Root endpoint
@app.get("/")
async def root():
    return {"message": "Welcome to the Quizdesk attempt API", "version": app.version,
            "sessions": session_registry.get_stats()}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("quizdesk.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
