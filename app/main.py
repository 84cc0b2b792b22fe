import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.routes import lessons, live_sessions
from app.db.base import Base
from app.db.sessions import engine
from app.core.config import settings

# Import all models to ensure they're registered with Base
import app.models

logger = logging.getLogger(__name__)

# Create tables
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Lesson playback with progressive reveal and hosted live sessions",
    debug=settings.DEBUG,
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(lessons.router)
app.include_router(live_sessions.router)
app.include_router(live_sessions.ws_router)


@app.on_event("startup")
async def startup_event():
    logger.info("%s v%s starting", settings.APP_NAME, settings.APP_VERSION)
    logger.info("Database engine: %s", engine.url.get_backend_name())
    if settings.LIVE_SESSION_STRICT_PLAY_STATES:
        logger.info("Strict play-state transitions enabled")


@app.get("/health")
def health():
    return {"status": "ok"}
