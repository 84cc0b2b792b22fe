import logging
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from app.core.config import settings

logger = logging.getLogger("app.db.session")
if not logging.getLogger().handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)

DATABASE_URL = settings.DATABASE_URL
logger.info("Initializing DB session (checking configuration)")
logger.info("DATABASE_URL configured: %s", bool(DATABASE_URL))

if not DATABASE_URL:
    logger.error("DATABASE_URL is not configured. Set the DATABASE_URL env var.")
    raise RuntimeError("DATABASE_URL is not configured. Set the DATABASE_URL env var.")

if DATABASE_URL.startswith("sqlite"):
    # local runs and tests: one shared connection so in-memory data survives across threads
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    # enable pool_pre_ping to avoid stale/closed connections with RDS
    engine = create_engine(DATABASE_URL, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
