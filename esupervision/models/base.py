"""SQLAlchemy base configuration and session management."""
from contextlib import contextmanager
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool
from config.settings import get_settings

settings = get_settings()


def make_engine(database_url: str):
    """Create an engine, with pooling suited to the backend."""
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20
    )


def make_session_factory(bind) -> sessionmaker:
    # Objects stay readable after commit; side effects run after the session closes
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=bind)


# Create database engine
engine = make_engine(settings.DATABASE_URL)

# Session factory
SessionLocal = make_session_factory(engine)

# Base class for all models
Base = declarative_base()

def get_db() -> Session:
    """
    Dependency for FastAPI routes.
    Provides database session and ensures cleanup.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

@contextmanager
def session_scope(session_factory=None):
    """One local transaction: commit on success, roll back on error."""
    db = (session_factory or SessionLocal)()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
