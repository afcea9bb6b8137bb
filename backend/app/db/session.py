"""
Database session management.
"""
from contextlib import contextmanager
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from app.core.config import settings
from app.db.base import Base

engine = create_engine(
    settings.DATABASE_URL,
    echo=settings.DB_ECHO,
    pool_pre_ping=True,
    pool_recycle=3600
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Session:
    """Dependency for getting database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def unit_of_work(db: Session):
    """Run a multi-step write as one transaction: commit on success, roll back on error."""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def init_db(bind=None):
    """Initialize database tables."""
    import app.models  # noqa: F401  register models with the metadata
    Base.metadata.create_all(bind=bind or engine)
