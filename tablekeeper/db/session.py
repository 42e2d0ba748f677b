from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from tablekeeper.core.config import settings


def _engine_options(url: str) -> dict:
    # SQLite sessions are handed between the request threadpool and the lock sweep
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_size": 10, "max_overflow": 20}


engine = create_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """One session per request; the booking repository commits its own writes."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
