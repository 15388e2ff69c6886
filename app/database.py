import os
from pathlib import Path
from typing import Iterator, Optional

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

# Force-load .env (Windows-safe, reload-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH)

Base = declarative_base()

engine: Optional[Engine] = None
SessionLocal: Optional[sessionmaker] = None


def init_db(database_url: Optional[str] = None) -> sessionmaker:
    """Create the process-wide engine and session factory once."""
    global engine, SessionLocal
    if SessionLocal is not None:
        return SessionLocal

    url = database_url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not set. Check your .env file.")

    engine = create_engine(
        url,
        connect_args={"check_same_thread": False} if url.startswith("sqlite") else {}
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    # Tables must be registered on Base before create_all
    from app import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    return SessionLocal


def get_session() -> Iterator[Session]:
    factory = init_db()
    db = factory()
    try:
        yield db
    finally:
        db.close()
