from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, declarative_base

from finance_tracker.config import get_settings


def _connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


DATABASE_URL = get_settings().database_url
engine = create_engine(DATABASE_URL, connect_args=_connect_args(DATABASE_URL))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def init_db(bind=None):
    # models must be imported so their tables are registered on Base.metadata
    from finance_tracker import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def database_status(db) -> str:
    try:
        db.execute(text("SELECT 1"))
        return "connected"
    except SQLAlchemyError:
        return "disconnected"


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
