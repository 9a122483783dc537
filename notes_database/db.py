import logging
import os

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker

logger = logging.getLogger(__name__)

# PUBLIC_INTERFACE
def get_database_url():
    """
    Connection string for the users, notes and sessions tables, from
    DATABASE_URL (a local .env file is honoured).

    Hosted Postgres often hands out ``postgres://`` URLs, which SQLAlchemy
    no longer accepts; those are rewritten to ``postgresql://``.
    """
    load_dotenv()
    db_url = os.getenv("DATABASE_URL")
    if not db_url:
        raise ValueError("DATABASE_URL environment variable not set.")
    if db_url.startswith("postgres://"):
        db_url = db_url.replace("postgres://", "postgresql://", 1)
    return db_url

# PUBLIC_INTERFACE
def make_engine(db_url, **kwargs):
    """Creates an engine; SQLite connections are shared across request threads."""
    url = make_url(db_url)
    if url.get_backend_name() == "sqlite":
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    logger.debug("Store: %s", url.render_as_string(hide_password=True))
    return create_engine(url, future=True, echo=False, **kwargs)

# PUBLIC_INTERFACE
def make_session_factory(bind):
    """Request sessions: explicit commits, no autoflush."""
    return sessionmaker(autocommit=False, autoflush=False, bind=bind)

DATABASE_URL = get_database_url()

engine = make_engine(DATABASE_URL)
SessionLocal = make_session_factory(engine)
