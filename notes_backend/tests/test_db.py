import pytest
from sqlalchemy import text

from notes_database import db


def test_get_database_url_requires_setting(monkeypatch):
    monkeypatch.setattr(db, "load_dotenv", lambda: None)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(ValueError):
        db.get_database_url()

def test_get_database_url_rewrites_postgres_scheme(monkeypatch):
    monkeypatch.setattr(db, "load_dotenv", lambda: None)
    monkeypatch.setenv("DATABASE_URL", "postgres://notes:secret@db:5432/notes")
    assert db.get_database_url() == "postgresql://notes:secret@db:5432/notes"

def test_make_engine_for_sqlite():
    engine = db.make_engine("sqlite://")
    with engine.connect() as conn:
        assert conn.execute(text("select 1")).scalar() == 1
    assert engine.dialect.name == "sqlite"
    engine.dispose()
