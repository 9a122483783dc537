import os
import pytest

# Settings are read at import time.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SESSION_SECRET", "test-session-secret")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from notes_backend.src.api.main import app, get_db
from notes_database.db import make_engine, make_session_factory
from notes_database.models import Base, User

@pytest.fixture(scope="session")
def sqlite_url():
    """Fixture to provide a SQLite in-memory database URL for testing."""
    return "sqlite://"

@pytest.fixture(scope="session")
def engine(sqlite_url):
    """Fixture for a persistent in-memory SQLite engine for the test session."""
    return make_engine(sqlite_url, poolclass=StaticPool)

@pytest.fixture
def tables(engine):
    """Create tables for each test and drop them afterwards; handlers commit."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)

@pytest.fixture
def db_session(engine, tables):
    """Provide a SQLAlchemy session for isolated test usage."""
    TestingSessionLocal = make_session_factory(engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()

@pytest.fixture
def client(db_session):
    """Fixture for FastAPI TestClient with test DB dependency override."""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()

@pytest.fixture
def second_client(client):
    """A separate browser with its own cookie jar, sharing the same database."""
    with TestClient(app) as c:
        yield c

@pytest.fixture
def user_data():
    """Returns default user data for registration."""
    return {
        "username": "alice",
        "email": "alice@example.com",
        "password": "alicepassword123"
    }

@pytest.fixture
def second_user_data():
    """Returns a second user's data."""
    return {
        "username": "bob",
        "email": "bob@example.com",
        "password": "bobpassword456"
    }

def register(client, username, email, password):
    return client.post("/register", data={
        "username": username, "email": email, "password": password
    }, follow_redirects=False)

def login(client, email, password):
    return client.post("/login", data={
        "email": email, "password": password
    }, follow_redirects=False)

def register_and_login(client, username, email, password):
    """Helper for registering then logging in; the session cookie stays on the client."""
    r1 = register(client, username, email, password)
    assert r1.status_code == 303
    r2 = login(client, email, password)
    assert r2.status_code == 303
    assert r2.headers["location"] == "/notes"

def add_note(client, title, content=""):
    r = client.post("/add-note", data={"title": title, "content": content}, follow_redirects=False)
    assert r.status_code == 303
    return r

@pytest.fixture
def logged_in(client, user_data):
    """Client logged in as the default user."""
    register_and_login(client, user_data["username"], user_data["email"], user_data["password"])
    return client

@pytest.fixture
def second_logged_in(second_client, second_user_data):
    """Second client logged in as another user."""
    register_and_login(second_client, second_user_data["username"], second_user_data["email"], second_user_data["password"])
    return second_client

@pytest.fixture
def make_user(db_session):
    """Factory inserting a user directly; the password hash is irrelevant here."""
    def _make_user(email, username="user"):
        user = User(username=username, email=email, hashed_password="x")
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user
    return _make_user
