from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request

from notes_database.db import SessionLocal
from notes_database.models import User

from .auth import get_session_user


class LoginRequired(Exception):
    """Raised by the auth gate for anonymous requests to protected routes."""


@dataclass
class RequestContext:
    """Per-request view of who is calling; user is None for anonymous requests."""
    user: Optional[User] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None


# DATABASE Dependency
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_request_context(request: Request, db=Depends(get_db)) -> RequestContext:
    """Resolves the session token held in the cookie to a user, if any."""
    return RequestContext(user=get_session_user(db, request))


def require_user(context: RequestContext = Depends(get_request_context)) -> User:
    if not context.is_authenticated:
        raise LoginRequired()
    return context.user
