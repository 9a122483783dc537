import logging
import secrets
from typing import Optional

from fastapi import Request
from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError

from notes_database.models import User, UserSession

from .config import BCRYPT_ROUNDS

logger = logging.getLogger(__name__)

SESSION_TOKEN_KEY = "sid"

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)


class DuplicateEmail(Exception):
    """Raised when registering with an email that already has an account."""


# Utility functions for auth
def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)

def hash_password(password):
    return pwd_context.hash(password)

# User lookups
def get_user_by_email(db, email: str):
    return db.query(User).filter(User.email == email).first()

def get_user(db, user_id: int):
    return db.query(User).filter(User.id == user_id).first()


# PUBLIC_INTERFACE
def register_user(db, username: str, email: str, password: str) -> User:
    """
    Persist a new user with a bcrypt hash of their password.

    Raises DuplicateEmail if the email is taken, including when a concurrent
    registration wins the race and the unique constraint fires on commit.
    """
    if get_user_by_email(db, email):
        raise DuplicateEmail(email)
    user = User(username=username, email=email, hashed_password=hash_password(password))
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateEmail(email)
    db.refresh(user)
    logger.info("Registered user id=%s", user.id)
    return user


# PUBLIC_INTERFACE
def authenticate(db, email: str, password: str) -> Optional[User]:
    """
    Returns the user for a matching email and password, otherwise None.

    An unknown email and a wrong password both return None.
    """
    user = get_user_by_email(db, email)
    if not user or not verify_password(password, user.hashed_password):
        return None
    return user


# PUBLIC_INTERFACE
def open_session(db, request: Request, user: User) -> str:
    """Binds the user to a fresh server-side session and returns its token."""
    _drop_token(db, request.session.pop(SESSION_TOKEN_KEY, None))
    token = secrets.token_urlsafe(32)
    db.add(UserSession(token=token, user_id=user.id))
    db.commit()
    request.session[SESSION_TOKEN_KEY] = token
    logger.info("Opened session for user id=%s", user.id)
    return token


# PUBLIC_INTERFACE
def close_session(db, request: Request) -> None:
    """Drops the server-side session record and everything in the cookie."""
    _drop_token(db, request.session.get(SESSION_TOKEN_KEY))
    request.session.clear()


def _drop_token(db, token):
    if token:
        db.query(UserSession).filter(UserSession.token == token).delete()
        db.commit()


def get_session_user(db, request: Request) -> Optional[User]:
    token = request.session.get(SESSION_TOKEN_KEY)
    if not token:
        return None
    record = db.query(UserSession).filter(UserSession.token == token).first()
    if record is None:
        return None
    return get_user(db, record.user_id)
