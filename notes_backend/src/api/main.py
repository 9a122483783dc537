import logging
import os
from typing import Optional

from fastapi import FastAPI, Depends, Form, Path, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel, EmailStr, Field, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.sessions import SessionMiddleware

from notes_database.models import User

from . import queries
from .auth import DuplicateEmail, authenticate, close_session, open_session, register_user
from .config import HOST, LOG_LEVEL, PORT, SESSION_COOKIE, SESSION_SECRET
from .dependencies import LoginRequired, RequestContext, get_db, get_request_context, require_user
from .flash import ERROR, SUCCESS, flash, pop_flashes
from .queries import NoteNotFound

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)

PACKAGE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
TEMPLATES_DIR = os.path.join(PACKAGE_DIR, "templates")
STATIC_DIR = os.path.join(PACKAGE_DIR, "static")

SEE_OTHER = 303

# Largest id a 64-bit signed INTEGER column can hold
MAX_NOTE_ID = 2**63 - 1

templates = Jinja2Templates(directory=TEMPLATES_DIR)


# Pydantic models for form validation

class RegistrationForm(BaseModel):
    username: str = Field(..., min_length=1, max_length=64)
    email: EmailStr
    password: str = Field(..., min_length=1)

class LoginForm(BaseModel):
    email: EmailStr
    password: str


# FastAPI app config
app = FastAPI(
    title="Personal Notes",
    description="Server-rendered personal note taking: register, log in, and manage your notes.",
    version="1.0.0",
)
app.add_middleware(SessionMiddleware, secret_key=SESSION_SECRET, session_cookie=SESSION_COOKIE)
app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")


def redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=SEE_OTHER)


def render(request: Request, name: str, user: Optional[User] = None, **context):
    """Renders a page, consuming any queued flash messages."""
    messages = pop_flashes(request)
    context.update(
        user=user,
        success_msg=messages[SUCCESS],
        error_msg=messages[ERROR],
    )
    return templates.TemplateResponse(request, name, context)


def store_failure(db, message: str, exc: Exception) -> None:
    db.rollback()
    logger.exception("%s: %s", message, exc)


#####################
# ERROR HANDLERS
#####################

@app.exception_handler(LoginRequired)
def login_required_handler(request: Request, exc: LoginRequired):
    flash(request, "Please log in to continue", ERROR)
    return redirect("/login")

@app.exception_handler(NoteNotFound)
def note_not_found_handler(request: Request, exc: NoteNotFound):
    logger.info("Note lookup failed: %s", exc)
    flash(request, "Note not found", ERROR)
    return redirect("/notes")

@app.exception_handler(RequestValidationError)
def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.info("Rejected request to %s: %s", request.url.path, exc.errors())
    flash(request, "Invalid request", ERROR)
    return redirect("/notes")

@app.exception_handler(SQLAlchemyError)
def store_error_handler(request: Request, exc: SQLAlchemyError):
    # Rendered in place; every redirect target needs the store too.
    logger.error("Store failure while handling %s", request.url.path, exc_info=exc)
    flash(request, "Something went wrong, please try again later", ERROR)
    response = render(request, "index.html")
    response.status_code = 503
    return response


#####################
# PAGES
#####################

# PUBLIC_INTERFACE
@app.get("/", summary="Landing page")
def index(request: Request, context: RequestContext = Depends(get_request_context)):
    """Welcome page."""
    return render(request, "index.html", user=context.user)

# PUBLIC_INTERFACE
@app.get("/register", summary="Registration form")
def register_page(request: Request, context: RequestContext = Depends(get_request_context)):
    return render(request, "register.html", user=context.user)

# PUBLIC_INTERFACE
@app.get("/login", summary="Login form")
def login_page(request: Request, context: RequestContext = Depends(get_request_context)):
    return render(request, "login.html", user=context.user)


#####################
# AUTH ENDPOINTS
#####################

# PUBLIC_INTERFACE
@app.post("/register", summary="Register a new user")
def register(
    request: Request,
    username: str = Form(""),
    email: str = Form(""),
    password: str = Form(""),
    db=Depends(get_db),
):
    """
    Register a new user and send them to the login page.
    A taken email is reported back on the registration form.
    """
    try:
        form = RegistrationForm(username=username.strip(), email=email.strip(), password=password)
    except ValidationError:
        flash(request, "Please enter a username, a valid email address and a password", ERROR)
        return redirect("/register")

    try:
        register_user(db, form.username, form.email, form.password)
    except DuplicateEmail:
        flash(request, "An account with that email already exists", ERROR)
        return redirect("/register")
    except SQLAlchemyError as exc:
        store_failure(db, "Error in registration", exc)
        flash(request, "Error in registration", ERROR)
        return redirect("/register")

    flash(request, "You are now registered!")
    return redirect("/login")

# PUBLIC_INTERFACE
@app.post("/login", summary="Log in")
def login(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    db=Depends(get_db),
):
    """
    Log in with email and password.
    Unknown emails and wrong passwords get the same message.
    """
    try:
        form = LoginForm(email=email.strip(), password=password)
    except ValidationError:
        form = None

    try:
        # Stored emails are normalized by EmailStr at registration; compare like with like.
        user = authenticate(db, form.email, form.password) if form else None
        if not user:
            flash(request, "Invalid email or password", ERROR)
            return redirect("/login")
        open_session(db, request, user)
    except SQLAlchemyError as exc:
        store_failure(db, "Error logging in", exc)
        flash(request, "Error logging in", ERROR)
        return redirect("/login")

    flash(request, "You are now logged in!")
    return redirect("/notes")

# PUBLIC_INTERFACE
@app.get("/logout", summary="Log out")
def logout(request: Request, db=Depends(get_db)):
    """End the server-side session and clear the cookie."""
    try:
        close_session(db, request)
    except SQLAlchemyError as exc:
        store_failure(db, "Error logging out", exc)
        flash(request, "Error logging out", ERROR)
        return redirect("/notes")
    flash(request, "You have logged out successfully!")
    return redirect("/login")


#####################
# NOTES ENDPOINTS
#####################

# PUBLIC_INTERFACE
@app.get("/notes", summary="List notes")
def notes_page(
    request: Request,
    filter: Optional[str] = None,
    startDate: Optional[str] = None,
    endDate: Optional[str] = None,
    db=Depends(get_db),
    current_user: User = Depends(require_user),
):
    """
    List the caller's notes, optionally only starred or pinned ones,
    and optionally within an inclusive created-at day range.
    """
    try:
        notes = queries.list_notes(db, current_user.id, filter, startDate, endDate)
    except SQLAlchemyError as exc:
        store_failure(db, "Error fetching notes", exc)
        flash(request, "Error fetching notes", ERROR)
        notes = []
    return render(
        request, "notes.html", user=current_user, notes=notes,
        filter=filter or "", start_date=startDate or "", end_date=endDate or "", query="",
    )

# PUBLIC_INTERFACE
@app.get("/search-notes", summary="Search notes")
def search_notes(
    request: Request,
    query: Optional[str] = None,
    db=Depends(get_db),
    current_user: User = Depends(require_user),
):
    """Case-insensitive literal search over the caller's note titles and contents."""
    try:
        notes = queries.search_notes(db, current_user.id, query)
    except SQLAlchemyError as exc:
        store_failure(db, "Error searching notes", exc)
        flash(request, "Error searching notes", ERROR)
        return redirect("/notes")
    return render(
        request, "notes.html", user=current_user, notes=notes,
        filter="", start_date="", end_date="", query=query or "",
    )

# PUBLIC_INTERFACE
@app.post("/add-note", summary="Create a note")
def add_note(
    request: Request,
    title: str = Form(""),
    content: str = Form(""),
    db=Depends(get_db),
    current_user: User = Depends(require_user),
):
    """Create a note owned by the caller. Content is stored as submitted."""
    try:
        queries.create_note(db, current_user.id, title, content)
    except SQLAlchemyError as exc:
        store_failure(db, "Error saving note", exc)
        flash(request, "Error saving note", ERROR)
        return redirect("/notes")
    flash(request, "Note added!")
    return redirect("/notes")

# PUBLIC_INTERFACE
@app.get("/edit-note/{note_id}", summary="Edit form for a note")
def edit_note_page(
    request: Request,
    note_id: int = Path(..., ge=1, le=MAX_NOTE_ID),
    db=Depends(get_db),
    current_user: User = Depends(require_user),
):
    try:
        note = queries.get_owned_note(db, note_id, current_user.id)
    except SQLAlchemyError as exc:
        store_failure(db, "Error fetching note", exc)
        flash(request, "Error fetching note", ERROR)
        return redirect("/notes")
    return render(request, "edit_note.html", user=current_user, note=note)

# PUBLIC_INTERFACE
@app.post("/update-note/{note_id}", summary="Update a note")
def update_note(
    request: Request,
    note_id: int = Path(..., ge=1, le=MAX_NOTE_ID),
    title: str = Form(""),
    content: str = Form(""),
    db=Depends(get_db),
    current_user: User = Depends(require_user),
):
    """Overwrite the title and content of one of the caller's notes."""
    try:
        queries.update_note(db, note_id, current_user.id, title, content)
    except SQLAlchemyError as exc:
        store_failure(db, "Error updating note", exc)
        flash(request, "Error updating note", ERROR)
        return redirect("/notes")
    flash(request, "Note updated!")
    return redirect("/notes")

# PUBLIC_INTERFACE
@app.post("/delete-note/{note_id}", summary="Delete a note")
def delete_note(
    request: Request,
    note_id: int = Path(..., ge=1, le=MAX_NOTE_ID),
    db=Depends(get_db),
    current_user: User = Depends(require_user),
):
    try:
        queries.delete_note(db, note_id, current_user.id)
    except SQLAlchemyError as exc:
        store_failure(db, "Error deleting note", exc)
        flash(request, "Error deleting note", ERROR)
        return redirect("/notes")
    flash(request, "Note deleted successfully!")
    return redirect("/notes")

# PUBLIC_INTERFACE
@app.post("/toggle-star/{note_id}", summary="Star or unstar a note")
def toggle_star(
    request: Request,
    note_id: int = Path(..., ge=1, le=MAX_NOTE_ID),
    db=Depends(get_db),
    current_user: User = Depends(require_user),
):
    try:
        note = queries.toggle_flag(db, note_id, current_user.id, "is_starred")
    except SQLAlchemyError as exc:
        store_failure(db, "Error updating star status", exc)
        flash(request, "Error updating star status", ERROR)
        return redirect("/notes")
    flash(request, f"Note {'starred' if note.is_starred else 'unstarred'}!")
    return redirect("/notes")

# PUBLIC_INTERFACE
@app.post("/toggle-pin/{note_id}", summary="Pin or unpin a note")
def toggle_pin(
    request: Request,
    note_id: int = Path(..., ge=1, le=MAX_NOTE_ID),
    db=Depends(get_db),
    current_user: User = Depends(require_user),
):
    try:
        note = queries.toggle_flag(db, note_id, current_user.id, "is_pinned")
    except SQLAlchemyError as exc:
        store_failure(db, "Error updating pin status", exc)
        flash(request, "Error updating pin status", ERROR)
        return redirect("/notes")
    flash(request, f"Note {'pinned' if note.is_pinned else 'unpinned'}!")
    return redirect("/notes")


# PUBLIC_INTERFACE
def run():
    """Start the web server on HOST:PORT."""
    import uvicorn

    logger.info("Server is running on http://%s:%s", HOST, PORT)
    uvicorn.run(app, host=HOST, port=PORT, log_level=LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
