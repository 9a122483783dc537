"""
Note query construction and note lifecycle operations.

Every query here is scoped to a single owner. Listing filters
(starred/pinned plus an inclusive created-at day range) and keyword search
are expressed as lists of SQLAlchemy conditions that are ANDed together.
"""
import logging
from datetime import date, datetime, time
from typing import List, Optional

from sqlalchemy import or_

from notes_database.models import Note

logger = logging.getLogger(__name__)

STARRED = "starred"
PINNED = "pinned"

TOGGLE_FIELDS = ("is_starred", "is_pinned")

LIKE_ESCAPE = "\\"

END_OF_DAY = time(23, 59, 59, 999000)


class NoteNotFound(Exception):
    """Raised when a note id does not exist or is not owned by the caller."""

    def __init__(self, note_id):
        super().__init__(f"Note {note_id} not found")
        self.note_id = note_id


# PUBLIC_INTERFACE
def parse_day(value: Optional[str]) -> Optional[date]:
    """
    Parses an ISO date (or datetime) string into a calendar day.

    Blank or unparsable input yields None, which callers treat as
    "no constraint".
    """
    if not value or not value.strip():
        return None
    try:
        return datetime.fromisoformat(value.strip()).date()
    except ValueError:
        logger.debug("Ignoring unparsable date %r", value)
        return None


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min)


def end_of_day(day: date) -> datetime:
    return datetime.combine(day, END_OF_DAY)


# PUBLIC_INTERFACE
def note_filter_conditions(owner_id: int, kind: Optional[str] = None,
                           start_date: Optional[str] = None, end_date: Optional[str] = None) -> list:
    """
    Builds the conditions for the notes listing.

    The owner clause is always present. ``kind`` may be "starred" or
    "pinned"; any other value adds nothing. ``start_date`` and ``end_date``
    bound ``created_at`` to whole days, both ends inclusive.
    """
    conditions = [Note.user_id == owner_id]

    if kind == STARRED:
        conditions.append(Note.is_starred.is_(True))
    elif kind == PINNED:
        conditions.append(Note.is_pinned.is_(True))

    start_day = parse_day(start_date)
    if start_day is not None:
        conditions.append(Note.created_at >= start_of_day(start_day))

    end_day = parse_day(end_date)
    if end_day is not None:
        conditions.append(Note.created_at <= end_of_day(end_day))

    return conditions


# PUBLIC_INTERFACE
def escape_like(text: str) -> str:
    """Escapes LIKE wildcards so the text only ever matches itself."""
    return (
        text.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


# PUBLIC_INTERFACE
def search_conditions(owner_id: int, text: Optional[str]) -> list:
    """
    Builds the conditions for keyword search: owner AND (title OR content)
    containing ``text`` case-insensitively. Blank text matches every owned note.
    """
    conditions = [Note.user_id == owner_id]
    if text:
        pattern = f"%{escape_like(text)}%"
        conditions.append(or_(
            Note.title.ilike(pattern, escape=LIKE_ESCAPE),
            Note.content.ilike(pattern, escape=LIKE_ESCAPE),
        ))
    return conditions


def _run(db, conditions) -> List[Note]:
    return (
        db.query(Note)
        .filter(*conditions)
        .order_by(Note.is_pinned.desc(), Note.created_at.desc(), Note.id.desc())
        .all()
    )


def list_notes(db, owner_id: int, kind=None, start_date=None, end_date=None) -> List[Note]:
    conditions = note_filter_conditions(owner_id, kind, start_date, end_date)
    logger.debug("Listing notes owner=%s kind=%r start=%r end=%r", owner_id, kind, start_date, end_date)
    return _run(db, conditions)


def search_notes(db, owner_id: int, text: Optional[str]) -> List[Note]:
    return _run(db, search_conditions(owner_id, text))


# PUBLIC_INTERFACE
def get_owned_note(db, note_id: int, owner_id: int) -> Note:
    """Fetches a note by id, treating notes of other users as missing."""
    note = db.query(Note).filter(Note.id == note_id, Note.user_id == owner_id).first()
    if note is None:
        raise NoteNotFound(note_id)
    return note


def create_note(db, owner_id: int, title: str, content: str) -> Note:
    note = Note(user_id=owner_id, title=title, content=content)
    db.add(note)
    db.commit()
    db.refresh(note)
    return note


def update_note(db, note_id: int, owner_id: int, title: str, content: str) -> Note:
    note = get_owned_note(db, note_id, owner_id)
    note.title = title
    note.content = content
    db.commit()
    db.refresh(note)
    return note


def delete_note(db, note_id: int, owner_id: int) -> None:
    note = get_owned_note(db, note_id, owner_id)
    db.delete(note)
    db.commit()


def flip(value: bool) -> bool:
    return not value


# PUBLIC_INTERFACE
def toggle_flag(db, note_id: int, owner_id: int, field: str) -> Note:
    """
    Negates ``is_starred`` or ``is_pinned`` on one note and saves it.

    This is a plain read-modify-write: two concurrent toggles on the same
    note race and the last commit wins.
    """
    if field not in TOGGLE_FIELDS:
        raise ValueError(f"Cannot toggle {field!r}")
    note = get_owned_note(db, note_id, owner_id)
    setattr(note, field, flip(getattr(note, field)))
    db.commit()
    db.refresh(note)
    return note
