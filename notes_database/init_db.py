"""
Database initialization script.

Run this script to create the users, notes and sessions tables.
"""
import logging

from notes_database.db import engine
from notes_database.models import Base

logger = logging.getLogger(__name__)

# PUBLIC_INTERFACE
def init_db(bind=None):
    """Initializes the database by creating all tables if they do not exist."""
    Base.metadata.create_all(bind=bind or engine)

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    init_db()
    logger.info("Database tables created successfully.")
