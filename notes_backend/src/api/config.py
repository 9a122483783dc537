import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# Session cookie signing
SESSION_SECRET = os.getenv("SESSION_SECRET")
if not SESSION_SECRET:
    logger.warning("SESSION_SECRET not set, falling back to an insecure development secret.")
    SESSION_SECRET = "temporary_dev_secret"
SESSION_COOKIE = "notes_session"

# Password hashing work factor
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

# Server
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
