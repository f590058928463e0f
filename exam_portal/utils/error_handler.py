# exam_portal/utils/error_handler.py
import logging

from flask import jsonify
from sqlalchemy.exc import DBAPIError, IntegrityError

from exam_portal.database import db

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
NOT_NULL_VIOLATION = "23502"
STRING_TOO_LONG = "22001"
INVALID_TEXT_REPRESENTATION = "22P02"

# SQLite raises the same integrity errors without SQLSTATE codes
_SQLITE_MESSAGES = (
    ("UNIQUE constraint failed", UNIQUE_VIOLATION),
    ("FOREIGN KEY constraint failed", FOREIGN_KEY_VIOLATION),
    ("NOT NULL constraint failed", NOT_NULL_VIOLATION),
)

_FRIENDLY_MESSAGES = {
    UNIQUE_VIOLATION: "A record with the same value already exists.",
    FOREIGN_KEY_VIOLATION: "A referenced record (such as the exam category) does not exist.",
    NOT_NULL_VIOLATION: "A required field was left empty. Please check your inputs.",
    STRING_TOO_LONG: "The title or other text is too long. Please shorten it.",
    INVALID_TEXT_REPRESENTATION: "Please ensure all duration and ID fields contain valid numbers.",
}

DEFAULT_MESSAGE = (
    "An unexpected error occurred while saving the exam. "
    "Please try again or contact support."
)


def sqlstate(error):
    """SQLSTATE code of a database error, or None when unknown."""
    orig = getattr(error, "orig", None)
    code = getattr(orig, "pgcode", None)
    if code:
        return code
    text = str(orig if orig is not None else error)
    for fragment, mapped in _SQLITE_MESSAGES:
        if fragment in text:
            return mapped
    return None


def is_unique_violation(error):
    return isinstance(error, IntegrityError) and sqlstate(error) == UNIQUE_VIOLATION


def friendly_message(error):
    return _FRIENDLY_MESSAGES.get(sqlstate(error), DEFAULT_MESSAGE)


def db_error_response(error, message, conflict_message=None):
    """Roll back and build the JSON error for a failed catalog write.

    Unique violations become 409 when ``conflict_message`` is given.
    """
    db.session.rollback()
    code = sqlstate(error)

    if conflict_message and code == UNIQUE_VIOLATION:
        status, client_message = 409, conflict_message
    else:
        status, client_message = 500, message
        if isinstance(error, DBAPIError):
            logger.exception("Database error: %s", message)

    return jsonify({
        "message": client_message,
        "error": friendly_message(error),
        "technical_code": code,
    }), status
