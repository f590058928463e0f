# exam_portal/utils/passwords.py
import re

SPECIAL_CHARACTERS = "@$!%*?&_-"

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def password_errors(password):
    """List the policy rules ``password`` fails; empty when it passes."""
    if not isinstance(password, str):
        password = ""

    errors = []
    if len(password) < 8:
        errors.append("Password must be at least 8 characters long")
    if len(password) > 24:
        errors.append("Password must be no more than 24 characters long")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"\d", password):
        errors.append("Password must contain at least one number")
    if not any(ch in SPECIAL_CHARACTERS for ch in password):
        errors.append("Password must contain at least one special character")
    return errors


def secret_errors(secret):
    if not isinstance(secret, str):
        secret = ""

    errors = []
    if len(secret) != 6:
        errors.append("Secret must be 6 numbers long")
    if not secret.isdigit():
        errors.append("Secret must be a number")
    return errors


def is_valid_email(email):
    return isinstance(email, str) and bool(EMAIL_RE.match(email.strip()))


def normalize_email(email):
    return email.strip().lower() if isinstance(email, str) else ""
