# exam_portal/utils/lookup.py
from dataclasses import dataclass

from exam_portal.database import db
from exam_portal.models import Examination, User


@dataclass(frozen=True)
class ById:
    value: int


@dataclass(frozen=True)
class ByEmail:
    value: str


@dataclass(frozen=True)
class ByName:
    value: str


@dataclass(frozen=True)
class ByTitle:
    value: str


def user_identifier(text):
    """Classify a free-text user identifier (the int case is routed separately)."""
    if "@" in text:
        return ByEmail(text.strip().lower())
    return ByName(text.strip())


def find_users(lookup):
    if isinstance(lookup, ById):
        user = db.session.get(User, lookup.value)
        return [user] if user else []
    if isinstance(lookup, ByEmail):
        stmt = db.select(User).where(User.email == lookup.value)
    elif isinstance(lookup, ByName):
        stmt = db.select(User).where(User.name == lookup.value)
    else:
        raise TypeError(f"unsupported user lookup: {lookup!r}")
    return db.session.execute(stmt).scalars().all()


def find_exam(lookup):
    if isinstance(lookup, ById):
        return db.session.get(Examination, lookup.value)
    if isinstance(lookup, ByTitle):
        return db.session.execute(
            db.select(Examination).where(Examination.title == lookup.value)
        ).scalar_one_or_none()
    raise TypeError(f"unsupported exam lookup: {lookup!r}")
