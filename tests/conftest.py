import itertools

import pytest

from exam_portal.app import create_app
from exam_portal.config import TestingConfig
from exam_portal.database import db
from exam_portal.models import (
    ROLE_ADMIN,
    ROLE_STUDENT,
    ExamAuthorization,
    ExamCategory,
    Examination,
    Option,
    Question,
    StudentAuthorization,
    Subject,
    User,
)
from exam_portal.utils.jwt_manager import create_token
from exam_portal.utils.rate_limiter import limiter

PASSWORD = "Passw0rd!"
SECRET = "123456"


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    limiter.reset()
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def file_app(tmp_path):
    """App on a file-backed SQLite database, for tests that use several threads."""

    class FileConfig(TestingConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'portal.db'}"
        SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 30}}

    app = create_app(FileConfig)
    limiter.reset()
    yield app
    with app.app_context():
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def client(app):
    return app.test_client()


_user_ids = itertools.count(100000001)


def make_user(email, name="Test User", role=ROLE_STUDENT, confirmed=True, password=PASSWORD):
    user = User(id=next(_user_ids), name=name, email=email, role=role, confirmed=confirmed)
    user.set_password(password)
    if role == ROLE_ADMIN:
        user.set_secret(SECRET)
    db.session.add(user)
    db.session.commit()
    return user


def auth_header(user):
    return {"Authorization": f"Bearer {create_token(user.id, user.email, user.role)}"}


@pytest.fixture
def admin(app):
    return make_user("admin@example.com", name="Admin", role=ROLE_ADMIN)


@pytest.fixture
def admin_headers(admin):
    return auth_header(admin)


@pytest.fixture
def student(app):
    return make_user("student@example.com", name="Ada Student")


@pytest.fixture
def student_headers(student):
    return auth_header(student)


def make_exam(title="Physics 101", questions=None, release_at=None, category_name="Science"):
    """Build an exam with one subject; ``questions`` is a list of
    ``(text, [options], correct_index)`` tuples."""
    category = db.session.execute(
        db.select(ExamCategory).where(ExamCategory.name == category_name)
    ).scalar_one_or_none()
    if category is None:
        category = ExamCategory(name=category_name)
        db.session.add(category)
        db.session.flush()

    exam = Examination(
        title=title,
        duration_minutes=30,
        category_id=category.category_id,
        results_release_at=release_at,
    )
    subject = Subject(name="General")
    exam.subjects.append(subject)
    if questions is None:
        questions = [
            ("2 + 2?", ["3", "4", "5"], 1),
            ("Capital of France?", ["Paris", "Rome"], 0),
        ]
    for text, options, correct in questions:
        question = Question(question_text=text)
        for index, option_text in enumerate(options):
            question.options.append(Option(option_text=option_text, is_correct=index == correct))
        subject.questions.append(question)

    db.session.add(exam)
    db.session.commit()
    return exam


def authorize_students(exam, unique_id, emails):
    record = ExamAuthorization(exam_id=exam.exam_id, unique_id=unique_id)
    db.session.add(record)
    db.session.flush()
    students = []
    for email in emails:
        student = StudentAuthorization(
            exam_auth_id=record.id, email=email, sequential_num=record.next_sequence()
        )
        db.session.add(student)
        students.append(student)
    db.session.commit()
    return record, students


def correct_answers(exam):
    return [
        {
            "questionId": q.question_id,
            "chosenOptionId": next(o.option_id for o in q.options if o.is_correct),
        }
        for s in exam.subjects
        for q in s.questions
    ]
