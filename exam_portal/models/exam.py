# exam_portal/models/exam.py
from exam_portal.database import db
from exam_portal.utils.dates import isoformat, utcnow


class ExamCategory(db.Model):
    __tablename__ = "exam_categories"

    category_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), unique=True, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    examinations = db.relationship(
        "Examination",
        back_populates="category",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def to_dict(self):
        return {
            "category_id": self.category_id,
            "name": self.name,
            "created_at": isoformat(self.created_at),
        }


class Examination(db.Model):
    __tablename__ = "examinations"

    exam_id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), unique=True, nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False)
    category_id = db.Column(
        db.Integer,
        db.ForeignKey("exam_categories.category_id", ondelete="CASCADE"),
        nullable=False,
    )
    results_release_at = db.Column(db.DateTime)
    allow_multiple_attempts = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    category = db.relationship("ExamCategory", back_populates="examinations")
    subjects = db.relationship(
        "Subject",
        back_populates="exam",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Subject.subject_id",
    )

    def results_released(self, now=None):
        # No release date means results are visible as soon as they exist
        if self.results_release_at is None:
            return True
        return (now or utcnow()) >= self.results_release_at

    def to_dict(self):
        return {
            "exam_id": self.exam_id,
            "title": self.title,
            "duration_minutes": self.duration_minutes,
            "category_id": self.category_id,
            "results_release_at": isoformat(self.results_release_at),
            "allow_multiple_attempts": self.allow_multiple_attempts,
            "created_at": isoformat(self.created_at),
        }


class Subject(db.Model):
    __tablename__ = "subjects"
    __table_args__ = (db.UniqueConstraint("exam_id", "name"),)

    subject_id = db.Column(db.Integer, primary_key=True)
    exam_id = db.Column(
        db.Integer,
        db.ForeignKey("examinations.exam_id", ondelete="CASCADE"),
        nullable=False,
    )
    name = db.Column(db.String(120), nullable=False)

    exam = db.relationship("Examination", back_populates="subjects")
    questions = db.relationship(
        "Question",
        back_populates="subject",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Question.question_id",
    )

    def to_dict(self):
        return {"subject_id": self.subject_id, "exam_id": self.exam_id, "name": self.name}


class Question(db.Model):
    __tablename__ = "questions"

    question_id = db.Column(db.Integer, primary_key=True)
    subject_id = db.Column(
        db.Integer,
        db.ForeignKey("subjects.subject_id", ondelete="CASCADE"),
        nullable=False,
    )
    question_text = db.Column(db.Text, nullable=False)

    subject = db.relationship("Subject", back_populates="questions")
    options = db.relationship(
        "Option",
        back_populates="question",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Option.option_id",
    )

    def to_dict(self):
        return {
            "question_id": self.question_id,
            "subject_id": self.subject_id,
            "question_text": self.question_text,
        }


class Option(db.Model):
    __tablename__ = "options"

    option_id = db.Column(db.Integer, primary_key=True)
    question_id = db.Column(
        db.Integer,
        db.ForeignKey("questions.question_id", ondelete="CASCADE"),
        nullable=False,
    )
    option_text = db.Column(db.Text, nullable=False)
    is_correct = db.Column(db.Boolean, nullable=False, default=False)

    question = db.relationship("Question", back_populates="options")

    def to_dict(self):
        return {
            "option_id": self.option_id,
            "question_id": self.question_id,
            "option_text": self.option_text,
            "is_correct": self.is_correct,
        }
