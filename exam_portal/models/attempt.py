# exam_portal/models/attempt.py
from exam_portal.database import db
from exam_portal.utils.dates import isoformat, utcnow

STATUS_COMPLETED = "COMPLETED"
STATUS_TIMED_OUT = "TIMED_OUT"
SUBMISSION_STATUSES = (STATUS_COMPLETED, STATUS_TIMED_OUT)


class ExamAttempt(db.Model):
    __tablename__ = "exam_attempts"
    __table_args__ = (db.UniqueConstraint("student_auth_id", "exam_id"),)

    attempt_id = db.Column(db.Integer, primary_key=True)
    student_auth_id = db.Column(
        db.Integer,
        db.ForeignKey("students_authorized.id", ondelete="CASCADE"),
        nullable=False,
    )
    exam_id = db.Column(
        db.Integer,
        db.ForeignKey("examinations.exam_id", ondelete="CASCADE"),
        nullable=False,
    )
    total_score = db.Column(db.Float, nullable=False)
    total_questions = db.Column(db.Integer, nullable=False)
    correct_answers = db.Column(db.Integer, nullable=False)
    submission_status = db.Column(db.String(20), nullable=False, default=STATUS_COMPLETED)
    end_time = db.Column(db.DateTime, nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    student = db.relationship("StudentAuthorization")
    exam = db.relationship("Examination")
    answers = db.relationship(
        "AttemptAnswer",
        back_populates="attempt",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="AttemptAnswer.id",
    )

    def to_dict(self):
        return {
            "attempt_id": self.attempt_id,
            "exam_id": self.exam_id,
            "total_score": self.total_score,
            "total_questions": self.total_questions,
            "correct_answers": self.correct_answers,
            "submission_status": self.submission_status,
            "end_time": isoformat(self.end_time),
        }


class AttemptAnswer(db.Model):
    __tablename__ = "attempt_answers"

    id = db.Column(db.Integer, primary_key=True)
    attempt_id = db.Column(
        db.Integer,
        db.ForeignKey("exam_attempts.attempt_id", ondelete="CASCADE"),
        nullable=False,
    )
    question_id = db.Column(
        db.Integer,
        db.ForeignKey("questions.question_id", ondelete="SET NULL"),
    )
    chosen_option_id = db.Column(
        db.Integer, db.ForeignKey("options.option_id", ondelete="SET NULL")
    )
    is_correct = db.Column(db.Boolean, nullable=False, default=False)
    score_awarded = db.Column(db.Float, nullable=False, default=0.0)

    attempt = db.relationship("ExamAttempt", back_populates="answers")
    question = db.relationship("Question")
    chosen_option = db.relationship("Option")

    def to_dict(self):
        return {
            "question_id": self.question_id,
            "chosen_option_id": self.chosen_option_id,
            "is_correct": self.is_correct,
            "score_awarded": self.score_awarded,
        }


class SurveyFeedback(db.Model):
    __tablename__ = "survey_feedback"

    feedback_id = db.Column(db.Integer, primary_key=True)
    attempt_id = db.Column(
        db.Integer,
        db.ForeignKey("exam_attempts.attempt_id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    enjoyed = db.Column(db.Boolean, nullable=False)
    feedback_text = db.Column(db.Text)
    submitted_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    attempt = db.relationship("ExamAttempt")
