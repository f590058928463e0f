# exam_portal/routes/review_routes.py

import logging

from flask import Blueprint, jsonify, request
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError

from exam_portal.database import db
from exam_portal.models import (
    ExamAttempt,
    ExamAuthorization,
    Examination,
    StudentAuthorization,
    SurveyFeedback,
    User,
)
from exam_portal.utils.dates import isoformat, utcnow
from exam_portal.utils.generate_id import parse_student_id_code
from exam_portal.utils.session import admin_required

logger = logging.getLogger(__name__)

review = Blueprint("review", __name__)

_YES = {"yes", "true", "y", "1"}
_NO = {"no", "false", "n", "0"}


def _insert_for_dialect():
    """INSERT construct with ON CONFLICT support for the bound database."""
    if db.session.get_bind().dialect.name == "postgresql":
        return postgresql.insert
    return sqlite.insert


def parse_enjoyed(value):
    """Accept a boolean or a yes/no style string; None when unrecognised."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _YES:
            return True
        if text in _NO:
            return False
    return None


# =====================================================
# ✅ SUBMIT FEEDBACK
# =====================================================
@review.post("/survey-feedback")
def submit_feedback():
    data = request.get_json(silent=True) or {}
    submission_id = data.get("submissionId")
    enjoyed = parse_enjoyed(data.get("enjoyed"))
    feedback = data.get("feedback")
    feedback = (feedback.strip() or None) if isinstance(feedback, str) else None

    if not submission_id or enjoyed is None:
        return jsonify({
            "message": "Missing required fields: submission ID or 'enjoyed' status."
        }), 400

    try:
        prefix, _, sequential_num = parse_student_id_code(submission_id)
    except ValueError:
        return jsonify({
            "message": "Invalid submission ID format. Expected format like PREFIX/YY/NUMBER."
        }), 400

    student = db.session.execute(
        db.select(StudentAuthorization)
        .join(ExamAuthorization, StudentAuthorization.exam_auth_id == ExamAuthorization.id)
        .where(
            StudentAuthorization.sequential_num == sequential_num,
            ExamAuthorization.unique_id == prefix,
        )
    ).scalar_one_or_none()
    if student is None:
        return jsonify({"message": "Student authorization record not found via ID code."}), 404

    attempt = db.session.execute(
        db.select(ExamAttempt)
        .where(ExamAttempt.student_auth_id == student.id)
        .order_by(ExamAttempt.end_time.desc())
        .limit(1)
    ).scalar_one_or_none()
    if attempt is None:
        return jsonify({"message": "No completed exam attempts found for this student."}), 404

    try:
        stmt = _insert_for_dialect()(SurveyFeedback).values(
            attempt_id=attempt.attempt_id,
            enjoyed=enjoyed,
            feedback_text=feedback,
            submitted_at=utcnow(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[SurveyFeedback.attempt_id],
            set_={
                "enjoyed": stmt.excluded.enjoyed,
                "feedback_text": stmt.excluded.feedback_text,
                "submitted_at": stmt.excluded.submitted_at,
            },
        ).returning(SurveyFeedback.feedback_id)
        feedback_id = db.session.execute(stmt).scalar_one()
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Saving feedback for attempt %s failed", attempt.attempt_id)
        return jsonify({"message": "Internal server error during feedback submission."}), 500

    return jsonify({
        "message": "Feedback submitted successfully.",
        "feedbackId": feedback_id,
    }), 201


# =====================================================
# ✅ LIST REVIEWS (ADMIN)
# =====================================================
@review.get("/results/reviews")
@admin_required
def list_reviews():
    rows = db.session.execute(
        db.select(SurveyFeedback, Examination.title, User.name, StudentAuthorization)
        .select_from(SurveyFeedback)
        .join(ExamAttempt, SurveyFeedback.attempt_id == ExamAttempt.attempt_id)
        .join(Examination, ExamAttempt.exam_id == Examination.exam_id)
        .join(StudentAuthorization, ExamAttempt.student_auth_id == StudentAuthorization.id)
        .outerjoin(User, User.email == StudentAuthorization.email)
        .order_by(SurveyFeedback.submitted_at.desc())
    ).all()

    return jsonify({
        "data": [
            {
                "feedback_id": feedback.feedback_id,
                "enjoyed": feedback.enjoyed,
                "feedback_text": feedback.feedback_text,
                "submitted_at": isoformat(feedback.submitted_at),
                "exam_title": title,
                "student_name": name or "Unregistered User",
                "student_email": student.email,
                "student_id_code": student.student_id_code,
            }
            for feedback, title, name, student in rows
        ]
    }), 200
