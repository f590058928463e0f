# exam_portal/routes/student_routes.py

import io

from flask import Blueprint, g, jsonify, send_file
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas
from sqlalchemy.orm import selectinload

from exam_portal.database import db
from exam_portal.models import AttemptAnswer, ExamAttempt, StudentAuthorization
from exam_portal.routes.result_routes import serialize_answers
from exam_portal.utils.dates import isoformat, utcnow
from exam_portal.utils.session import session_required

student = Blueprint("student", __name__)


def _own_attempts_query(email):
    return (
        db.select(ExamAttempt)
        .join(StudentAuthorization, ExamAttempt.student_auth_id == StudentAuthorization.id)
        .where(StudentAuthorization.email == email)
        .options(
            selectinload(ExamAttempt.exam),
            selectinload(ExamAttempt.student).selectinload(StudentAuthorization.exam_authorization),
            selectinload(ExamAttempt.answers).selectinload(AttemptAnswer.question),
            selectinload(ExamAttempt.answers).selectinload(AttemptAnswer.chosen_option),
        )
    )


def _serialize_attempt(attempt, now):
    released = attempt.exam.results_released(now)
    return {
        "attemptId": attempt.attempt_id,
        "examId": attempt.exam_id,
        "examTitle": attempt.exam.title,
        "studentIdCode": attempt.student.student_id_code,
        "submissionStatus": attempt.submission_status,
        "endTime": isoformat(attempt.end_time),
        "resultsReleased": released,
        "resultsReleaseAt": isoformat(attempt.exam.results_release_at),
        "totalScore": attempt.total_score if released else None,
        "correctAnswers": attempt.correct_answers if released else None,
        "totalQuestions": attempt.total_questions if released else None,
        "answers": serialize_answers(attempt) if released else [],
    }


# =====================================================
# ✅ OWN ATTEMPTS (RELEASE GATED)
# =====================================================
@student.get("/student/attempts")
@session_required
def my_attempts():
    attempts = db.session.execute(
        _own_attempts_query(g.user["email"]).order_by(ExamAttempt.end_time.desc())
    ).scalars().all()

    now = utcnow()
    return jsonify({
        "message": "Exam attempts fetched successfully.",
        "data": [_serialize_attempt(a, now) for a in attempts],
    }), 200


# =====================================================
# ✅ PDF REPORT CARD
# =====================================================
@student.get("/student/attempts/<int:attempt_id>/report")
@session_required
def attempt_report(attempt_id):
    attempt = db.session.execute(
        _own_attempts_query(g.user["email"]).where(ExamAttempt.attempt_id == attempt_id)
    ).scalar_one_or_none()

    # Another student's attempt looks the same as a missing one
    if attempt is None:
        return jsonify({"message": "Result not found"}), 404

    if not attempt.exam.results_released():
        return jsonify({"message": "Results for this exam have not been released yet."}), 403

    buffer = io.BytesIO()
    _, height = A4
    c = canvas.Canvas(buffer, pagesize=A4)

    c.setFont("Helvetica-Bold", 18)
    c.drawString(50, height - 50, f"Report Card - {attempt.exam.title}")
    c.setFont("Helvetica", 12)
    c.drawString(50, height - 75, f"Student: {attempt.student.student_id_code} ({attempt.student.email})")

    c.setFont("Helvetica", 14)
    c.drawString(
        50, height - 105,
        f"Score: {attempt.correct_answers} / {attempt.total_questions}  ({attempt.total_score}%)",
    )
    c.drawString(50, height - 125, f"Status: {attempt.submission_status}")

    c.setFont("Helvetica", 11)
    y = height - 155
    for number, answer in enumerate(attempt.answers, start=1):
        chosen = answer.chosen_option.option_text if answer.chosen_option else "-"
        verdict = "Correct" if answer.is_correct else "Wrong"
        c.drawString(50, y, f"Q{number}: Your answer = {chosen[:60]} | {verdict}")
        y -= 18
        if y < 50:
            c.showPage()
            c.setFont("Helvetica", 11)
            y = height - 50

    c.save()
    buffer.seek(0)

    return send_file(
        buffer,
        as_attachment=True,
        download_name=f"attempt_{attempt.attempt_id}_report.pdf",
        mimetype="application/pdf",
    )
