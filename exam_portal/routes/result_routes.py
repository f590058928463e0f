# exam_portal/routes/result_routes.py

import io
import logging
import re

import pandas as pd
from flask import Blueprint, g, jsonify, request, send_file
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import selectinload

from exam_portal.database import db
from exam_portal.models import (
    STATUS_COMPLETED,
    SUBMISSION_STATUSES,
    AttemptAnswer,
    ExamAttempt,
    ExamAuthorization,
    Examination,
    Option,
    Question,
    StudentAuthorization,
    Subject,
    User,
)
from exam_portal.utils.dates import isoformat, parse_timestamp, utcnow
from exam_portal.utils.error_handler import is_unique_violation
from exam_portal.utils.session import admin_required, session_required

logger = logging.getLogger(__name__)

result = Blueprint("result", __name__)


# =====================================================
# HELPERS
# =====================================================
def _is_id(value):
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def find_student_authorization(exam_id, email):
    return db.session.execute(
        db.select(StudentAuthorization)
        .join(ExamAuthorization, StudentAuthorization.exam_auth_id == ExamAuthorization.id)
        .where(ExamAuthorization.exam_id == exam_id, StudentAuthorization.email == email)
    ).scalar_one_or_none()


def exam_answer_key(exam_id):
    """Map every question of the exam to its correct option id (None if unset)
    and to the set of option ids it owns."""
    rows = db.session.execute(
        db.select(Question.question_id, Option.option_id, Option.is_correct)
        .join(Subject, Question.subject_id == Subject.subject_id)
        .outerjoin(Option, Option.question_id == Question.question_id)
        .where(Subject.exam_id == exam_id)
        .order_by(Question.question_id, Option.option_id)
    ).all()

    key, owned = {}, {}
    for question_id, option_id, is_correct in rows:
        key.setdefault(question_id, None)
        owned.setdefault(question_id, set())
        if option_id is None:
            continue
        owned[question_id].add(option_id)
        if is_correct and key[question_id] is None:
            key[question_id] = option_id
    return key, owned


def score_answers(answers, answer_key, owned_options):
    """Grade submitted answers against the key.

    Returns ``(graded, correct)``; raises ValueError for answers that do not
    belong to the exam.
    """
    graded = []
    seen = set()
    for answer in answers:
        if not isinstance(answer, dict):
            raise ValueError("Each answer must be an object.")
        question_id = answer.get("questionId")
        chosen = answer.get("chosenOptionId")

        if not _is_id(question_id):
            raise ValueError("Each answer needs a numeric questionId.")
        if chosen is not None and not _is_id(chosen):
            raise ValueError("chosenOptionId must be a numeric option id or null.")
        if question_id not in answer_key:
            raise ValueError(f"Question {question_id} does not belong to this exam.")
        if question_id in seen:
            raise ValueError(f"Question {question_id} was answered more than once.")
        if chosen is not None and chosen not in owned_options[question_id]:
            raise ValueError(f"Option {chosen} is not an option of question {question_id}.")
        seen.add(question_id)

        is_correct = chosen is not None and chosen == answer_key[question_id]
        graded.append({
            "question_id": question_id,
            "chosen_option_id": chosen,
            "is_correct": is_correct,
            "score_awarded": 1.0 if is_correct else 0.0,
        })

    correct = sum(1 for a in graded if a["is_correct"])
    return graded, correct


def final_score(correct, total):
    return round(correct / total * 100, 2) if total else 0.0


def _existing_attempt(student_auth_id, exam_id):
    return db.session.execute(
        db.select(ExamAttempt).where(
            ExamAttempt.student_auth_id == student_auth_id,
            ExamAttempt.exam_id == exam_id,
        )
    ).scalar_one_or_none()


def serialize_answers(attempt):
    return [
        {
            "questionId": a.question_id,
            "questionText": a.question.question_text if a.question else None,
            "chosenOptionId": a.chosen_option_id,
            "chosenOptionText": a.chosen_option.option_text if a.chosen_option else None,
            "isCorrect": a.is_correct,
            "scoreAwarded": a.score_awarded,
        }
        for a in attempt.answers
    ]


def _summary_rows(exam_id):
    rows = db.session.execute(
        db.select(ExamAttempt, User.name)
        .join(StudentAuthorization, ExamAttempt.student_auth_id == StudentAuthorization.id)
        .outerjoin(User, User.email == StudentAuthorization.email)
        .where(ExamAttempt.exam_id == exam_id)
        .options(
            selectinload(ExamAttempt.student).selectinload(StudentAuthorization.exam_authorization),
            selectinload(ExamAttempt.answers).selectinload(AttemptAnswer.question),
            selectinload(ExamAttempt.answers).selectinload(AttemptAnswer.chosen_option),
        )
        .order_by(ExamAttempt.end_time.desc())
    ).all()

    return [
        {
            "attemptId": attempt.attempt_id,
            "studentIdCode": attempt.student.student_id_code,
            "studentName": name,
            "studentEmail": attempt.student.email,
            "totalScore": attempt.total_score,
            "correctAnswers": attempt.correct_answers,
            "totalQuestions": attempt.total_questions,
            "submissionStatus": attempt.submission_status,
            "endTime": isoformat(attempt.end_time),
            "answers": serialize_answers(attempt),
        }
        for attempt, name in rows
    ]


# =====================================================
# ✅ SUBMIT RESULTS
# =====================================================
@result.post("/results/submit")
@session_required
def submit_results():
    data = request.get_json(silent=True) or {}
    exam_id = data.get("examId")
    answers = data.get("answers")
    status = data.get("status") or STATUS_COMPLETED

    if not _is_id(exam_id) or not isinstance(answers, list):
        return jsonify({"message": "Missing required fields: examId or answers."}), 400

    if status not in SUBMISSION_STATUSES:
        return jsonify({"message": f"Invalid submission status: {status}"}), 400

    try:
        end_time = parse_timestamp(data["endTime"]) if data.get("endTime") else utcnow()
    except ValueError:
        return jsonify({"message": "endTime must be a valid ISO-8601 timestamp."}), 400

    exam_obj = db.session.get(Examination, exam_id)
    if exam_obj is None:
        return jsonify({"message": "Exam not found."}), 404

    email = g.user["email"]
    student = find_student_authorization(exam_id, email)
    if student is None:
        return jsonify({"message": "You are not authorized to take this exam."}), 403

    answer_key, owned_options = exam_answer_key(exam_id)
    total = len(answer_key)
    if total == 0:
        return jsonify({"message": "Exam has no questions defined."}), 400

    try:
        graded, correct = score_answers(answers, answer_key, owned_options)
    except ValueError as e:
        return jsonify({"message": str(e)}), 400

    score = final_score(correct, total)

    try:
        attempt = ExamAttempt(
            student_auth_id=student.id,
            exam_id=exam_id,
            total_score=score,
            total_questions=total,
            correct_answers=correct,
            submission_status=status,
            end_time=end_time,
            answers=[AttemptAnswer(**a) for a in graded],
        )
        db.session.add(attempt)
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        if not is_unique_violation(e):
            logger.exception("Saving exam results failed for %s", email)
            return jsonify({"message": "Failed to save exam results."}), 500

        existing = _existing_attempt(student.id, exam_id)
        return jsonify({
            "message": "You have already submitted this exam.",
            "data": {
                "attemptId": existing.attempt_id if existing else None,
                "finalScore": existing.total_score if existing else None,
            },
        }), 409
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Saving exam results failed for %s", email)
        return jsonify({"message": "Failed to save exam results."}), 500

    logger.info("Exam %s submitted by %s: %s%%", exam_id, email, score)

    return jsonify({
        "message": "Exam results saved successfully.",
        "data": {
            "attemptId": attempt.attempt_id,
            "finalScore": score,
            "correctAnswers": correct,
            "totalQuestions": total,
            "submissionStatus": status,
            "studentIdCode": student.student_id_code,
        },
    }), 201


# =====================================================
# ✅ CHECK ELIGIBILITY
# =====================================================
@result.get("/check/<int:exam_id>")
@session_required
def check_attempt(exam_id):
    exam_obj = db.session.get(Examination, exam_id)
    if exam_obj is None:
        return jsonify({"message": "Exam not found."}), 404

    student = find_student_authorization(exam_id, g.user["email"])
    attempt = _existing_attempt(student.id, exam_id) if student else None

    return jsonify({
        "message": "Attempt status fetched",
        "data": {
            "examId": exam_id,
            "authorized": student is not None,
            "studentIdCode": student.student_id_code if student else None,
            "attempted": attempt is not None,
            "submissionStatus": attempt.submission_status if attempt else None,
            "canAttempt": student is not None and attempt is None,
        },
    }), 200


# =====================================================
# ✅ EXAMS WITH ATTEMPT COUNTS (ADMIN)
# =====================================================
@result.get("/results/exams")
@admin_required
def result_exams():
    rows = db.session.execute(
        db.select(
            Examination.exam_id,
            Examination.title,
            db.func.count(ExamAttempt.attempt_id),
        )
        .outerjoin(ExamAttempt, ExamAttempt.exam_id == Examination.exam_id)
        .group_by(Examination.exam_id, Examination.title)
        .order_by(Examination.title)
    ).all()

    return jsonify({
        "message": "Exams fetched successfully.",
        "data": [
            {"exam_id": exam_id, "title": title, "attempts": count}
            for exam_id, title, count in rows
        ],
    }), 200


# =====================================================
# ✅ PER-EXAM SUMMARY (ADMIN)
# =====================================================
@result.get("/results/summary/<int:exam_id>")
@admin_required
def result_summary(exam_id):
    exam_obj = db.session.get(Examination, exam_id)
    if exam_obj is None:
        return jsonify({"message": "Exam not found."}), 404

    return jsonify({
        "message": "Exam summary fetched successfully.",
        "data": {
            "exam": exam_obj.to_dict(),
            "attempts": _summary_rows(exam_id),
        },
    }), 200


# =====================================================
# ✅ EXPORT SUMMARY → EXCEL (ADMIN)
# =====================================================
@result.get("/results/summary/<int:exam_id>/export")
@admin_required
def export_summary(exam_id):
    exam_obj = db.session.get(Examination, exam_id)
    if exam_obj is None:
        return jsonify({"message": "Exam not found."}), 404

    rows = [
        [
            r["studentIdCode"],
            r["studentName"] or "",
            r["studentEmail"],
            r["correctAnswers"],
            r["totalQuestions"],
            r["totalScore"],
            r["submissionStatus"],
            r["endTime"],
        ]
        for r in _summary_rows(exam_id)
    ]

    if not rows:
        return jsonify({"message": "No results found"}), 404

    df = pd.DataFrame(
        rows,
        columns=[
            "Student ID", "Name", "Email", "Correct",
            "Total", "Score", "Status", "Submitted At",
        ],
    )

    buffer = io.BytesIO()
    df.to_excel(buffer, index=False, sheet_name="Results")
    buffer.seek(0)

    filename = re.sub(r"[^A-Za-z0-9_-]+", "_", exam_obj.title).strip("_") or str(exam_id)
    return send_file(
        buffer,
        as_attachment=True,
        download_name=f"{filename}_results.xlsx",
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )
