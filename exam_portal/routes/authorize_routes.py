# exam_portal/routes/authorize_routes.py

import logging

from flask import Blueprint, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from exam_portal.database import db
from exam_portal.models import ExamAuthorization, Examination, StudentAuthorization, User
from exam_portal.utils.error_handler import is_unique_violation
from exam_portal.utils.generate_id import sequence_from_code
from exam_portal.utils.lookup import ByTitle, find_exam
from exam_portal.utils.passwords import normalize_email
from exam_portal.utils.session import admin_required

logger = logging.getLogger(__name__)

authorize = Blueprint("authorize", __name__)


# =====================================================
# HELPERS
# =====================================================
def _authorization_for_title(title):
    if not isinstance(title, str) or not title.strip():
        return None
    return db.session.execute(
        db.select(ExamAuthorization)
        .join(Examination, ExamAuthorization.exam_id == Examination.exam_id)
        .where(Examination.title == title.strip())
    ).scalar_one_or_none()


def _registered_emails(emails):
    if not emails:
        return set()
    return set(
        db.session.execute(db.select(User.email).where(User.email.in_(emails))).scalars()
    )


def _student_by_code(exam_auth, code):
    """Authorized student addressed by the trailing number of ``code``.

    Raises ValueError for a malformed code.
    """
    sequential_num = sequence_from_code(code)
    return db.session.execute(
        db.select(StudentAuthorization).where(
            StudentAuthorization.exam_auth_id == exam_auth.id,
            StudentAuthorization.sequential_num == sequential_num,
        )
    ).scalar_one_or_none()


# =====================================================
# ✅ LIST AUTHORIZED EXAMS + STUDENTS
# =====================================================
@authorize.get("/authorized")
@admin_required
def list_authorized():
    records = db.session.execute(
        db.select(ExamAuthorization).order_by(ExamAuthorization.id)
    ).scalars().all()

    if not records:
        return jsonify({"message": "No Data to display", "data": []}), 404

    return jsonify({"message": "Fetch successful!", "data": [r.to_dict() for r in records]}), 200


# =====================================================
# ✅ CREATE EXAM AUTHORIZATION RECORD
# =====================================================
@authorize.post("/authorize-student")
@admin_required
def create_authorization():
    data = request.get_json(silent=True) or {}
    title = data.get("title")
    unique_id = data.get("id")

    if not isinstance(title, str) or not title.strip() or not isinstance(unique_id, str) or not unique_id.strip():
        return jsonify({"message": "Must provide valid title and ID."}), 400

    exam_obj = find_exam(ByTitle(title.strip()))
    if exam_obj is None:
        return jsonify({"message": f"Exam '{title}' not found in the examination catalog."}), 404

    try:
        record = ExamAuthorization(exam_id=exam_obj.exam_id, unique_id=unique_id.strip())
        db.session.add(record)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        if is_unique_violation(e):
            return jsonify({"message": "Exam authorization record already exists for this title/ID."}), 409
        logger.exception("Creating authorization for %s failed", title)
        return jsonify({"message": "An error occurred"}), 500

    return jsonify({
        "message": "Successfully created exam authorization record and sequence",
        "data": {"id": record.unique_id, "exam": exam_obj.title, "students": []},
    }), 201


# =====================================================
# ✅ ADD STUDENTS BY EMAIL
# =====================================================
@authorize.post("/authorize-student/email")
@admin_required
def add_students():
    data = request.get_json(silent=True) or {}
    emails = data.get("emails")
    emails = emails if isinstance(emails, list) else [emails]
    emails = [normalize_email(e) for e in emails if normalize_email(e)]

    if not emails:
        return jsonify({"message": "You must provide student's email(s)"}), 400

    record = _authorization_for_title(data.get("title"))
    if record is None:
        return jsonify({"message": "Exam authorization record not found."}), 404

    already = {s.email for s in record.students}
    # dict keeps the caller's order while dropping repeats
    to_process = [e for e in dict.fromkeys(emails) if e not in already]

    if not to_process:
        return jsonify({
            "message": "All provided users are already authorized.",
            "data": record.to_dict(),
        }), 200

    registered = _registered_emails(to_process)
    unregistered = [e for e in to_process if e not in registered]
    to_authorize = [e for e in to_process if e in registered]

    if not to_authorize:
        return jsonify({
            "message": "None of the provided emails are registered users or new to this exam.",
            "unregistered_emails": unregistered,
        }), 400

    inserted = []
    try:
        for email in to_authorize:
            student = StudentAuthorization(
                exam_auth_id=record.id,
                email=email,
                sequential_num=record.next_sequence(),
            )
            db.session.add(student)
            inserted.append(student)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Authorizing students for exam %s failed", record.exam_id)
        return jsonify({"message": "Server error during transaction"}), 500

    db.session.refresh(record)
    body = {
        "message": f"Successfully added {len(inserted)} registered user(s) to existing exam.",
        "data": record.to_dict(),
        "added": [s.to_dict() for s in inserted],
    }
    if unregistered:
        body["warning"] = f"{len(unregistered)} email(s) were skipped as they are not registered users."
        body["unregistered_emails_skipped"] = unregistered

    return jsonify(body), 200


# =====================================================
# ✅ UPDATE STUDENT EMAIL
# =====================================================
@authorize.patch("/authorize-student")
@admin_required
def update_student_email():
    data = request.get_json(silent=True) or {}
    title = data.get("title")
    new_email = normalize_email(data.get("students"))
    code = data.get("id")

    if not code or not title or not new_email:
        return jsonify({"message": "Missing required fields (id, title, newEmail)."}), 400

    if not _registered_emails([new_email]):
        return jsonify({"message": "Cannot update: New email is not a registered user."}), 400

    record = _authorization_for_title(title)
    if record is None:
        return jsonify({"message": "Exam authorization record hasn't been created"}), 404

    try:
        student = _student_by_code(record, code)
    except ValueError:
        return jsonify({"message": "Invalid student ID code format or missing sequence number."}), 400

    if student is None:
        return jsonify({"message": "User doesn't exist for this exam or ID is incorrect"}), 404

    try:
        student.email = new_email
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        if is_unique_violation(e):
            return jsonify({"message": "That email is already authorized for this exam."}), 409
        logger.exception("Updating authorized email failed")
        return jsonify({"message": "An error occurred"}), 500

    return jsonify({"message": "Successfully changed the student's email"}), 200


# =====================================================
# ✅ DELETE STUDENT
# =====================================================
@authorize.delete("/authorize-student")
@admin_required
def delete_student():
    data = request.get_json(silent=True) or {}
    title = data.get("title")
    code = data.get("id")

    if not isinstance(code, str) or not code or not title:
        return jsonify({"message": "Must provide Student's ID and exam title."}), 400

    record = _authorization_for_title(title)
    if record is None:
        return jsonify({"message": "Exam doesn't exist in student authorization"}), 404

    try:
        student = _student_by_code(record, code)
    except ValueError:
        return jsonify({"message": "Invalid student ID code format or missing sequence number."}), 400

    if student is None:
        return jsonify({"message": "Student doesn't exist for this exam or ID is incorrect"}), 404

    # The sequence is never rewound, so the number stays retired
    db.session.delete(student)
    db.session.commit()

    return jsonify({"message": "Successfully deleted Student's data"}), 200


# =====================================================
# ✅ CHANGE EXAM ID PREFIX
# =====================================================
@authorize.patch("/authorize-exam-id")
@admin_required
def update_exam_prefix():
    data = request.get_json(silent=True) or {}
    title = data.get("title")
    new_id = data.get("newId")

    if not isinstance(title, str) or not title or not isinstance(new_id, str) or not new_id.strip():
        return jsonify({"message": "Must provide a valid exam title and new unique ID."}), 400

    record = _authorization_for_title(title)
    if record is None:
        return jsonify({"message": f"Exam authorization record not found for title: {title}"}), 404

    old_id = record.unique_id
    try:
        record.unique_id = new_id.strip()
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        if is_unique_violation(e):
            return jsonify({
                "message": f"The new ID prefix '{new_id}' is already in use by another authorized exam."
            }), 409
        logger.exception("Updating authorized exam ID failed")
        return jsonify({"message": "Server error during ID update."}), 500

    return jsonify({
        "message": f"Exam ID prefix successfully updated from {old_id} to {record.unique_id}.",
        "data": {"id": record.unique_id, "exam": record.exam.title},
    }), 200
