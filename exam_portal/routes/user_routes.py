# exam_portal/routes/user_routes.py

from flask import Blueprint, g, jsonify, request

from exam_portal.database import db
from exam_portal.models import ROLE_ADMIN, ExamAuthorization, Examination, StudentAuthorization, User
from exam_portal.utils.lookup import ById, find_users, user_identifier
from exam_portal.utils.passwords import normalize_email
from exam_portal.utils.session import admin_required, session_required

users = Blueprint("users", __name__)


def _authorized_exams_by_email(emails):
    rows = db.session.execute(
        db.select(StudentAuthorization.email, ExamAuthorization.id, Examination.title)
        .join(ExamAuthorization, StudentAuthorization.exam_auth_id == ExamAuthorization.id)
        .join(Examination, ExamAuthorization.exam_id == Examination.exam_id)
        .where(StudentAuthorization.email.in_(emails))
    ).all()

    grouped = {}
    for email, exam_auth_id, title in rows:
        grouped.setdefault(email, []).append({"id": exam_auth_id, "title": title})
    return grouped


# =====================================================
# LIST USERS (ADMIN)
# =====================================================
@users.get("/users")
@admin_required
def list_users():
    query = request.args.get("query", "").strip()

    stmt = db.select(User).order_by(User.created_at.desc())
    if query:
        pattern = f"%{query}%"
        stmt = stmt.where(db.or_(User.name.ilike(pattern), User.email.ilike(pattern)))
    found = db.session.execute(stmt).scalars().all()

    authorized = _authorized_exams_by_email([u.email for u in found])
    all_exams = db.session.execute(
        db.select(ExamAuthorization.unique_id, Examination.title)
        .join(Examination, ExamAuthorization.exam_id == Examination.exam_id)
    ).all()

    return jsonify({
        "message": "Successfully fetched users and authorization data",
        "data": {
            "users": [
                {**u.to_public(), "authorized_exams": authorized.get(u.email, [])}
                for u in found
            ],
            "all_authorized_exams": [
                {"title": title, "uniqueId": unique_id} for unique_id, title in all_exams
            ],
        },
    }), 200


# =====================================================
# FIND USER BY ID / EMAIL / NAME
# =====================================================
def _lookup_response(lookup):
    found = find_users(lookup)
    if not found:
        return jsonify({"message": "User not found"}), 404
    return jsonify({
        "message": "Successfully fetched",
        "data": [u.to_public() for u in found],
    }), 200


@users.get("/user/<int:user_id>")
@session_required
def get_user_by_id(user_id):
    return _lookup_response(ById(user_id))


@users.get("/user/<identifier>")
@session_required
def get_user(identifier):
    if not identifier.strip():
        return jsonify({"message": "Identifier is required."}), 400
    return _lookup_response(user_identifier(identifier))


# =====================================================
# EDIT NAME
# =====================================================
@users.patch("/edit")
@session_required
def edit_user():
    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get("email")) or g.user["email"]
    name = data.get("name").strip() if isinstance(data.get("name"), str) else ""

    if email != g.user["email"] and g.user["role"] != ROLE_ADMIN:
        return jsonify({"message": "You can only edit your own account"}), 403

    user = db.session.execute(
        db.select(User).where(User.email == email)
    ).scalar_one_or_none()
    if user is None:
        return jsonify({"message": "User not found"}), 404

    if not name:
        return jsonify({"message": "Name field cannot be left empty"}), 400

    user.name = name
    db.session.commit()

    return jsonify({"message": "Name has been changed", "username": user.name}), 200


# =====================================================
# DELETE USER (ADMIN)
# =====================================================
@users.delete("/user/<int:user_id>")
@admin_required
def delete_user(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        return jsonify({"message": "User not found."}), 404

    db.session.delete(user)
    db.session.commit()
    return jsonify({"message": "Account deleted"}), 200
