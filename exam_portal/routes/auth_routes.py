# exam_portal/routes/auth_routes.py

import logging
import math
from datetime import timedelta

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from exam_portal.database import db
from exam_portal.models import ROLE_ADMIN, ROLE_STUDENT, ConfirmationToken, User
from exam_portal.utils.dates import utcnow
from exam_portal.utils.error_handler import is_unique_violation
from exam_portal.utils.generate_id import generate_id
from exam_portal.utils.jwt_manager import create_token
from exam_portal.utils.mailer import send_otp_mail
from exam_portal.utils.passwords import is_valid_email, normalize_email, password_errors
from exam_portal.utils.rate_limiter import admin_login_limit, limiter
from exam_portal.utils.session import session_required

logger = logging.getLogger(__name__)

auth = Blueprint("auth", __name__)

USER_ID_LENGTH = 9
OTP_LENGTH = 6


def _text(data, key):
    value = data.get(key)
    return value.strip() if isinstance(value, str) else ""


def _new_user_id():
    while True:
        user_id = generate_id(USER_ID_LENGTH)
        if db.session.get(User, user_id) is None:
            return user_id


def _find_user(email):
    return db.session.execute(
        db.select(User).where(User.email == email)
    ).scalar_one_or_none()


def _find_token(user_id, purpose):
    return db.session.execute(
        db.select(ConfirmationToken).where(
            ConfirmationToken.user_id == user_id,
            ConfirmationToken.purpose == purpose,
        )
    ).scalar_one_or_none()


def _issue_otp(user, purpose, resend_count=0):
    """Create or refresh the user's OTP for ``purpose``; caller commits."""
    now = utcnow()
    minutes = current_app.config["OTP_EXPIRY_MINUTES"]
    token = _find_token(user.id, purpose)
    if token is None:
        token = ConfirmationToken(user_id=user.id, email=user.email, purpose=purpose)
        db.session.add(token)

    token.otp = str(generate_id(OTP_LENGTH))
    token.resend_count = resend_count
    token.created_at = now
    token.expires_at = now + timedelta(minutes=minutes)
    return token


# =====================================================
# ✅ SIGN UP
# =====================================================
@auth.post("/user/signup")
def signup():
    data = request.get_json(silent=True) or {}

    name = _text(data, "name")
    email = normalize_email(data.get("email"))
    password = data.get("password") if isinstance(data.get("password"), str) else ""

    if not (3 <= len(name) <= 24) or not password or not is_valid_email(email):
        return jsonify({"message": "Invalid Credentials"}), 400

    # ❌ Duplicate email check
    if _find_user(email):
        return jsonify({"message": "Email already exists"}), 409

    errors = password_errors(password)
    if errors:
        return jsonify({"message": "Password doesn't meet requirements", "error": errors}), 400

    user = User(id=_new_user_id(), name=name, email=email, role=ROLE_STUDENT)
    user.set_password(password)
    try:
        db.session.add(user)
        db.session.flush()
        token = _issue_otp(user, ConfirmationToken.PURPOSE_CONFIRM)
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        # Lost a race with a concurrent signup for the same address
        if is_unique_violation(e):
            return jsonify({"message": "Email already exists"}), 409
        logger.exception("Creating account for %s failed", email)
        return jsonify({"message": "An error occured"}), 500

    logger.info("New account created for %s", email)
    send_otp_mail(email, token.otp, current_app.config["OTP_EXPIRY_MINUTES"])

    return jsonify({
        "message": "Account created. Check your mail to confirm.",
        "user": user.to_public(),
    }), 201


# =====================================================
# ✅ CONFIRM OTP
# =====================================================
@auth.post("/confirm-otp")
def confirm_otp():
    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get("email"))
    code = str(data.get("code") or "").strip()

    if not email or not code:
        return jsonify({"message": "Email and otp can't be empty"}), 400

    token = db.session.execute(
        db.select(ConfirmationToken).where(
            ConfirmationToken.email == email,
            ConfirmationToken.otp == code,
            ConfirmationToken.purpose == ConfirmationToken.PURPOSE_CONFIRM,
        )
    ).scalar_one_or_none()
    if token is None:
        return jsonify({"message": "No confirmation token found for this user"}), 404

    if token.is_expired():
        return jsonify({"message": "OTP has expired. Request new OTP"}), 400

    user = token.user
    user.confirmed = True
    user.is_logged_in = True
    db.session.delete(token)
    db.session.commit()

    return jsonify({
        "message": "Account confirmation successful",
        "token": create_token(user.id, user.email, user.role),
    }), 200


# =====================================================
# ✅ RESEND OTP
# =====================================================
@auth.post("/resend-otp")
def resend_otp():
    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get("email"))

    user = _find_user(email) if email else None
    if user is None:
        return jsonify({"message": "User not found"}), 404

    if user.confirmed:
        return jsonify({"message": "Account is already confirmed"}), 400

    limit = current_app.config["OTP_RESEND_LIMIT"]
    cooldown = timedelta(minutes=current_app.config["OTP_COOLDOWN_MINUTES"])
    existing = _find_token(user.id, ConfirmationToken.PURPOSE_CONFIRM)

    resend_count = 1
    if existing is not None:
        if existing.resend_count >= limit:
            cooldown_until = existing.expires_at + cooldown
            now = utcnow()
            if now < cooldown_until:
                wait = math.ceil((cooldown_until - now).total_seconds() / 60)
                return jsonify({
                    "message": f"Too many resend attempts. Please wait {wait} minutes.",
                    "retryAfterMinutes": wait,
                }), 429
        else:
            resend_count = existing.resend_count + 1

    token = _issue_otp(user, ConfirmationToken.PURPOSE_CONFIRM, resend_count)
    db.session.commit()
    send_otp_mail(email, token.otp, current_app.config["OTP_EXPIRY_MINUTES"])

    return jsonify({"message": "New OTP sent successfully"}), 200


# =====================================================
# ✅ LOGIN
# =====================================================
@auth.post("/user/login")
def login():
    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get("email"))
    password = data.get("password")

    if not is_valid_email(email) or not isinstance(password, str) or not password:
        return jsonify({"message": "Invalid credentials"}), 400

    user = _find_user(email)
    if user is None:
        return jsonify({"message": "User does not exist"}), 404

    if not user.check_password(password):
        return jsonify({"message": "Password is incorrect"}), 400

    if not user.confirmed:
        return jsonify({"message": "Your account is not confirmed."}), 403

    user.is_logged_in = True
    db.session.commit()

    return jsonify({
        "message": "Login successful",
        "user": user.to_public(),
        "token": create_token(user.id, user.email, user.role),
    }), 200


# =====================================================
# ✅ ADMIN LOGIN (SECRET)
# =====================================================
@auth.post("/verify-secret")
@limiter.limit(admin_login_limit)
def verify_secret():
    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get("email"))
    secret = data.get("secret")

    if not email or not secret:
        return jsonify({"message": "Email and secret are required"}), 400

    admin = db.session.execute(
        db.select(User).where(User.email == email, User.role == ROLE_ADMIN)
    ).scalar_one_or_none()

    # Same answer whether the email or the secret is wrong
    if admin is None or not admin.check_secret(str(secret)):
        return jsonify({"message": "Invalid credentials"}), 401

    admin.is_logged_in = True
    db.session.commit()
    logger.info("Admin %s signed in", email)

    return jsonify({
        "message": "Welcome, Boss! Respect o",
        "token": create_token(admin.id, admin.email, admin.role),
        "user": {
            "id": admin.id,
            "name": admin.name,
            "email": admin.email,
            "role": admin.role,
        },
    }), 200


# =====================================================
# ✅ VERIFY SESSION
# =====================================================
@auth.get("/verify-session")
@session_required
def verify_session():
    user = db.session.get(User, g.user["userId"])
    if user is None:
        return jsonify({"message": "User not found."}), 404

    return jsonify({
        "message": "Session is valid.",
        "user": {"id": user.id, "name": user.name, "email": user.email, "role": user.role},
    }), 200


# =====================================================
# ✅ FORGOT / RESET PASSWORD
# =====================================================
@auth.post("/forgot-password")
def forgot_password():
    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get("email"))

    if not is_valid_email(email):
        return jsonify({"message": "Invalid email address."}), 400

    user = _find_user(email)
    if user is not None:
        token = _issue_otp(user, ConfirmationToken.PURPOSE_RESET)
        db.session.commit()
        send_otp_mail(
            email, token.otp, current_app.config["OTP_EXPIRY_MINUTES"], purpose="reset"
        )

    return jsonify({
        "message": "If the email exists, a password reset code has been sent. Check your inbox."
    }), 200


@auth.patch("/reset-password")
def reset_password():
    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get("email"))
    password = data.get("password")
    code = str(data.get("code") or "").strip()

    if not email or not isinstance(password, str):
        return jsonify({"message": "Email and password are required"}), 400

    user = _find_user(email)
    if user is None:
        return jsonify({"message": "User not found"}), 404

    errors = password_errors(password)
    if errors:
        return jsonify({
            "message": "Password does not meet requirements",
            "requirements": errors,
        }), 400

    token = _find_token(user.id, ConfirmationToken.PURPOSE_RESET)
    if token is None or not code or token.otp != code or token.is_expired():
        return jsonify({"message": "Invalid or expired reset code."}), 400

    try:
        user.set_password(password)
        db.session.delete(token)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Password reset failed for %s", email)
        return jsonify({"message": "An error occured"}), 500

    return jsonify({"message": "Password has been changed"}), 200
