# exam_portal/utils/session.py
import logging
from functools import wraps

import jwt
from flask import g, jsonify, make_response, request

from exam_portal.models import ROLE_ADMIN
from exam_portal.utils.jwt_manager import create_token, decode_token

logger = logging.getLogger(__name__)

NEW_TOKEN_HEADER = "X-New-Token"


def _bearer_token(req):
    header = req.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        return header[len("Bearer "):].strip()
    return ""


def _load_identity():
    """Decode the bearer token into ``g.user``; False on any failure."""
    token = _bearer_token(request)
    if not token:
        return False
    try:
        claims = decode_token(token)
    except jwt.PyJWTError as e:
        logger.debug("Session validation failed: %s", e)
        return False
    if not claims.get("email") or claims.get("userId") is None:
        return False
    g.user = {
        "userId": claims["userId"],
        "email": claims["email"],
        "role": claims.get("role"),
    }
    return True


def _with_refreshed_token(rv):
    response = make_response(rv)
    response.headers[NEW_TOKEN_HEADER] = create_token(
        g.user["userId"], g.user["email"], g.user["role"]
    )
    return response


def session_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        if not _load_identity():
            # Same answer for missing, expired and forged tokens
            return jsonify({"message": "Session expired or invalid. Please log in again."}), 401
        return _with_refreshed_token(view(*args, **kwargs))

    return wrapper


def admin_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        if not _load_identity():
            return jsonify({"message": "Session expired or invalid. Please log in again."}), 401
        if g.user["role"] != ROLE_ADMIN:
            return _with_refreshed_token(
                (jsonify({"message": "You're not authorized to access this page."}), 403)
            )
        return _with_refreshed_token(view(*args, **kwargs))

    return wrapper
