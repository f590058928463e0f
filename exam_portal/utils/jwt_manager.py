# exam_portal/utils/jwt_manager.py
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

ALGORITHM = "HS256"


def create_token(user_id, email, role):
    hours = current_app.config.get("JWT_EXPIRY_HOURS", 4)
    payload = {
        "userId": user_id,
        "email": email,
        "role": role,
        "exp": datetime.now(timezone.utc) + timedelta(hours=hours),
    }
    return jwt.encode(payload, current_app.config["JWT_SECRET"], algorithm=ALGORITHM)


def decode_token(token):
    return jwt.decode(token, current_app.config["JWT_SECRET"], algorithms=[ALGORITHM])
