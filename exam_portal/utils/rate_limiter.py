# exam_portal/utils/rate_limiter.py
from flask import current_app
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Storage comes from RATELIMIT_STORAGE_URI at init_app time
limiter = Limiter(key_func=get_remote_address)


def admin_login_limit():
    """Limit string for the admin secret login, e.g. ``10 per 15 minutes``."""
    config = current_app.config
    return f"{config['ADMIN_RATE_LIMIT']} per {config['ADMIN_RATE_WINDOW_MINUTES']} minutes"
