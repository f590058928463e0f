# exam_portal/config.py
import os

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.dirname(os.path.abspath(__file__))


def _database_url():
    url = os.getenv("DATABASE_URL")
    if not url:
        return "sqlite:///" + os.path.join(BASE_DIR, "exam_portal.db")
    # SQLAlchemy only accepts the postgresql:// scheme
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url


def _csv(value):
    return [item.strip() for item in value.split(",") if item.strip()]


class Config:
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    JWT_SECRET = os.getenv("JWT_SECRET", "CHANGE_THIS_SECRET")
    JWT_EXPIRY_HOURS = int(os.getenv("JWT_EXPIRY_HOURS", "4"))

    CORS_ORIGINS = _csv(os.getenv("CORS_ORIGINS", "*"))

    MAIL_PROVIDER = os.getenv("MAIL_PROVIDER", "console")
    MAIL_FROM = os.getenv("MAIL_FROM", "no-reply@react-email.live")
    RESEND_API_KEY = os.getenv("RESEND_API_KEY")
    SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USER = os.getenv("SMTP_USER")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")

    OTP_EXPIRY_MINUTES = int(os.getenv("OTP_EXPIRY_MINUTES", "2"))
    OTP_RESEND_LIMIT = int(os.getenv("OTP_RESEND_LIMIT", "3"))
    OTP_COOLDOWN_MINUTES = int(os.getenv("OTP_COOLDOWN_MINUTES", "5"))

    ADMIN_RATE_LIMIT = int(os.getenv("ADMIN_RATE_LIMIT", "10"))
    ADMIN_RATE_WINDOW_MINUTES = int(os.getenv("ADMIN_RATE_WINDOW_MINUTES", "15"))
    # memory:// counts per process
    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")
    RATELIMIT_HEADERS_ENABLED = True

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    JWT_SECRET = "test-secret"
    MAIL_PROVIDER = "console"
    LOG_LEVEL = "WARNING"
