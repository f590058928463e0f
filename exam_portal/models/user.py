# exam_portal/models/user.py
from werkzeug.security import generate_password_hash, check_password_hash

from exam_portal.database import db
from exam_portal.utils.dates import utcnow

ROLE_STUDENT = "Student"
ROLE_ADMIN = "Admin"


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.BigInteger, primary_key=True, autoincrement=False)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default=ROLE_STUDENT)
    confirmed = db.Column(db.Boolean, nullable=False, default=False)
    is_logged_in = db.Column(db.Boolean, nullable=False, default=False)
    secret_hash = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    tokens = db.relationship(
        "ConfirmationToken",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def set_password(self, raw):
        self.password_hash = generate_password_hash(raw)

    def check_password(self, raw):
        return check_password_hash(self.password_hash, raw)

    def set_secret(self, raw):
        self.secret_hash = generate_password_hash(raw)

    def check_secret(self, raw):
        if not self.secret_hash:
            return False
        return check_password_hash(self.secret_hash, raw)

    @property
    def is_admin(self):
        return self.role == ROLE_ADMIN

    def to_public(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "confirmed": self.confirmed,
            "logged": self.is_logged_in,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class ConfirmationToken(db.Model):
    __tablename__ = "confirmation_tokens"
    __table_args__ = (db.UniqueConstraint("user_id", "purpose"),)

    PURPOSE_CONFIRM = "confirm"
    PURPOSE_RESET = "reset"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.BigInteger, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    email = db.Column(db.String(255), nullable=False, index=True)
    otp = db.Column(db.String(12), nullable=False)
    purpose = db.Column(db.String(20), nullable=False, default=PURPOSE_CONFIRM)
    resend_count = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime, nullable=False)

    user = db.relationship("User", back_populates="tokens")

    def is_expired(self, now=None):
        return (now or utcnow()) >= self.expires_at
