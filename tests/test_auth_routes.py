from datetime import timedelta

from conftest import PASSWORD, SECRET, make_user
from exam_portal.database import db
from exam_portal.models import ConfirmationToken, User
from exam_portal.routes import auth_routes
from exam_portal.utils.dates import utcnow
from exam_portal.utils.session import NEW_TOKEN_HEADER


def _signup(client, email="new@example.com", password=PASSWORD, name="New Person"):
    return client.post("/user/signup", json={"name": name, "email": email, "password": password})


def _token_for(email, purpose=ConfirmationToken.PURPOSE_CONFIRM):
    return db.session.execute(
        db.select(ConfirmationToken).where(
            ConfirmationToken.email == email, ConfirmationToken.purpose == purpose
        )
    ).scalar_one_or_none()


# =====================================================
# SIGN UP
# =====================================================
def test_signup_creates_unconfirmed_user_and_otp(client):
    res = _signup(client, email="New@Example.com")

    assert res.status_code == 201
    body = res.get_json()
    assert body["user"]["email"] == "new@example.com"
    assert body["user"]["confirmed"] is False
    assert "password_hash" not in body["user"]

    token = _token_for("new@example.com")
    assert token is not None
    assert len(token.otp) == 6
    assert token.expires_at > utcnow()


def test_signup_rejects_duplicate_email(client):
    _signup(client)
    res = _signup(client)
    assert res.status_code == 409
    assert res.get_json()["message"] == "Email already exists"


def test_signup_returns_409_when_a_concurrent_signup_wins(client, monkeypatch):
    _signup(client)
    # The duplicate check misses the row the other request just inserted
    monkeypatch.setattr(auth_routes, "_find_user", lambda email: None)

    res = _signup(client)

    assert res.status_code == 409
    assert res.get_json()["message"] == "Email already exists"
    count = db.session.execute(
        db.select(db.func.count(User.id)).where(User.email == "new@example.com")
    ).scalar_one()
    assert count == 1


def test_signup_reports_missing_password_rules(client):
    res = _signup(client, password="weakpass")
    assert res.status_code == 400
    errors = res.get_json()["error"]
    assert "Password must contain at least one uppercase letter" in errors
    assert "Password must contain at least one number" in errors


def test_signup_rejects_bad_name_or_email(client):
    assert _signup(client, name="Al").status_code == 400
    assert _signup(client, email="not-an-email").status_code == 400


# =====================================================
# CONFIRM / RESEND OTP
# =====================================================
def test_confirm_otp_confirms_and_issues_token(client):
    _signup(client)
    code = _token_for("new@example.com").otp

    res = client.post("/confirm-otp", json={"email": "new@example.com", "code": code})

    assert res.status_code == 200
    assert res.get_json()["token"]
    user = db.session.execute(db.select(User).where(User.email == "new@example.com")).scalar_one()
    assert user.confirmed is True
    assert _token_for("new@example.com") is None


def test_confirm_otp_wrong_code_and_expired(client):
    _signup(client)
    token = _token_for("new@example.com")

    res = client.post("/confirm-otp", json={"email": "new@example.com", "code": "000000x"})
    assert res.status_code == 404

    token.expires_at = utcnow() - timedelta(seconds=1)
    db.session.commit()
    res = client.post("/confirm-otp", json={"email": "new@example.com", "code": token.otp})
    assert res.status_code == 400
    assert "expired" in res.get_json()["message"]


def test_resend_otp_is_capped(app, client):
    _signup(client)
    limit = app.config["OTP_RESEND_LIMIT"]

    for _ in range(limit):
        assert client.post("/resend-otp", json={"email": "new@example.com"}).status_code == 200

    res = client.post("/resend-otp", json={"email": "new@example.com"})
    assert res.status_code == 429
    assert res.get_json()["retryAfterMinutes"] >= 1


def test_resend_otp_allowed_again_after_cooldown(app, client):
    _signup(client)
    for _ in range(app.config["OTP_RESEND_LIMIT"]):
        client.post("/resend-otp", json={"email": "new@example.com"})

    token = _token_for("new@example.com")
    token.expires_at = utcnow() - timedelta(minutes=app.config["OTP_COOLDOWN_MINUTES"] + 1)
    db.session.commit()

    res = client.post("/resend-otp", json={"email": "new@example.com"})
    assert res.status_code == 200
    assert _token_for("new@example.com").resend_count == 1


def test_resend_otp_for_confirmed_or_unknown_user(client, student):
    assert client.post("/resend-otp", json={"email": student.email}).status_code == 400
    assert client.post("/resend-otp", json={"email": "ghost@example.com"}).status_code == 404


# =====================================================
# LOGIN
# =====================================================
def test_login_success_returns_token(client, student):
    res = client.post("/user/login", json={"email": student.email, "password": PASSWORD})
    assert res.status_code == 200
    body = res.get_json()
    assert body["token"]
    assert body["user"]["email"] == student.email


def test_login_failures(client, student):
    assert client.post("/user/login", json={"email": "ghost@example.com", "password": PASSWORD}).status_code == 404
    assert client.post("/user/login", json={"email": student.email, "password": "Wrong0ne!"}).status_code == 400
    assert client.post("/user/login", json={"email": "bad", "password": PASSWORD}).status_code == 400


def test_login_requires_confirmed_account(client):
    make_user("pending@example.com", confirmed=False)
    res = client.post("/user/login", json={"email": "pending@example.com", "password": PASSWORD})
    assert res.status_code == 403


# =====================================================
# ADMIN SECRET LOGIN
# =====================================================
def test_admin_secret_login(client, admin):
    res = client.post("/verify-secret", json={"email": admin.email, "secret": SECRET})
    assert res.status_code == 200
    assert res.get_json()["message"] == "Welcome, Boss! Respect o"
    assert res.get_json()["user"]["role"] == "Admin"


def test_admin_secret_login_rejects_students_and_wrong_secret(client, admin, student):
    assert client.post("/verify-secret", json={"email": admin.email, "secret": "654321"}).status_code == 401
    assert client.post("/verify-secret", json={"email": student.email, "secret": SECRET}).status_code == 401
    assert client.post("/verify-secret", json={"email": admin.email}).status_code == 400


def test_admin_secret_login_is_rate_limited(app, client, admin):
    for _ in range(app.config["ADMIN_RATE_LIMIT"]):
        client.post("/verify-secret", json={"email": admin.email, "secret": "000000"})

    res = client.post("/verify-secret", json={"email": admin.email, "secret": SECRET})
    assert res.status_code == 429
    assert res.get_json()["message"] == "Too many attempts, try again later."

    # Counted per client address
    other = client.post(
        "/verify-secret",
        json={"email": admin.email, "secret": SECRET},
        environ_base={"REMOTE_ADDR": "10.0.0.2"},
    )
    assert other.status_code == 200


# =====================================================
# SESSION
# =====================================================
def test_verify_session_refreshes_token(client, student, student_headers):
    res = client.get("/verify-session", headers=student_headers)
    assert res.status_code == 200
    assert res.get_json()["user"]["email"] == student.email
    assert res.headers.get(NEW_TOKEN_HEADER)


def test_verify_session_rejects_missing_and_forged_tokens(client):
    assert client.get("/verify-session").status_code == 401
    res = client.get("/verify-session", headers={"Authorization": "Bearer not.a.token"})
    assert res.status_code == 401
    assert NEW_TOKEN_HEADER not in res.headers


# =====================================================
# FORGOT / RESET PASSWORD
# =====================================================
def test_reset_password_with_code(client, student):
    res = client.post("/forgot-password", json={"email": student.email})
    assert res.status_code == 200
    code = _token_for(student.email, ConfirmationToken.PURPOSE_RESET).otp

    res = client.patch(
        "/reset-password",
        json={"email": student.email, "password": "N3wPassword!", "code": code},
    )
    assert res.status_code == 200

    login = client.post("/user/login", json={"email": student.email, "password": "N3wPassword!"})
    assert login.status_code == 200


def test_reset_password_requires_valid_code(client, student):
    client.post("/forgot-password", json={"email": student.email})
    res = client.patch(
        "/reset-password",
        json={"email": student.email, "password": "N3wPassword!", "code": "bogus"},
    )
    assert res.status_code == 400


def test_reset_password_checks_policy(client, student):
    res = client.patch(
        "/reset-password", json={"email": student.email, "password": "short", "code": "1"}
    )
    assert res.status_code == 400
    assert res.get_json()["requirements"]


def test_forgot_password_does_not_reveal_unknown_emails(client):
    res = client.post("/forgot-password", json={"email": "ghost@example.com"})
    assert res.status_code == 200
