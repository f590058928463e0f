from conftest import authorize_students, make_exam, make_user
from exam_portal.database import db
from exam_portal.models import ExamAuthorization, StudentAuthorization
from exam_portal.utils.dates import utcnow

YEAR = utcnow().year % 100


def _code(prefix, n):
    return f"{prefix}/{YEAR:02d}/{n:04d}"


def test_create_authorization_record(client, admin_headers):
    make_exam()

    res = client.post("/authorize-student", json={"title": "Physics 101", "id": "UI/PM"}, headers=admin_headers)
    assert res.status_code == 201
    assert res.get_json()["data"] == {"id": "UI/PM", "exam": "Physics 101", "students": []}

    dup = client.post("/authorize-student", json={"title": "Physics 101", "id": "OTHER"}, headers=admin_headers)
    assert dup.status_code == 409

    missing = client.post("/authorize-student", json={"title": "Nope", "id": "X"}, headers=admin_headers)
    assert missing.status_code == 404


def test_add_students_assigns_sequential_codes(client, admin_headers):
    make_exam()
    make_user("a@example.com")
    make_user("b@example.com")
    client.post("/authorize-student", json={"title": "Physics 101", "id": "UI/PM"}, headers=admin_headers)

    res = client.post(
        "/authorize-student/email",
        json={"title": "Physics 101", "emails": ["A@example.com", "b@example.com", "ghost@example.com"]},
        headers=admin_headers,
    )

    assert res.status_code == 200
    body = res.get_json()
    assert body["data"]["students"] == [
        {"id": _code("UI/PM", 1), "email": "a@example.com"},
        {"id": _code("UI/PM", 2), "email": "b@example.com"},
    ]
    assert body["unregistered_emails_skipped"] == ["ghost@example.com"]
    assert "warning" in body


def test_add_students_edge_cases(client, admin_headers):
    make_exam()
    make_user("a@example.com")
    client.post("/authorize-student", json={"title": "Physics 101", "id": "UI/PM"}, headers=admin_headers)

    only_ghosts = client.post(
        "/authorize-student/email",
        json={"title": "Physics 101", "emails": ["ghost@example.com"]},
        headers=admin_headers,
    )
    assert only_ghosts.status_code == 400

    client.post(
        "/authorize-student/email",
        json={"title": "Physics 101", "emails": ["a@example.com"]},
        headers=admin_headers,
    )
    again = client.post(
        "/authorize-student/email",
        json={"title": "Physics 101", "emails": ["a@example.com"]},
        headers=admin_headers,
    )
    assert again.status_code == 200
    assert again.get_json()["message"] == "All provided users are already authorized."


def test_deleted_numbers_are_not_reused(client, admin_headers):
    exam = make_exam()
    for email in ("a@example.com", "b@example.com", "c@example.com"):
        make_user(email)
    authorize_students(exam, "UI/PM", ["a@example.com", "b@example.com"])

    res = client.delete(
        "/authorize-student",
        json={"title": "Physics 101", "id": _code("UI/PM", 2)},
        headers=admin_headers,
    )
    assert res.status_code == 200

    client.post(
        "/authorize-student/email",
        json={"title": "Physics 101", "emails": ["c@example.com"]},
        headers=admin_headers,
    )
    numbers = db.session.execute(
        db.select(StudentAuthorization.sequential_num).order_by(StudentAuthorization.sequential_num)
    ).scalars().all()
    assert numbers == [1, 3]


def test_sequences_are_independent_per_exam(app):
    physics = make_exam()
    chemistry = make_exam(title="Chemistry")
    make_user("a@example.com")

    _, first = authorize_students(physics, "PHY", ["a@example.com"])
    _, second = authorize_students(chemistry, "CHE", ["a@example.com"])

    assert first[0].sequential_num == 1
    assert second[0].sequential_num == 1


def test_update_student_email(client, admin_headers):
    exam = make_exam()
    make_user("a@example.com")
    make_user("new@example.com")
    authorize_students(exam, "UI/PM", ["a@example.com"])

    unregistered = client.patch(
        "/authorize-student",
        json={"title": "Physics 101", "id": _code("UI/PM", 1), "students": "ghost@example.com"},
        headers=admin_headers,
    )
    assert unregistered.status_code == 400

    res = client.patch(
        "/authorize-student",
        json={"title": "Physics 101", "id": _code("UI/PM", 1), "students": "new@example.com"},
        headers=admin_headers,
    )
    assert res.status_code == 200

    wrong = client.patch(
        "/authorize-student",
        json={"title": "Physics 101", "id": _code("UI/PM", 9), "students": "new@example.com"},
        headers=admin_headers,
    )
    assert wrong.status_code == 404


def test_update_exam_prefix(client, admin_headers):
    physics = make_exam()
    chemistry = make_exam(title="Chemistry")
    authorize_students(physics, "PHY", [])
    authorize_students(chemistry, "CHE", [])

    taken = client.patch(
        "/authorize-exam-id", json={"title": "Physics 101", "newId": "CHE"}, headers=admin_headers
    )
    assert taken.status_code == 409

    res = client.patch(
        "/authorize-exam-id", json={"title": "Physics 101", "newId": "PHYS"}, headers=admin_headers
    )
    assert res.status_code == 200
    record = db.session.execute(
        db.select(ExamAuthorization).where(ExamAuthorization.exam_id == physics.exam_id)
    ).scalar_one()
    assert record.unique_id == "PHYS"


def test_list_authorized(client, admin_headers, student_headers):
    assert client.get("/authorized", headers=admin_headers).status_code == 404

    exam = make_exam()
    make_user("a@example.com")
    authorize_students(exam, "UI/PM", ["a@example.com"])

    res = client.get("/authorized", headers=admin_headers)
    assert res.status_code == 200
    assert res.get_json()["data"][0]["students"][0]["email"] == "a@example.com"
    assert client.get("/authorized", headers=student_headers).status_code == 403
