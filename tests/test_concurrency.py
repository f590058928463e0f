import threading

from conftest import auth_header, authorize_students, make_exam, make_user
from exam_portal.database import db
from exam_portal.models import (
    ROLE_ADMIN,
    ExamAttempt,
    ExamAuthorization,
    StudentAuthorization,
    SurveyFeedback,
)


def _run_together(app, requests_to_send):
    """Send each ``(path, payload, headers)`` from its own thread, all at once."""
    barrier = threading.Barrier(len(requests_to_send))
    responses = [None] * len(requests_to_send)

    def send(index, path, payload, headers):
        client = app.test_client()
        barrier.wait()
        res = client.post(path, json=payload, headers=headers)
        responses[index] = (res.status_code, res.get_json())

    threads = [
        threading.Thread(target=send, args=(i, *request_args))
        for i, request_args in enumerate(requests_to_send)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return responses


def test_concurrent_grants_get_distinct_contiguous_numbers(file_app):
    batches = [
        [f"first{n}@example.com" for n in range(5)],
        [f"second{n}@example.com" for n in range(5)],
    ]
    with file_app.app_context():
        headers = auth_header(make_user("admin@example.com", name="Admin", role=ROLE_ADMIN))
        for email in batches[0] + batches[1]:
            make_user(email)
        record, _ = authorize_students(make_exam(), "UI/PM", [])
        record_id = record.id

    responses = _run_together(
        file_app,
        [
            ("/authorize-student/email", {"title": "Physics 101", "emails": batch}, headers)
            for batch in batches
        ],
    )

    assert [status for status, _ in responses] == [200, 200]
    with file_app.app_context():
        numbers = db.session.execute(
            db.select(StudentAuthorization.sequential_num)
            .where(StudentAuthorization.exam_auth_id == record_id)
            .order_by(StudentAuthorization.sequential_num)
        ).scalars().all()
        assert numbers == list(range(1, 11))
        assert db.session.get(ExamAuthorization, record_id).last_sequence == 10


def test_concurrent_feedback_for_one_attempt_keeps_one_row(file_app):
    with file_app.app_context():
        student = make_user("student@example.com")
        exam = make_exam()
        _, (auth,) = authorize_students(exam, "UI/PM", [student.email])
        db.session.add(
            ExamAttempt(
                student_auth_id=auth.id,
                exam_id=exam.exam_id,
                total_score=100.0,
                total_questions=2,
                correct_answers=2,
            )
        )
        db.session.commit()
        code = auth.student_id_code

    responses = _run_together(
        file_app,
        [
            ("/survey-feedback", {"submissionId": code, "enjoyed": "yes"}, {}),
            ("/survey-feedback", {"submissionId": code, "enjoyed": "no"}, {}),
        ],
    )

    assert [status for status, _ in responses] == [201, 201]
    assert responses[0][1]["feedbackId"] == responses[1][1]["feedbackId"]
    with file_app.app_context():
        count = db.session.execute(
            db.select(db.func.count(SurveyFeedback.feedback_id))
        ).scalar_one()
        assert count == 1
