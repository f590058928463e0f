# exam_portal/routes/exam_routes.py

from flask import Blueprint, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from exam_portal.database import db
from exam_portal.models import ROLE_ADMIN, ExamCategory, Examination, Option, Question, Subject
from exam_portal.utils.dates import parse_timestamp
from exam_portal.utils.error_handler import db_error_response
from exam_portal.utils.generate_id import generate_alphabet_id
from exam_portal.utils.lookup import ById, ByTitle, find_exam
from exam_portal.utils.session import admin_required, session_required

exam = Blueprint("exam", __name__)


# =====================================================
# HELPERS
# =====================================================
def _clean_text(value):
    return value.strip() if isinstance(value, str) else ""


def _duration_minutes(value):
    """Whole minutes from a JSON number; None when fractional or below 1."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not value.is_integer():
        return None
    return int(value) if value >= 1 else None


def _serialize_question(question, include_answer):
    options = []
    answer = ""
    for index, option in enumerate(question.options):
        item = {
            "id": option.option_id,
            "label": generate_alphabet_id(index),
            "text": option.option_text,
        }
        if include_answer:
            item["is_correct"] = option.is_correct
            if option.is_correct:
                answer = option.option_text
        options.append(item)

    data = {
        "id": question.question_id,
        "question_id": question.question_id,
        "question_text": question.question_text,
        "options": options,
    }
    if include_answer:
        data["answer"] = answer
    return data


def _serialize_exam(exam_obj, include_answers):
    return {
        "exam_id": exam_obj.exam_id,
        "title": exam_obj.title,
        "duration_minutes": exam_obj.duration_minutes,
        "category_name": exam_obj.category.name if exam_obj.category else None,
        "subjects": [
            {
                "subject_id": subject.subject_id,
                "name": subject.name,
                "questions": [
                    _serialize_question(q, include_answers) for q in subject.questions
                ],
            }
            for subject in exam_obj.subjects
        ],
    }


def _exam_tree_query():
    return db.select(Examination).options(
        selectinload(Examination.category),
        selectinload(Examination.subjects)
        .selectinload(Subject.questions)
        .selectinload(Question.options),
    )


def _get_subject(exam_id, subject_id):
    return db.session.execute(
        db.select(Subject).where(Subject.subject_id == subject_id, Subject.exam_id == exam_id)
    ).scalar_one_or_none()


def _get_question(exam_id, subject_id, question_id):
    return db.session.execute(
        db.select(Question)
        .join(Subject, Question.subject_id == Subject.subject_id)
        .where(
            Question.question_id == question_id,
            Subject.subject_id == subject_id,
            Subject.exam_id == exam_id,
        )
    ).scalar_one_or_none()


def _clear_correct_flags(question_id):
    db.session.execute(
        db.update(Option)
        .where(Option.question_id == question_id)
        .values(is_correct=False)
        .execution_options(synchronize_session="fetch")
    )


# =====================================================
# ✅ CATEGORIES
# =====================================================
@exam.post("/category")
@admin_required
def add_category():
    data = request.get_json(silent=True) or {}
    name = _clean_text(data.get("categories"))

    if not name:
        return jsonify({"message": "A valid category name is required."}), 400

    try:
        category = ExamCategory(name=name)
        db.session.add(category)
        db.session.commit()
    except SQLAlchemyError as e:
        return db_error_response(e, "Failed to add category.", "Category already exists.")

    return jsonify({"message": "Category added successfully.", "data": category.to_dict()}), 201


@exam.get("/categories")
@session_required
def list_categories():
    rows = db.session.execute(
        db.select(ExamCategory).order_by(ExamCategory.name.asc())
    ).scalars().all()

    if not rows:
        return jsonify({"message": "No categories found."}), 404

    return jsonify({
        "message": "Categories fetched successfully.",
        "data": [c.to_dict() for c in rows],
    }), 200


@exam.patch("/category/<int:category_id>")
@admin_required
def rename_category(category_id):
    data = request.get_json(silent=True) or {}
    name = _clean_text(data.get("name"))

    if not name:
        return jsonify({"message": "A valid category name is required."}), 400

    category = db.session.get(ExamCategory, category_id)
    if category is None:
        return jsonify({"message": "Category not found."}), 404

    try:
        category.name = name
        db.session.commit()
    except SQLAlchemyError as e:
        return db_error_response(e, "Failed to update category.", "Category already exists.")

    return jsonify({"message": "Category successfully updated.", "data": category.to_dict()}), 200


@exam.delete("/category/<int:category_id>")
@admin_required
def delete_category(category_id):
    category = db.session.get(ExamCategory, category_id)
    if category is None:
        return jsonify({"message": "Category not found."}), 404

    try:
        db.session.delete(category)
        db.session.commit()
    except SQLAlchemyError as e:
        return db_error_response(e, "Failed to delete category.")

    return jsonify({
        "message": f"Category (ID: {category_id}) and all associated exams have been removed."
    }), 200


# =====================================================
# ✅ EXAMS (READ)
# =====================================================
@exam.get("/all-exams")
@admin_required
def all_exams():
    exams = db.session.execute(
        _exam_tree_query().order_by(Examination.exam_id)
    ).scalars().all()

    if not exams:
        return jsonify({"message": "No examinations found."}), 404

    return jsonify({
        "message": "Detailed examinations fetched.",
        "data": [
            {**_serialize_exam(e, include_answers=True), "created_at": e.to_dict()["created_at"]}
            for e in exams
        ],
    }), 200


@exam.get("/exam/id/<title>")
def exam_id_by_title(title):
    found = find_exam(ByTitle(title))
    if found is None:
        return jsonify({"message": "Exam not found"}), 404

    return jsonify({"message": "Successfully fetched exam ID", "exam_id": found.exam_id}), 200


@exam.get("/exam/details/<title>")
def exam_details(title):
    found = find_exam(ByTitle(title))
    if found is None:
        return jsonify({"message": "Exam not found"}), 404

    subjects = sorted(found.subjects, key=lambda s: s.name)
    return jsonify({
        "message": "Successfully fetched exam and subjects",
        "data": {
            "exam_id": found.exam_id,
            "title": found.title,
            "duration_minutes": found.duration_minutes,
            "subjects": [
                {
                    "subject_id": s.subject_id,
                    "name": s.name,
                    "questions": [{"question_id": q.question_id} for q in s.questions],
                }
                for s in subjects
            ],
        },
    }), 200


@exam.get("/exam/questions/<int:exam_id>")
@session_required
def exam_questions(exam_id):
    found = db.session.execute(
        _exam_tree_query().where(Examination.exam_id == exam_id)
    ).scalar_one_or_none()

    if found is None:
        return jsonify({"message": "Exam not found."}), 404

    # Students sitting the exam never see the key
    include_answers = g.user["role"] == ROLE_ADMIN
    return jsonify({
        "message": "Detailed exam questions fetched.",
        "data": _serialize_exam(found, include_answers),
    }), 200


def _exam_lookup_response(lookup):
    found = find_exam(lookup)
    if found is None:
        return jsonify({"message": "No exam found matching the identifier."}), 404
    return jsonify({"message": "Exam fetched.", "data": found.to_dict()}), 200


@exam.get("/exams/<int:exam_id>")
@session_required
def get_exam_by_id(exam_id):
    return _exam_lookup_response(ById(exam_id))


@exam.get("/exams/<title>")
@session_required
def get_exam_by_title(title):
    return _exam_lookup_response(ByTitle(title))


# =====================================================
# ✅ EXAMS (WRITE)
# =====================================================
def _release_at(data):
    """Parsed ``results_release_at`` or None; raises ValueError on bad input."""
    value = data.get("results_release_at")
    if value in (None, ""):
        return None
    return parse_timestamp(value)


@exam.post("/exam")
@admin_required
def create_exam():
    data = request.get_json(silent=True) or {}
    title = _clean_text(data.get("title"))
    duration = data.get("duration")
    category_id = data.get("category_id")

    if not title or duration is None or category_id is None:
        return jsonify({"message": "Title, duration, and category_id are required fields."}), 400

    minutes = _duration_minutes(duration)
    if minutes is None:
        return jsonify({"message": "Duration must be a whole number of minutes (at least 1)."}), 400

    if not isinstance(category_id, int) or db.session.get(ExamCategory, category_id) is None:
        return jsonify({"message": "Cannot create exam. The selected exam category does not exist."}), 404

    try:
        release_at = _release_at(data)
    except ValueError:
        return jsonify({"message": "results_release_at must be an ISO-8601 timestamp."}), 400

    try:
        new_exam = Examination(
            title=title,
            duration_minutes=minutes,
            category_id=category_id,
            results_release_at=release_at,
            allow_multiple_attempts=bool(data.get("allow_multiple_attempts", False)),
        )
        db.session.add(new_exam)
        db.session.commit()
    except SQLAlchemyError as e:
        return db_error_response(e, "Failed to create exam.", "An exam with this title already exists.")

    return jsonify({"message": "Exam has successfully been added.", "data": new_exam.to_dict()}), 201


@exam.patch("/exam/<int:exam_id>/edit")
@admin_required
def edit_exam(exam_id):
    updates = request.get_json(silent=True) or {}
    target = db.session.get(Examination, exam_id)

    if target is None:
        return jsonify({"message": "Exam not found or no changes made."}), 404

    changed = False
    if _clean_text(updates.get("title")):
        target.title = _clean_text(updates["title"])
        changed = True

    if "duration" in updates:
        minutes = _duration_minutes(updates["duration"])
        if minutes is None:
            return jsonify({"message": "Duration must be a whole number of minutes (at least 1)."}), 400
        target.duration_minutes = minutes
        changed = True

    if "category_id" in updates:
        category_id = updates["category_id"]
        if not isinstance(category_id, int) or db.session.get(ExamCategory, category_id) is None:
            return jsonify({"message": "The selected exam category does not exist."}), 404
        target.category_id = category_id
        changed = True

    if "results_release_at" in updates:
        try:
            target.results_release_at = _release_at(updates)
        except ValueError:
            return jsonify({"message": "results_release_at must be an ISO-8601 timestamp."}), 400
        changed = True

    if "allow_multiple_attempts" in updates:
        target.allow_multiple_attempts = bool(updates["allow_multiple_attempts"])
        changed = True

    if not changed:
        db.session.rollback()
        return jsonify({"message": "No valid fields provided for update."}), 400

    try:
        db.session.commit()
    except SQLAlchemyError as e:
        return db_error_response(e, "Failed to update exam.", "An exam with this title already exists.")

    return jsonify({"message": "Exam successfully updated.", "data": target.to_dict()}), 200


@exam.delete("/exam/<int:exam_id>")
@admin_required
def delete_exam(exam_id):
    target = db.session.get(Examination, exam_id)
    if target is None:
        return jsonify({"message": "Exam not found."}), 404

    try:
        db.session.delete(target)
        db.session.commit()
    except SQLAlchemyError as e:
        return db_error_response(e, "Failed to delete exam.")

    return jsonify({"message": f"Exam (ID: {exam_id}) successfully removed."}), 200


# =====================================================
# ✅ SUBJECTS
# =====================================================
@exam.post("/exam/<int:exam_id>/subjects")
@admin_required
def add_subjects(exam_id):
    data = request.get_json(silent=True) or {}
    names = data.get("subjectName")

    if not isinstance(names, list) or not names:
        return jsonify({"message": "A list of subjects is required."}), 400

    target = db.session.get(Examination, exam_id)
    if target is None:
        return jsonify({"message": "Exam not found."}), 404

    existing = {s.name.lower() for s in target.subjects}
    added = []
    try:
        for raw in names:
            name = _clean_text(raw)
            if not name or name.lower() in existing:
                continue
            subject = Subject(exam_id=exam_id, name=name)
            db.session.add(subject)
            existing.add(name.lower())
            added.append(subject)
        db.session.commit()
    except SQLAlchemyError as e:
        return db_error_response(e, "Failed to add subjects.")

    if not added:
        return jsonify({"message": "No new subjects were added (they may already exist)."}), 400

    return jsonify({
        "message": "Subjects added successfully. Existing duplicates were ignored.",
        "data": [s.to_dict() for s in added],
    }), 201


@exam.patch("/exam/<int:exam_id>/subjects/<int:subject_id>")
@admin_required
def rename_subject(exam_id, subject_id):
    data = request.get_json(silent=True) or {}
    new_name = _clean_text(data.get("newSubjectName"))

    if not new_name:
        return jsonify({"message": "A valid new subject name must be provided."}), 400

    subject = _get_subject(exam_id, subject_id)
    if subject is None:
        return jsonify({"message": "Subject not found in the specified exam."}), 404

    try:
        subject.name = new_name
        db.session.commit()
    except SQLAlchemyError as e:
        return db_error_response(
            e, "Failed to update subject.", "A subject with this name already exists in this exam."
        )

    return jsonify({"message": "Subject name successfully updated.", "data": subject.to_dict()}), 200


@exam.delete("/exam/<int:exam_id>/subjects/<int:subject_id>")
@admin_required
def delete_subject(exam_id, subject_id):
    subject = _get_subject(exam_id, subject_id)
    if subject is None:
        return jsonify({"message": "Subject not found in the specified exam."}), 404

    try:
        db.session.delete(subject)
        db.session.commit()
    except SQLAlchemyError as e:
        return db_error_response(e, "Failed to delete subject.")

    return jsonify({"message": f"Subject (ID: {subject_id}) successfully removed."}), 200


# =====================================================
# ✅ QUESTIONS
# =====================================================
@exam.post("/exam/<int:exam_id>/subjects/<int:subject_id>/questions")
@admin_required
def add_question(exam_id, subject_id):
    data = request.get_json(silent=True) or {}
    text = _clean_text(data.get("question"))
    options = data.get("options")
    answer = _clean_text(data.get("answer"))

    if not text or not isinstance(options, list) or len(options) < 2 or not answer:
        return jsonify({"message": "Missing required fields (question, options[], answer)."}), 400

    option_texts = [_clean_text(o) for o in options if _clean_text(o)]
    if len(option_texts) < 2:
        return jsonify({"message": "At least two non-empty options are required."}), 400
    if answer not in option_texts:
        return jsonify({"message": "The answer must be one of the options."}), 400

    if _get_subject(exam_id, subject_id) is None:
        return jsonify({"message": "Subject not found in the specified exam."}), 404

    try:
        question = Question(subject_id=subject_id, question_text=text)
        db.session.add(question)
        correct_marked = False
        for option_text in option_texts:
            # Exactly one correct option, even when the answer text repeats
            is_correct = option_text == answer and not correct_marked
            correct_marked = correct_marked or is_correct
            question.options.append(Option(option_text=option_text, is_correct=is_correct))
        db.session.commit()
    except SQLAlchemyError as e:
        return db_error_response(e, "Failed to add question. Transaction rolled back.")

    return jsonify({
        "message": "Question and options saved successfully.",
        "data": {
            "question_id": question.question_id,
            "question": text,
            "options": option_texts,
            "answer": answer,
        },
    }), 201


@exam.patch("/exam/<int:exam_id>/subjects/<int:subject_id>/questions/<int:question_id>")
@admin_required
def edit_question(exam_id, subject_id, question_id):
    data = request.get_json(silent=True) or {}
    text = _clean_text(data.get("question_text"))

    if not text:
        return jsonify({"message": "New question text is required."}), 400

    question = _get_question(exam_id, subject_id, question_id)
    if question is None:
        return jsonify({"message": "Question not found."}), 404

    try:
        question.question_text = text
        db.session.commit()
    except SQLAlchemyError as e:
        return db_error_response(e, "Failed to update question.")

    return jsonify({"message": "Question text successfully updated.", "data": question.to_dict()}), 200


@exam.delete("/exam/<int:exam_id>/subjects/<int:subject_id>/questions/<int:question_id>")
@admin_required
def delete_question(exam_id, subject_id, question_id):
    question = _get_question(exam_id, subject_id, question_id)
    if question is None:
        return jsonify({"message": "Question not found."}), 404

    try:
        db.session.delete(question)
        db.session.commit()
    except SQLAlchemyError as e:
        return db_error_response(e, "Failed to delete question.")

    return jsonify({"message": f"Question (ID: {question_id}) successfully removed."}), 200


# =====================================================
# ✅ OPTIONS
# =====================================================
OPTION_PATH = "/exam/<int:exam_id>/subjects/<int:subject_id>/questions/<int:question_id>/options"


@exam.post(OPTION_PATH)
@admin_required
def add_option(exam_id, subject_id, question_id):
    data = request.get_json(silent=True) or {}
    text = _clean_text(data.get("option_text"))
    is_correct = data.get("is_correct", False)

    if not text:
        return jsonify({"message": "Option text must be a non-empty string."}), 400
    if not isinstance(is_correct, bool):
        return jsonify({"message": "is_correct must be a boolean."}), 400

    if _get_question(exam_id, subject_id, question_id) is None:
        return jsonify({"message": "Question not found."}), 404

    try:
        if is_correct:
            _clear_correct_flags(question_id)
        option = Option(question_id=question_id, option_text=text, is_correct=is_correct)
        db.session.add(option)
        db.session.commit()
    except SQLAlchemyError as e:
        return db_error_response(e, "Failed to add option. Transaction rolled back.")

    return jsonify({"message": "Option successfully added.", "data": option.to_dict()}), 201


@exam.patch(OPTION_PATH + "/<int:option_id>")
@admin_required
def edit_option(exam_id, subject_id, question_id, option_id):
    data = request.get_json(silent=True) or {}

    if "option_text" not in data and "is_correct" not in data:
        return jsonify({"message": "No valid fields provided for update."}), 400

    if "option_text" in data and not _clean_text(data["option_text"]):
        return jsonify({"message": "Option text must be a non-empty string."}), 400

    if "is_correct" in data and not isinstance(data["is_correct"], bool):
        return jsonify({"message": "is_correct must be a boolean."}), 400

    if _get_question(exam_id, subject_id, question_id) is None:
        return jsonify({"message": "Option not found in the specified question."}), 404

    option = db.session.execute(
        db.select(Option).where(Option.option_id == option_id, Option.question_id == question_id)
    ).scalar_one_or_none()
    if option is None:
        return jsonify({"message": "Option not found in the specified question."}), 404

    try:
        if "option_text" in data:
            option.option_text = _clean_text(data["option_text"])
        if data.get("is_correct") is True:
            _clear_correct_flags(question_id)
        if "is_correct" in data:
            option.is_correct = data["is_correct"]
        db.session.commit()
    except SQLAlchemyError as e:
        return db_error_response(e, "Failed to update option. Transaction rolled back.")

    return jsonify({"message": "Option successfully updated.", "data": option.to_dict()}), 200


@exam.delete(OPTION_PATH + "/<int:option_id>")
@admin_required
def delete_option(exam_id, subject_id, question_id, option_id):
    if _get_question(exam_id, subject_id, question_id) is None:
        return jsonify({"message": "Option not found in the specified question."}), 404

    option = db.session.execute(
        db.select(Option).where(Option.option_id == option_id, Option.question_id == question_id)
    ).scalar_one_or_none()
    if option is None:
        return jsonify({"message": "Option not found in the specified question."}), 404

    try:
        db.session.delete(option)
        db.session.commit()
    except SQLAlchemyError as e:
        return db_error_response(e, "Failed to delete option.")

    return jsonify({"message": f"Option (ID: {option_id}) successfully removed."}), 200
