# exam_portal/models/authorization.py
from exam_portal.database import db
from exam_portal.utils.dates import utcnow
from exam_portal.utils.generate_id import construct_student_id_code


class ExamAuthorization(db.Model):
    __tablename__ = "exams_authorized"

    id = db.Column(db.Integer, primary_key=True)
    exam_id = db.Column(
        db.Integer,
        db.ForeignKey("examinations.exam_id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    unique_id = db.Column(db.String(50), unique=True, nullable=False)
    last_sequence = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    exam = db.relationship("Examination")
    students = db.relationship(
        "StudentAuthorization",
        back_populates="exam_authorization",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="StudentAuthorization.sequential_num",
    )

    def next_sequence(self):
        """Reserve the next sequential number for this exam.

        Must run inside the caller's transaction; the UPDATE holds the row
        lock until commit so concurrent grants never see the same value.
        """
        table = type(self)
        db.session.execute(
            db.update(table)
            .where(table.id == self.id)
            .values(last_sequence=table.last_sequence + 1)
            .execution_options(synchronize_session=False)
        )
        return db.session.execute(
            db.select(table.last_sequence).where(table.id == self.id)
        ).scalar_one()

    def to_dict(self):
        return {
            "id": self.unique_id,
            "exam": self.exam.title,
            "students": [s.to_dict() for s in self.students],
        }


class StudentAuthorization(db.Model):
    __tablename__ = "students_authorized"
    __table_args__ = (
        db.UniqueConstraint("exam_auth_id", "email"),
        db.UniqueConstraint("exam_auth_id", "sequential_num"),
    )

    id = db.Column(db.Integer, primary_key=True)
    exam_auth_id = db.Column(
        db.Integer,
        db.ForeignKey("exams_authorized.id", ondelete="CASCADE"),
        nullable=False,
    )
    email = db.Column(db.String(255), nullable=False, index=True)
    sequential_num = db.Column(db.Integer, nullable=False)
    authorized_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    exam_authorization = db.relationship("ExamAuthorization", back_populates="students")

    @property
    def student_id_code(self):
        authorized_at = self.authorized_at or utcnow()
        return construct_student_id_code(
            self.exam_authorization.unique_id, self.sequential_num, authorized_at.year
        )

    def to_dict(self):
        return {"id": self.student_id_code, "email": self.email}
