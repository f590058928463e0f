from exam_portal.models.user import User, ConfirmationToken, ROLE_ADMIN, ROLE_STUDENT
from exam_portal.models.exam import ExamCategory, Examination, Subject, Question, Option
from exam_portal.models.authorization import ExamAuthorization, StudentAuthorization
from exam_portal.models.attempt import (
    ExamAttempt,
    AttemptAnswer,
    SurveyFeedback,
    STATUS_COMPLETED,
    STATUS_TIMED_OUT,
    SUBMISSION_STATUSES,
)
