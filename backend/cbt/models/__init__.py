from .course import Course, course_enrollments
from .account import Student, Lecturer, Admin, Role, ACCOUNT_MODELS, account_model_for
from .exam import Exam, ExamStatus
from .submission import Submission, SubmissionStatus, SubmissionType
from .violation import Violation, ViolationType, Severity, SEVERITY_MAP, severity_for

__all__ = [
    "Course",
    "course_enrollments",
    "Student",
    "Lecturer",
    "Admin",
    "Role",
    "ACCOUNT_MODELS",
    "account_model_for",
    "Exam",
    "ExamStatus",
    "Submission",
    "SubmissionStatus",
    "SubmissionType",
    "Violation",
    "ViolationType",
    "Severity",
    "SEVERITY_MAP",
    "severity_for",
]
