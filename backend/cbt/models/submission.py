import enum
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Boolean, UniqueConstraint, Enum
from sqlalchemy.orm import relationship

from ..core.database import Base
from ..utils.timezone import get_utc_now
from .exam import enum_values


class SubmissionStatus(str, enum.Enum):
    STARTED = "started"
    SUBMITTED = "submitted"
    AUTO_SUBMITTED = "autoSubmitted"
    GRADED = "graded"


class SubmissionType(str, enum.Enum):
    MANUAL = "manual"
    AUTO = "auto"


class Submission(Base):
    __tablename__ = "submissions"
    __table_args__ = (
        UniqueConstraint("exam_id", "student_id", name="uq_submission_exam_student"),
    )

    id = Column(Integer, primary_key=True, index=True)
    exam_id = Column(Integer, ForeignKey("exams.id"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    started_at = Column(DateTime, default=get_utc_now, nullable=False)
    submitted_at = Column(DateTime, nullable=True)
    status = Column(
        Enum(SubmissionStatus, native_enum=False, values_callable=enum_values, length=20),
        default=SubmissionStatus.STARTED,
        nullable=False,
        index=True,
    )
    submission_type = Column(
        Enum(SubmissionType, native_enum=False, values_callable=enum_values, length=10),
        nullable=True,
    )
    time_spent = Column(Integer, default=0)                        # seconds
    flagged = Column(Boolean, default=False, nullable=False)
    flag_reason = Column(String, nullable=True)

    exam = relationship("Exam", back_populates="submissions")
    student = relationship("Student")
    violations = relationship("Violation", back_populates="submission")

    @property
    def is_terminal(self) -> bool:
        return self.status != SubmissionStatus.STARTED

    def __repr__(self):
        return f"<Submission {self.id} exam={self.exam_id} student={self.student_id} {self.status}>"
