import enum
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Boolean, CheckConstraint, Enum
from sqlalchemy.orm import relationship

from ..core.database import Base
from ..utils.timezone import get_utc_now


class ExamStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"


def enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Exam(Base):
    __tablename__ = "exams"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_exam_start_before_end"),
    )

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False)
    lecturer_id = Column(Integer, ForeignKey("lecturers.id"), nullable=False)
    title = Column(String, nullable=True)
    duration = Column(Integer, nullable=False)                     # minutes
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False, index=True)
    status = Column(
        Enum(ExamStatus, native_enum=False, values_callable=enum_values, length=20),
        default=ExamStatus.PENDING,
        nullable=False,
        index=True,
    )
    reminder_sent = Column(Boolean, default=False, nullable=False)
    end_warning_sent = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=get_utc_now)

    course = relationship("Course", back_populates="exams")
    submissions = relationship("Submission", back_populates="exam")

    def __repr__(self):
        return f"<Exam {self.id} {self.status}>"
