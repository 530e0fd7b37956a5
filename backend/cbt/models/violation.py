import enum
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Boolean, JSON, Index
from sqlalchemy.orm import relationship

from ..core.database import Base
from ..utils.timezone import get_utc_now


class ViolationType(str, enum.Enum):
    TAB_HIDDEN = "TAB_HIDDEN"
    WINDOW_BLUR = "WINDOW_BLUR"
    ROUTE_CHANGE = "ROUTE_CHANGE"
    EXIT_FULLSCREEN = "EXIT_FULLSCREEN"
    CONTEXT_MENU = "CONTEXT_MENU"
    COPY_PASTE = "COPY_PASTE"
    DEVTOOLS_OPEN = "DEVTOOLS_OPEN"


class Severity(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


SEVERITY_MAP = {
    ViolationType.TAB_HIDDEN: Severity.HIGH,
    ViolationType.WINDOW_BLUR: Severity.HIGH,
    ViolationType.ROUTE_CHANGE: Severity.CRITICAL,
    ViolationType.EXIT_FULLSCREEN: Severity.MEDIUM,
    ViolationType.CONTEXT_MENU: Severity.LOW,
    ViolationType.COPY_PASTE: Severity.MEDIUM,
    ViolationType.DEVTOOLS_OPEN: Severity.HIGH,
}


def severity_for(violation_type: str) -> Severity:
    """Unknown types fall back to medium instead of being rejected."""
    try:
        return SEVERITY_MAP[ViolationType(violation_type)]
    except ValueError:
        return Severity.MEDIUM


class Violation(Base):
    __tablename__ = "violations"
    __table_args__ = (
        Index("ix_violations_student_exam", "student_id", "exam_id"),
        Index("ix_violations_submission_type", "submission_id", "violation_type"),
    )

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False)
    exam_id = Column(Integer, ForeignKey("exams.id"), nullable=False)
    submission_id = Column(Integer, ForeignKey("submissions.id"), nullable=False)
    # Kept as a plain string so unrecognised client types are still logged
    violation_type = Column(String, nullable=False)
    timestamp = Column(DateTime, default=get_utc_now, index=True)
    violation_metadata = Column(JSON, nullable=True)
    auto_submit_triggered = Column(Boolean, default=False, nullable=False)

    submission = relationship("Submission", back_populates="violations")

    @property
    def severity(self) -> Severity:
        return severity_for(self.violation_type)

    def __repr__(self):
        return f"<Violation {self.violation_type} for submission {self.submission_id}>"
