from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional, Dict, Any, List

from ..models.violation import Severity


class ViolationMetadata(BaseModel):
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    question_index: Optional[int] = None
    additional_info: Optional[Any] = None


class ViolationReport(BaseModel):
    student_id: int
    exam_id: int
    submission_id: int
    violation_type: str = Field(min_length=1)
    metadata: ViolationMetadata = Field(default_factory=ViolationMetadata)

    @field_validator("violation_type")
    @classmethod
    def normalize_type(cls, value: str) -> str:
        return value.strip().upper()


class ViolationRead(BaseModel):
    id: int
    student_id: int
    exam_id: int
    submission_id: int
    violation_type: str
    severity: Severity
    timestamp: datetime
    violation_metadata: Optional[Dict[str, Any]] = None
    auto_submit_triggered: bool

    class Config:
        from_attributes = True


class StudentViolationGroup(BaseModel):
    student_id: int
    total_count: int
    violations: List[ViolationRead]


class ExamViolationReport(BaseModel):
    violations: List[ViolationRead]
    violations_by_student: List[StudentViolationGroup]
    total_count: int


class ViolationStats(BaseModel):
    total_violations: int = 0
    by_type: Dict[str, int] = {}
    by_severity: Dict[str, int] = {}
    auto_submitted_exams: int = 0
