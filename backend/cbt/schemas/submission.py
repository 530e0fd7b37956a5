from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class SubmissionRead(BaseModel):
    id: int
    exam_id: int
    student_id: int
    started_at: datetime
    submitted_at: Optional[datetime] = None
    status: str
    submission_type: Optional[str] = None
    time_spent: Optional[int] = 0
    flagged: bool = False
    flag_reason: Optional[str] = None

    class Config:
        from_attributes = True
