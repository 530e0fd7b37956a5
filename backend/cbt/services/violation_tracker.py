from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Dict, Any, List
import logging

import pydantic

from ..core.config import settings
from ..core.exceptions import NotFoundError, ConflictError, ValidationError, PermissionDeniedError
from ..models.account import Role
from ..models.submission import SubmissionStatus
from ..models.violation import Violation, severity_for
from ..schemas.violation import (
    ViolationReport,
    ViolationRead,
    StudentViolationGroup,
    ExamViolationReport,
    ViolationStats,
)
from ..utils.timezone import get_utc_now
from .submission_service import SubmissionStateMachine

logger = logging.getLogger(__name__)


@dataclass
class ViolationOutcome:
    violation: Violation
    auto_submitted: bool
    total_violations: int
    remaining_attempts: int


def auto_submit_reason(count: int) -> str:
    return f"auto-submitted: {count} integrity violations"


class ViolationTracker:
    """Appends integrity violations and terminates the attempt at the threshold.

    Recording a violation always succeeds or fails on its own terms; whether it
    happened to trigger the auto-submit is reported separately.
    """

    def __init__(self, store, submissions: SubmissionStateMachine, threshold: int = None):
        self.store = store
        self.submissions = submissions
        self.threshold = threshold if threshold is not None else settings.violation_threshold

    @staticmethod
    def parse_report(payload: Dict[str, Any]) -> ViolationReport:
        try:
            return ViolationReport.model_validate(payload)
        except pydantic.ValidationError as exc:
            fields = [".".join(str(part) for part in error["loc"]) for error in exc.errors()]
            raise ValidationError(f"Malformed violation report: {', '.join(fields)}", detail=fields) from exc

    async def report(self, payload: Dict[str, Any], now: datetime = None) -> ViolationOutcome:
        report = self.parse_report(payload)
        return await self.record(
            report.student_id,
            report.exam_id,
            report.submission_id,
            report.violation_type,
            report.metadata.model_dump(exclude_none=True),
            now=now,
        )

    async def record(
        self,
        student_id: int,
        exam_id: int,
        submission_id: int,
        violation_type: str,
        metadata: Optional[Dict[str, Any]] = None,
        now: datetime = None,
    ) -> ViolationOutcome:
        violation_type = (violation_type or "").strip().upper()
        if not violation_type:
            raise ValidationError("violation_type is required", detail=["violation_type"])
        now = now or get_utc_now()

        submission = await self.store.get_submission(submission_id)
        if submission.exam_id != exam_id or submission.student_id != student_id:
            raise NotFoundError("Active submission not found")
        if submission.status != SubmissionStatus.STARTED:
            raise ConflictError("Submission is no longer in progress", detail={"status": submission.status})

        severity = severity_for(violation_type)
        violation = await self.store.add_violation(Violation(
            student_id=student_id,
            exam_id=exam_id,
            submission_id=submission_id,
            violation_type=violation_type,
            timestamp=now,
            violation_metadata=metadata or None,
            auto_submit_triggered=False,
        ))
        logger.info(
            f"Violation {violation_type} ({severity.value}) recorded for submission {submission_id}"
        )

        total = await self.store.count_violations(submission_id)
        auto_submitted = False
        if total >= self.threshold:
            result = await self.submissions.auto_submit(submission_id, now, auto_submit_reason(total))
            if result.applied:
                auto_submitted = await self.store.conditional_update(
                    Violation, violation.id, {"auto_submit_triggered": False}, {"auto_submit_triggered": True}
                )
                violation.auto_submit_triggered = auto_submitted
                logger.warning(
                    f"Submission {submission_id} auto-submitted after {total} integrity violations"
                )

        return ViolationOutcome(
            violation=violation,
            auto_submitted=auto_submitted,
            total_violations=total,
            remaining_attempts=max(self.threshold - total, 0),
        )

    async def _check_viewer(self, exam, owner_student_id: Optional[int], viewer_role, viewer_id: int) -> None:
        try:
            role = Role(viewer_role)
        except ValueError:
            raise ValidationError(f"Unknown role: {viewer_role!r}")
        if role == Role.ADMIN:
            return
        if role == Role.LECTURER and exam.lecturer_id == viewer_id:
            return
        if role == Role.STUDENT and owner_student_id is not None and owner_student_id == viewer_id:
            return
        raise PermissionDeniedError("Not authorized to view violations")

    async def list_for_submission(self, submission_id: int, viewer_role, viewer_id: int) -> List[ViolationRead]:
        submission = await self.store.get_submission(submission_id)
        exam = await self.store.get_exam(submission.exam_id)
        await self._check_viewer(exam, submission.student_id, viewer_role, viewer_id)

        violations = await self.store.list_violations(submission_id=submission_id)
        return [ViolationRead.model_validate(v) for v in violations]

    async def list_for_exam(self, exam_id: int, viewer_role, viewer_id: int) -> ExamViolationReport:
        exam = await self.store.get_exam(exam_id)
        await self._check_viewer(exam, None, viewer_role, viewer_id)

        violations = [ViolationRead.model_validate(v) for v in await self.store.list_violations(exam_id=exam_id)]
        groups: Dict[int, StudentViolationGroup] = {}
        for violation in violations:
            group = groups.setdefault(
                violation.student_id,
                StudentViolationGroup(student_id=violation.student_id, total_count=0, violations=[]),
            )
            group.violations.append(violation)
            group.total_count += 1

        return ExamViolationReport(
            violations=violations,
            violations_by_student=list(groups.values()),
            total_count=len(violations),
        )

    async def stats_for_student(self, student_id: int) -> ViolationStats:
        violations = await self.store.list_violations(student_id=student_id)
        stats = ViolationStats(total_violations=len(violations))
        for violation in violations:
            stats.by_type[violation.violation_type] = stats.by_type.get(violation.violation_type, 0) + 1
            severity = violation.severity.value
            stats.by_severity[severity] = stats.by_severity.get(severity, 0) + 1
            if violation.auto_submit_triggered:
                stats.auto_submitted_exams += 1
        return stats
