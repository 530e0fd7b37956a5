from dataclasses import dataclass
from datetime import datetime
from typing import Optional
import logging

from ..core.exceptions import ExamNotActiveError, PermissionDeniedError
from ..models.account import Role
from ..models.exam import ExamStatus
from ..models.submission import Submission, SubmissionStatus, SubmissionType
from ..utils.timezone import get_utc_now, seconds_between, time_remaining, TimeRemaining
from .notifier import Notifier, LoggingNotifier, dispatch

logger = logging.getLogger(__name__)

TIME_EXPIRED_REASON = "time expired"


@dataclass
class TransitionResult:
    applied: bool
    submission: Optional[Submission] = None


@dataclass
class StartResult:
    submission: Submission
    created: bool
    time_remaining: TimeRemaining


class SubmissionStateMachine:
    """Moves a single attempt from ``started`` to a terminal state.

    Manual submit, time-expiry auto-submit and violation auto-submit all go
    through the same conditional update guarded by ``status == started``.
    Whichever update lands first wins; the others see ``applied=False`` and
    produce no side effects. No in-process locking is involved.
    """

    def __init__(self, store, notifier: Notifier = None):
        self.store = store
        self.notifier = notifier or LoggingNotifier()

    async def start(self, exam_id: int, student_id: int, now: datetime = None) -> StartResult:
        now = now or get_utc_now()
        exam = await self.store.get_exam(exam_id)

        if now < exam.start_time:
            raise ExamNotActiveError("Exam has not started yet", detail={"start_time": exam.start_time})
        if now >= exam.end_time:
            raise ExamNotActiveError("Exam has ended", detail={"end_time": exam.end_time})
        if exam.status != ExamStatus.ACTIVE:
            raise ExamNotActiveError("Exam is not currently active", detail={"status": exam.status})

        if not await self.store.is_enrolled(exam.course_id, student_id):
            raise PermissionDeniedError("You are not enrolled in this course")

        existing = await self.store.find_submission(exam_id, student_id)
        if existing:
            return StartResult(existing, created=False, time_remaining=time_remaining(exam.end_time, now))

        submission = await self.store.create_submission(exam_id, student_id, started_at=now)
        logger.info(f"Student {student_id} started exam {exam_id} (submission {submission.id})")
        return StartResult(submission, created=True, time_remaining=time_remaining(exam.end_time, now))

    async def _terminate(self, submission: Submission, now: datetime, target: SubmissionStatus,
                         submission_type: SubmissionType, flag_reason: str) -> bool:
        new_fields = {
            "status": target,
            "submitted_at": now,
            "submission_type": submission_type,
            "flagged": flag_reason != "",
            "flag_reason": flag_reason or None,
            "time_spent": seconds_between(submission.started_at, now),
        }
        applied = await self.store.conditional_update(
            Submission,
            submission.id,
            {"status": SubmissionStatus.STARTED},
            new_fields,
        )
        if applied:
            for field, value in new_fields.items():
                setattr(submission, field, value)
        return applied

    async def auto_submit(self, submission_id: int, now: datetime, reason: str) -> TransitionResult:
        submission = await self.store.get_submission(submission_id)
        if submission.status != SubmissionStatus.STARTED:
            return TransitionResult(applied=False, submission=submission)

        applied = await self._terminate(
            submission, now, SubmissionStatus.AUTO_SUBMITTED, SubmissionType.AUTO, reason
        )
        if not applied:
            logger.debug(f"Auto-submit of submission {submission_id} skipped: already terminated")
            submission = await self.store.get_submission(submission_id)
            return TransitionResult(applied=False, submission=submission)

        logger.info(f"Auto-submitted submission {submission_id} ({reason})")
        await self._confirm(submission)
        return TransitionResult(applied=True, submission=submission)

    async def submit(self, submission_id: int, now: datetime = None, student_id: int = None) -> TransitionResult:
        now = now or get_utc_now()
        submission = await self.store.get_submission(submission_id)
        if student_id is not None and submission.student_id != student_id:
            raise PermissionDeniedError("Submission belongs to another student")
        if submission.status != SubmissionStatus.STARTED:
            return TransitionResult(applied=False, submission=submission)

        violation_count = await self.store.count_violations(submission_id)
        flag_reason = ""
        if violation_count > 0:
            flag_reason = f"{violation_count} security violation(s) detected during exam"

        applied = await self._terminate(
            submission, now, SubmissionStatus.SUBMITTED, SubmissionType.MANUAL, flag_reason
        )
        if not applied:
            logger.debug(f"Manual submit of submission {submission_id} skipped: already terminated")
            submission = await self.store.get_submission(submission_id)
            return TransitionResult(applied=False, submission=submission)

        logger.info(f"Submission {submission_id} submitted manually after {submission.time_spent}s")
        await self._confirm(submission)
        return TransitionResult(applied=True, submission=submission)

    async def _confirm(self, submission: Submission) -> None:
        try:
            student = await self.store.get_account(Role.STUDENT, submission.student_id)
            exam = await self.store.get_exam(submission.exam_id)
        except Exception as exc:
            logger.warning(f"Skipping confirmation for submission {submission.id}: {exc}")
            return
        dispatch(self.notifier.send_submission_confirmation, student, exam, submission)
