from datetime import datetime
from typing import Dict, Set
import logging

from ..models.exam import Exam, ExamStatus

logger = logging.getLogger(__name__)


class ExamStateMachine:
    """Time-driven exam transitions: pending -> active -> completed.

    Each transition is a conditional update on the current status, so two
    sweeps racing on the same exam apply it once and never move it backwards.
    """

    _transitions: Dict[ExamStatus, Set[ExamStatus]] = {
        ExamStatus.PENDING: {ExamStatus.ACTIVE},
        ExamStatus.ACTIVE: {ExamStatus.COMPLETED},
        ExamStatus.COMPLETED: set(),
    }

    def __init__(self, store):
        self.store = store

    @classmethod
    def can_transition(cls, current: ExamStatus, target: ExamStatus) -> bool:
        return target in cls._transitions.get(ExamStatus(current), set())

    async def _transition(self, exam: Exam, target: ExamStatus) -> bool:
        current = ExamStatus(exam.status)
        if not self.can_transition(current, target):
            return False

        applied = await self.store.conditional_update(
            Exam, exam.id, {"status": current}, {"status": target}
        )
        if applied:
            exam.status = target
        return applied

    async def activate(self, exam: Exam, now: datetime) -> bool:
        if exam.status != ExamStatus.PENDING or now < exam.start_time:
            return False
        applied = await self._transition(exam, ExamStatus.ACTIVE)
        if applied:
            logger.info(f"Exam {exam.id} activated at {now.isoformat()}")
        return applied

    async def complete(self, exam: Exam, now: datetime) -> bool:
        if exam.status != ExamStatus.ACTIVE or now < exam.end_time:
            return False
        applied = await self._transition(exam, ExamStatus.COMPLETED)
        if applied:
            logger.info(f"Exam {exam.id} completed at {now.isoformat()}")
        return applied

    async def claim_reminder(self, exam: Exam) -> bool:
        """Flip reminder_sent false -> true. Only the caller that flips it dispatches."""
        applied = await self.store.conditional_update(
            Exam, exam.id, {"reminder_sent": False}, {"reminder_sent": True}
        )
        if applied:
            exam.reminder_sent = True
        return applied

    async def claim_end_warning(self, exam: Exam) -> bool:
        applied = await self.store.conditional_update(
            Exam, exam.id, {"end_warning_sent": False}, {"end_warning_sent": True}
        )
        if applied:
            exam.end_warning_sent = True
        return applied
