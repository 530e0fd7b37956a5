from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional, List
import asyncio
import logging

from ..core.config import settings
from ..core.exceptions import StoreUnavailableError
from ..utils.timezone import get_utc_now
from .exam_lifecycle import ExamStateMachine
from .notifier import Notifier, LoggingNotifier, dispatch
from .submission_service import SubmissionStateMachine, TIME_EXPIRED_REASON

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    now: datetime
    activated: int = 0
    completed: int = 0
    auto_submitted: int = 0
    reminders_sent: int = 0
    end_warnings_sent: int = 0
    failures: List[str] = field(default_factory=list)

    @property
    def changes(self) -> int:
        return (self.activated + self.completed + self.auto_submitted
                + self.reminders_sent + self.end_warnings_sent)

    def to_dict(self) -> dict:
        return {
            "now": self.now.isoformat(),
            "activated": self.activated,
            "completed": self.completed,
            "auto_submitted": self.auto_submitted,
            "reminders_sent": self.reminders_sent,
            "end_warnings_sent": self.end_warnings_sent,
            "failures": list(self.failures),
        }


class IntervalTicker:
    """Yields once immediately, then once per interval until stopped."""

    def __init__(self, interval_seconds: float):
        self.interval_seconds = interval_seconds
        self._stopped = asyncio.Event()

    async def ticks(self):
        while not self._stopped.is_set():
            yield
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

    def stop(self) -> None:
        self._stopped.set()

    def reset(self) -> None:
        self._stopped.clear()


class ExamScheduler:
    """Periodic sweep over exams and attempts.

    A sweep captures ``now`` once and runs, in order: activation, completion,
    time-expiry auto-submit, start reminders and end warnings. A failing item
    is logged and skipped; an unreachable store aborts the whole sweep, which
    is retried on the next tick.
    """

    def __init__(
        self,
        store,
        notifier: Notifier = None,
        exams: ExamStateMachine = None,
        submissions: SubmissionStateMachine = None,
        reminder_lead_minutes: int = None,
        interval_seconds: float = None,
        clock: Callable[[], datetime] = get_utc_now,
        ticker: Optional[IntervalTicker] = None,
    ):
        self.store = store
        self.notifier = notifier or LoggingNotifier()
        self.exams = exams or ExamStateMachine(store)
        self.submissions = submissions or SubmissionStateMachine(store, self.notifier)
        self.reminder_lead = timedelta(
            minutes=reminder_lead_minutes if reminder_lead_minutes is not None else settings.reminder_lead_minutes
        )
        self.ticker = ticker or IntervalTicker(interval_seconds or settings.sweep_interval_seconds)
        self.clock = clock
        self._task: Optional[asyncio.Task] = None

    async def _isolated(self, report: SweepReport, label: str, operation) -> bool:
        try:
            return bool(await operation())
        except StoreUnavailableError:
            raise
        except Exception as exc:
            logger.error(f"Sweep step failed for {label}: {exc}")
            report.failures.append(label)
            return False

    async def run_sweep(self, now: datetime = None) -> SweepReport:
        now = now or self.clock()
        report = SweepReport(now=now)

        for exam in await self.store.find_exams_to_activate(now):
            if await self._isolated(report, f"activate exam {exam.id}", lambda: self.exams.activate(exam, now)):
                report.activated += 1

        for exam in await self.store.find_exams_to_complete(now):
            if await self._isolated(report, f"complete exam {exam.id}", lambda: self.exams.complete(exam, now)):
                report.completed += 1

        for submission in await self.store.find_expired_submissions(now):
            if await self._isolated(
                report,
                f"auto-submit submission {submission.id}",
                lambda: self._auto_submit_expired(submission.id, now),
            ):
                report.auto_submitted += 1

        for exam in await self.store.find_exams_needing_reminder(now, self.reminder_lead):
            report.reminders_sent += await self._notify_exam(
                report, exam, "start reminder",
                self.exams.claim_reminder,
                lambda: self.store.get_enrolled_students(exam.course_id),
                self.notifier.send_exam_start_reminder,
            )

        for exam in await self.store.find_exams_needing_end_warning(now, self.reminder_lead):
            report.end_warnings_sent += await self._notify_exam(
                report, exam, "end warning",
                self.exams.claim_end_warning,
                lambda: self.store.get_students_with_started_submissions(exam.id),
                self.notifier.send_exam_end_warning,
            )

        if report.changes or report.failures:
            logger.info(f"Exam sweep at {now.isoformat()}: {report.to_dict()}")
        return report

    async def _auto_submit_expired(self, submission_id: int, now: datetime) -> bool:
        result = await self.submissions.auto_submit(submission_id, now, TIME_EXPIRED_REASON)
        return result.applied

    async def _notify_exam(self, report, exam, kind, claim, recipients, send) -> int:
        label = f"{kind} for exam {exam.id}"
        if not await self._isolated(report, label, lambda: claim(exam)):
            return 0

        students = []
        try:
            students = await recipients()
        except StoreUnavailableError:
            raise
        except Exception as exc:
            logger.error(f"Could not load recipients for {label}: {exc}")
            report.failures.append(label)

        sent = 0
        for student in students:
            if dispatch(send, student, exam):
                sent += 1
        logger.info(f"Sent {sent}/{len(students)} {kind}s for exam {exam.id}")
        return sent

    async def run_forever(self) -> None:
        logger.info(f"Exam scheduler started - running every {self.ticker.interval_seconds}s")
        async for _ in self.ticker.ticks():
            try:
                await self.run_sweep()
            except StoreUnavailableError as exc:
                logger.error(f"Exam sweep aborted, retrying next tick: {exc}")
            except Exception as exc:
                logger.exception(f"Exam scheduler error: {exc}")
        logger.info("Exam scheduler stopped")

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self.ticker.reset()
            self._task = asyncio.create_task(self.run_forever())
        return self._task

    async def stop(self) -> None:
        self.ticker.stop()
        if self._task is not None:
            await self._task
            self._task = None
