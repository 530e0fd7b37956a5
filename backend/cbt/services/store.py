from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Optional, List, Dict, Any, Sequence
import logging

from sqlalchemy import select, update, func, and_
from sqlalchemy.exc import IntegrityError, OperationalError, InterfaceError

from ..core.database import AsyncSessionLocal
from ..core.exceptions import NotFoundError, ConflictError, StoreUnavailableError, ValidationError
from ..models.account import Student, account_model_for
from ..models.course import Course, course_enrollments
from ..models.exam import Exam, ExamStatus
from ..models.submission import Submission, SubmissionStatus
from ..models.violation import Violation

logger = logging.getLogger(__name__)


class ExamStore:
    """Persistence boundary for the lifecycle services.

    Every primitive runs in its own short session, so callers in different
    request handlers or scheduler ticks never share a unit of work. The one
    concurrency primitive is ``conditional_update``.
    """

    def __init__(self, session_factory=AsyncSessionLocal):
        self._session_factory = session_factory

    @asynccontextmanager
    async def session(self):
        try:
            async with self._session_factory() as db:
                yield db
        except (OperationalError, InterfaceError) as exc:
            raise StoreUnavailableError(f"Store unavailable: {exc}") from exc

    async def conditional_update(
        self,
        model,
        entity_id: int,
        expected: Dict[str, Any],
        new: Dict[str, Any],
    ) -> bool:
        """UPDATE model SET <new> WHERE id = entity_id AND <expected>.

        Returns True only if exactly one row matched the precondition.
        """
        conditions = [model.id == entity_id]
        for field, value in expected.items():
            column = getattr(model, field)
            conditions.append(column.is_(None) if value is None else column == value)

        stmt = (
            update(model)
            .where(and_(*conditions))
            .values(**new)
            .execution_options(synchronize_session=False)
        )
        async with self.session() as db:
            result = await db.execute(stmt)
            await db.commit()
            return result.rowcount == 1

    async def _get(self, model, entity_id: int, label: str):
        async with self.session() as db:
            entity = await db.get(model, entity_id)
        if entity is None:
            raise NotFoundError(f"{label} {entity_id} not found")
        return entity

    async def get_exam(self, exam_id: int) -> Exam:
        return await self._get(Exam, exam_id, "Exam")

    async def get_submission(self, submission_id: int) -> Submission:
        return await self._get(Submission, submission_id, "Submission")

    async def get_course(self, course_id: int) -> Course:
        return await self._get(Course, course_id, "Course")

    async def get_account(self, role, account_id: int):
        model = account_model_for(role)
        return await self._get(model, account_id, model.__name__)

    async def create_exam(
        self,
        course_id: int,
        lecturer_id: int,
        start_time: datetime,
        end_time: datetime,
        duration: Optional[int] = None,
        title: Optional[str] = None,
    ) -> Exam:
        if start_time >= end_time:
            raise ValidationError("Exam start time must be before its end time")
        if duration is None:
            duration = int((end_time - start_time).total_seconds() // 60)

        exam = Exam(
            course_id=course_id,
            lecturer_id=lecturer_id,
            title=title,
            duration=duration,
            start_time=start_time,
            end_time=end_time,
            status=ExamStatus.PENDING,
            reminder_sent=False,
            end_warning_sent=False,
        )
        async with self.session() as db:
            db.add(exam)
            await db.commit()
            await db.refresh(exam)
        return exam

    async def create_submission(self, exam_id: int, student_id: int, started_at: datetime) -> Submission:
        submission = Submission(
            exam_id=exam_id,
            student_id=student_id,
            started_at=started_at,
            status=SubmissionStatus.STARTED,
            time_spent=0,
            flagged=False,
        )
        async with self.session() as db:
            db.add(submission)
            try:
                await db.commit()
            except IntegrityError as exc:
                await db.rollback()
                raise ConflictError(
                    f"Submission already exists for exam {exam_id} and student {student_id}"
                ) from exc
            await db.refresh(submission)
        return submission

    async def find_submission(self, exam_id: int, student_id: int) -> Optional[Submission]:
        async with self.session() as db:
            result = await db.execute(
                select(Submission).where(
                    Submission.exam_id == exam_id,
                    Submission.student_id == student_id,
                )
            )
            return result.scalars().first()

    async def find_exams_to_activate(self, now: datetime) -> Sequence[Exam]:
        async with self.session() as db:
            result = await db.execute(
                select(Exam)
                .where(Exam.status == ExamStatus.PENDING, Exam.start_time <= now)
                .order_by(Exam.start_time)
            )
            return result.scalars().all()

    async def find_exams_to_complete(self, now: datetime) -> Sequence[Exam]:
        async with self.session() as db:
            result = await db.execute(
                select(Exam)
                .where(Exam.status == ExamStatus.ACTIVE, Exam.end_time <= now)
                .order_by(Exam.end_time)
            )
            return result.scalars().all()

    async def find_expired_submissions(self, now: datetime) -> Sequence[Submission]:
        async with self.session() as db:
            result = await db.execute(
                select(Submission)
                .join(Exam, Submission.exam_id == Exam.id)
                .where(Submission.status == SubmissionStatus.STARTED, Exam.end_time <= now)
                .order_by(Submission.id)
            )
            return result.scalars().all()

    async def find_exams_needing_reminder(self, now: datetime, lead: timedelta) -> Sequence[Exam]:
        async with self.session() as db:
            result = await db.execute(
                select(Exam).where(
                    Exam.status == ExamStatus.PENDING,
                    Exam.start_time >= now,
                    Exam.start_time <= now + lead,
                    Exam.reminder_sent.is_(False),
                )
            )
            return result.scalars().all()

    async def find_exams_needing_end_warning(self, now: datetime, lead: timedelta) -> Sequence[Exam]:
        async with self.session() as db:
            result = await db.execute(
                select(Exam).where(
                    Exam.status == ExamStatus.ACTIVE,
                    Exam.end_time >= now,
                    Exam.end_time <= now + lead,
                    Exam.end_warning_sent.is_(False),
                )
            )
            return result.scalars().all()

    async def get_enrolled_students(self, course_id: int) -> Sequence[Student]:
        async with self.session() as db:
            result = await db.execute(
                select(Student)
                .join(course_enrollments, course_enrollments.c.student_id == Student.id)
                .where(course_enrollments.c.course_id == course_id)
                .order_by(Student.id)
            )
            return result.scalars().all()

    async def is_enrolled(self, course_id: int, student_id: int) -> bool:
        async with self.session() as db:
            result = await db.execute(
                select(func.count())
                .select_from(course_enrollments)
                .where(
                    course_enrollments.c.course_id == course_id,
                    course_enrollments.c.student_id == student_id,
                )
            )
            return result.scalar_one() > 0

    async def enroll(self, course_id: int, student_id: int) -> None:
        async with self.session() as db:
            await db.execute(course_enrollments.insert().values(course_id=course_id, student_id=student_id))
            await db.commit()

    async def get_students_with_started_submissions(self, exam_id: int) -> Sequence[Student]:
        async with self.session() as db:
            result = await db.execute(
                select(Student)
                .join(Submission, Submission.student_id == Student.id)
                .where(Submission.exam_id == exam_id, Submission.status == SubmissionStatus.STARTED)
                .order_by(Student.id)
            )
            return result.scalars().all()

    async def add_violation(self, violation: Violation) -> Violation:
        async with self.session() as db:
            db.add(violation)
            await db.commit()
            await db.refresh(violation)
        return violation

    async def count_violations(self, submission_id: int) -> int:
        async with self.session() as db:
            result = await db.execute(
                select(func.count(Violation.id)).where(Violation.submission_id == submission_id)
            )
            return result.scalar_one()

    async def list_violations(
        self,
        submission_id: Optional[int] = None,
        exam_id: Optional[int] = None,
        student_id: Optional[int] = None,
    ) -> List[Violation]:
        stmt = select(Violation)
        if submission_id is not None:
            stmt = stmt.where(Violation.submission_id == submission_id)
        if exam_id is not None:
            stmt = stmt.where(Violation.exam_id == exam_id)
        if student_id is not None:
            stmt = stmt.where(Violation.student_id == student_id)
        stmt = stmt.order_by(Violation.timestamp.desc(), Violation.id.desc())

        async with self.session() as db:
            result = await db.execute(stmt)
            return list(result.scalars().all())

    async def add(self, entity):
        """Persist an arbitrary mapped entity (accounts, courses)."""
        async with self.session() as db:
            db.add(entity)
            await db.commit()
            await db.refresh(entity)
        return entity
