"""
Pytest configuration for the exam engine tests
"""
import os
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("NOTIFICATION_BACKEND", "log")

from cbt.core.database import build_engine, build_session_factory, create_db_and_tables
from cbt.core.exceptions import NotificationError
from cbt.models import Student, Lecturer, Admin, Course
from cbt.services import create_services
from cbt.services.notifier import Notifier
from cbt.services.store import ExamStore


T0 = datetime(2026, 3, 2, 9, 0, 0)


class RecordingNotifier(Notifier):
    """Collects dispatches; raises for recipients listed in ``failing``."""

    def __init__(self):
        self.reminders = []
        self.end_warnings = []
        self.confirmations = []
        self.failing = set()

    def _check(self, student):
        if student.email in self.failing:
            raise NotificationError(f"SMTP refused {student.email}")

    def send_exam_start_reminder(self, student, exam):
        self._check(student)
        self.reminders.append((student.id, exam.id))

    def send_exam_end_warning(self, student, exam):
        self._check(student)
        self.end_warnings.append((student.id, exam.id))

    def send_submission_confirmation(self, student, exam, submission):
        self._check(student)
        self.confirmations.append((student.id, submission.id, submission.status))

    @property
    def total(self):
        return len(self.reminders) + len(self.end_warnings) + len(self.confirmations)


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'cbt.db'}")
    await create_db_and_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def store(session_factory):
    return ExamStore(session_factory)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def services(session_factory, notifier):
    return create_services(
        session_factory,
        notifier,
        violation_threshold=3,
        reminder_lead_minutes=5,
        interval_seconds=60,
    )


@pytest.fixture
async def world(store):
    """A lecturer, a course with two enrolled students and one outsider, and a
    one-hour exam starting at T0."""
    lecturer = await store.add(Lecturer(fullname="Dr. Okafor", email="okafor@unidel.edu.ng"))
    admin = await store.add(Admin(fullname="Registry", email="registry@unidel.edu.ng"))
    course = await store.add(Course(course_code="CSC301", course_title="Operating Systems", lecturer_id=lecturer.id))
    ada = await store.add(Student(fullname="Ada Eze", email="ada@students.unidel.edu.ng", matric_number="CSC/001"))
    bayo = await store.add(Student(fullname="Bayo Ade", email="bayo@students.unidel.edu.ng", matric_number="CSC/002"))
    outsider = await store.add(Student(fullname="Chi Obi", email="chi@students.unidel.edu.ng", matric_number="MTH/009"))
    await store.enroll(course.id, ada.id)
    await store.enroll(course.id, bayo.id)

    exam = await store.create_exam(
        course_id=course.id,
        lecturer_id=lecturer.id,
        start_time=T0,
        end_time=T0 + timedelta(minutes=60),
        title="CSC301 Midterm",
    )
    return SimpleNamespace(
        lecturer=lecturer,
        admin=admin,
        course=course,
        ada=ada,
        bayo=bayo,
        outsider=outsider,
        exam=exam,
    )


@pytest.fixture
async def started(services, world):
    """The exam activated at T0+1m with Ada's attempt started at that moment."""
    now = T0 + timedelta(minutes=1)
    await services.scheduler.run_sweep(now)
    result = await services.submissions.start(world.exam.id, world.ada.id, now)
    return result.submission
