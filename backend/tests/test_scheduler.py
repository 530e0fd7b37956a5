"""
Tests for the exam sweep and the scheduler loop
"""
import asyncio
from datetime import timedelta

import pytest

from cbt.core.exceptions import StoreUnavailableError
from cbt.models import ExamStatus, SubmissionStatus, SubmissionType
from cbt.services.exam_lifecycle import ExamStateMachine
from cbt.services.scheduler import ExamScheduler, IntervalTicker

from .conftest import T0


class CountingTicker:
    """Ticks a fixed number of times without sleeping."""

    def __init__(self, count):
        self.count = count
        self.interval_seconds = 0
        self.stopped = False

    async def ticks(self):
        for _ in range(self.count):
            if self.stopped:
                return
            yield
            await asyncio.sleep(0)

    def stop(self):
        self.stopped = True

    def reset(self):
        self.stopped = False


class TestExamTransitions:

    async def test_exam_lifecycle_scenario(self, services, world, notifier):
        activation = await services.scheduler.run_sweep(T0 + timedelta(minutes=1))
        assert activation.activated == 1
        assert (await services.store.get_exam(world.exam.id)).status == ExamStatus.ACTIVE

        ada = await services.submissions.start(world.exam.id, world.ada.id, T0 + timedelta(minutes=1))
        bayo = await services.submissions.start(world.exam.id, world.bayo.id, T0 + timedelta(minutes=30))
        await services.submissions.submit(bayo.submission.id, T0 + timedelta(minutes=40))

        closing = await services.scheduler.run_sweep(T0 + timedelta(minutes=61))
        assert closing.completed == 1
        assert closing.auto_submitted == 1
        assert (await services.store.get_exam(world.exam.id)).status == ExamStatus.COMPLETED

        expired = await services.store.get_submission(ada.submission.id)
        assert expired.status == SubmissionStatus.AUTO_SUBMITTED
        assert expired.submission_type == SubmissionType.AUTO
        assert expired.time_spent == 3600
        assert expired.flag_reason == "time expired"

        manual = await services.store.get_submission(bayo.submission.id)
        assert manual.status == SubmissionStatus.SUBMITTED

    async def test_one_sweep_can_activate_and_complete(self, services, world):
        report = await services.scheduler.run_sweep(T0 + timedelta(hours=2))

        assert report.activated == 1
        assert report.completed == 1
        assert (await services.store.get_exam(world.exam.id)).status == ExamStatus.COMPLETED

    async def test_nothing_happens_before_start(self, services, world):
        report = await services.scheduler.run_sweep(T0 - timedelta(minutes=30))

        assert report.changes == 0
        assert (await services.store.get_exam(world.exam.id)).status == ExamStatus.PENDING

    async def test_status_never_moves_backwards(self, services, world):
        await services.scheduler.run_sweep(T0 + timedelta(hours=2))
        exam = await services.store.get_exam(world.exam.id)

        assert await services.exams.activate(exam, T0 + timedelta(hours=3)) is False
        assert await services.exams.complete(exam, T0 + timedelta(hours=3)) is False
        await services.scheduler.run_sweep(T0 + timedelta(minutes=1))

        assert (await services.store.get_exam(world.exam.id)).status == ExamStatus.COMPLETED

    async def test_stale_copy_cannot_reapply_transition(self, services, world):
        stale = await services.store.get_exam(world.exam.id)
        await services.scheduler.run_sweep(T0 + timedelta(minutes=1))

        # The stale snapshot still says pending, the store does not
        assert await services.exams.activate(stale, T0 + timedelta(minutes=2)) is False

    def test_transition_table(self):
        assert ExamStateMachine.can_transition(ExamStatus.PENDING, ExamStatus.ACTIVE)
        assert not ExamStateMachine.can_transition(ExamStatus.PENDING, ExamStatus.COMPLETED)
        assert not ExamStateMachine.can_transition(ExamStatus.COMPLETED, ExamStatus.ACTIVE)
        assert not ExamStateMachine.can_transition(ExamStatus.ACTIVE, ExamStatus.PENDING)


class TestIdempotence:

    async def test_repeated_sweep_changes_nothing(self, services, started, world, notifier):
        now = T0 + timedelta(minutes=61)
        first = await services.scheduler.run_sweep(now)
        dispatched = notifier.total

        second = await services.scheduler.run_sweep(now)

        assert first.changes > 0
        assert second.changes == 0
        assert second.failures == []
        assert notifier.total == dispatched

    async def test_reminder_sent_once_per_student(self, services, world, notifier):
        first = await services.scheduler.run_sweep(T0 - timedelta(minutes=4))
        second = await services.scheduler.run_sweep(T0 - timedelta(minutes=3))

        assert first.reminders_sent == 2
        assert second.reminders_sent == 0
        assert sorted(notifier.reminders) == sorted([
            (world.ada.id, world.exam.id),
            (world.bayo.id, world.exam.id),
        ])
        assert (await services.store.get_exam(world.exam.id)).reminder_sent is True

    async def test_no_reminder_outside_lead_window(self, services, world, notifier):
        await services.scheduler.run_sweep(T0 - timedelta(minutes=6))

        assert notifier.reminders == []
        assert (await services.store.get_exam(world.exam.id)).reminder_sent is False

    async def test_reminder_failure_is_not_fatal(self, services, world, notifier):
        notifier.failing.add(world.ada.email)

        report = await services.scheduler.run_sweep(T0 - timedelta(minutes=2))

        assert report.reminders_sent == 1
        assert notifier.reminders == [(world.bayo.id, world.exam.id)]
        assert (await services.store.get_exam(world.exam.id)).reminder_sent is True

        again = await services.scheduler.run_sweep(T0 - timedelta(minutes=1))
        assert again.reminders_sent == 0

    async def test_end_warning_targets_students_still_writing(self, services, started, world, notifier):
        bayo = await services.submissions.start(world.exam.id, world.bayo.id, T0 + timedelta(minutes=5))
        await services.submissions.submit(bayo.submission.id, T0 + timedelta(minutes=50))

        report = await services.scheduler.run_sweep(T0 + timedelta(minutes=56))
        again = await services.scheduler.run_sweep(T0 + timedelta(minutes=57))

        assert report.end_warnings_sent == 1
        assert again.end_warnings_sent == 0
        assert notifier.end_warnings == [(world.ada.id, world.exam.id)]
        assert (await services.store.get_exam(world.exam.id)).end_warning_sent is True


class TestErrorIsolation:

    async def test_failing_exam_does_not_block_others(self, services, store, world, monkeypatch):
        other = await store.create_exam(
            course_id=world.course.id,
            lecturer_id=world.lecturer.id,
            start_time=T0,
            end_time=T0 + timedelta(minutes=90),
        )
        original = services.exams.activate

        async def flaky_activate(exam, now):
            if exam.id == world.exam.id:
                raise RuntimeError("deadlock detected")
            return await original(exam, now)

        monkeypatch.setattr(services.exams, "activate", flaky_activate)

        report = await services.scheduler.run_sweep(T0 + timedelta(minutes=1))

        assert report.activated == 1
        assert report.failures == [f"activate exam {world.exam.id}"]
        assert (await store.get_exam(other.id)).status == ExamStatus.ACTIVE
        assert (await store.get_exam(world.exam.id)).status == ExamStatus.PENDING

        monkeypatch.setattr(services.exams, "activate", original)
        retry = await services.scheduler.run_sweep(T0 + timedelta(minutes=2))
        assert retry.activated == 1

    async def test_unreachable_store_aborts_sweep(self, services, world, monkeypatch):
        async def unreachable(now):
            raise StoreUnavailableError("connection refused")

        monkeypatch.setattr(services.store, "find_exams_to_complete", unreachable)

        with pytest.raises(StoreUnavailableError):
            await services.scheduler.run_sweep(T0 + timedelta(minutes=61))


class TestSchedulerLoop:

    async def test_run_forever_survives_aborted_sweeps(self, store, notifier, world, monkeypatch):
        calls = []
        scheduler = ExamScheduler(
            store, notifier, ticker=CountingTicker(3), clock=lambda: T0 + timedelta(minutes=1)
        )

        async def sweep(now=None):
            calls.append(now)
            if len(calls) == 1:
                raise StoreUnavailableError("connection refused")

        monkeypatch.setattr(scheduler, "run_sweep", sweep)

        await scheduler.run_forever()

        assert len(calls) == 3

    async def test_start_and_stop(self, store, notifier, world):
        scheduler = ExamScheduler(
            store, notifier, ticker=IntervalTicker(3600), clock=lambda: T0 + timedelta(minutes=1)
        )

        scheduler.start()
        for _ in range(50):
            await asyncio.sleep(0.01)
            if (await store.get_exam(world.exam.id)).status == ExamStatus.ACTIVE:
                break
        await scheduler.stop()

        assert (await store.get_exam(world.exam.id)).status == ExamStatus.ACTIVE
        assert scheduler._task is None

    async def test_restart_after_stop_keeps_sweeping(self, store, notifier, monkeypatch):
        calls = []
        scheduler = ExamScheduler(store, notifier, ticker=IntervalTicker(3600))

        async def sweep(now=None):
            calls.append(now)

        monkeypatch.setattr(scheduler, "run_sweep", sweep)

        async def run_once():
            expected = len(calls) + 1
            scheduler.start()
            for _ in range(100):
                await asyncio.sleep(0)
                if len(calls) >= expected:
                    break
            await scheduler.stop()

        await run_once()
        await run_once()

        assert len(calls) == 2

    def test_report_to_dict(self):
        from cbt.services.scheduler import SweepReport

        report = SweepReport(now=T0, activated=2)
        assert report.to_dict()["now"] == T0.isoformat()
        assert report.changes == 2
