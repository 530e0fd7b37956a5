import logging

from ..core.async_task import AsyncTask
from ..core.celery_app import celery_app
from ..core.database import AsyncSessionLocal
from ..core.exceptions import NotificationError, NotFoundError
from ..models.account import Role
from ..models.submission import SubmissionStatus
from ..services.notifier import EmailNotifier
from ..services.store import ExamStore

logger = logging.getLogger(__name__)


def _store() -> ExamStore:
    return ExamStore(AsyncSessionLocal)


@celery_app.task(base=AsyncTask, name="cbt.tasks.notifications.send_exam_start_reminder")
async def send_exam_start_reminder(student_id: int, exam_id: int):
    """Deliver one exam start reminder"""
    store = _store()
    try:
        student = await store.get_account(Role.STUDENT, student_id)
        exam = await store.get_exam(exam_id)
        EmailNotifier().send_exam_start_reminder(student, exam)
    except (NotFoundError, NotificationError) as exc:
        logger.error(f"Failed to send reminder to student {student_id} for exam {exam_id}: {exc}")
        return {'sent': False, 'student_id': student_id, 'exam_id': exam_id}

    return {'sent': True, 'student_id': student_id, 'exam_id': exam_id}


@celery_app.task(base=AsyncTask, name="cbt.tasks.notifications.send_exam_end_warning")
async def send_exam_end_warning(student_id: int, exam_id: int):
    """Deliver one end-of-exam warning, unless the student already submitted"""
    store = _store()
    try:
        submission = await store.find_submission(exam_id, student_id)
        if submission is None or submission.status != SubmissionStatus.STARTED:
            return {'sent': False, 'skipped': True, 'reason': 'Submission not in progress'}

        student = await store.get_account(Role.STUDENT, student_id)
        exam = await store.get_exam(exam_id)
        EmailNotifier().send_exam_end_warning(student, exam)
    except (NotFoundError, NotificationError) as exc:
        logger.error(f"Failed to send end warning to student {student_id} for exam {exam_id}: {exc}")
        return {'sent': False, 'student_id': student_id, 'exam_id': exam_id}

    return {'sent': True, 'student_id': student_id, 'exam_id': exam_id}


@celery_app.task(base=AsyncTask, name="cbt.tasks.notifications.send_submission_confirmation")
async def send_submission_confirmation(submission_id: int):
    store = _store()
    try:
        submission = await store.get_submission(submission_id)
        student = await store.get_account(Role.STUDENT, submission.student_id)
        exam = await store.get_exam(submission.exam_id)
        EmailNotifier().send_submission_confirmation(student, exam, submission)
    except (NotFoundError, NotificationError) as exc:
        logger.error(f"Failed to send submission confirmation for {submission_id}: {exc}")
        return {'sent': False, 'submission_id': submission_id}

    return {'sent': True, 'submission_id': submission_id}
