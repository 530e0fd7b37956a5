import logging

from ..core.async_task import AsyncTask
from ..core.celery_app import celery_app
from ..core.database import AsyncSessionLocal
from ..core.exceptions import StoreUnavailableError
from ..services.notifier import CeleryNotifier
from ..services.scheduler import ExamScheduler
from ..services.store import ExamStore

logger = logging.getLogger(__name__)


@celery_app.task(base=AsyncTask, name="cbt.tasks.maintenance.run_exam_sweep")
async def run_exam_sweep():
    """Run one exam sweep from celery beat."""
    scheduler = ExamScheduler(store=ExamStore(AsyncSessionLocal), notifier=CeleryNotifier())
    try:
        report = await scheduler.run_sweep()
    except StoreUnavailableError as exc:
        # Next beat tick retries
        logger.error(f"Exam sweep aborted: {exc}")
        return {'aborted': True, 'error': exc.message}

    return report.to_dict()
