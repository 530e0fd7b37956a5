from celery import Celery
from celery.signals import worker_process_init, worker_process_shutdown
import logging
import asyncio

from .config import settings

logging.getLogger('celery.backends.redis').setLevel(logging.ERROR)

_WORKER_LOOP = None


@worker_process_init.connect
def init_async_loop(**kwargs):
    """
    Called once when each worker process starts.
    Creates and stores a persistent event loop for this process.
    """
    global _WORKER_LOOP
    _WORKER_LOOP = asyncio.new_event_loop()
    asyncio.set_event_loop(_WORKER_LOOP)
    logging.info(f"Initialized asyncio event loop for worker process {kwargs.get('sender', 'unknown')}")


@worker_process_shutdown.connect
def shutdown_async_loop(**kwargs):
    global _WORKER_LOOP
    if _WORKER_LOOP:
        _WORKER_LOOP.close()
        asyncio.set_event_loop(None)
        _WORKER_LOOP = None
        logging.info("Closed asyncio event loop for worker process")


def get_worker_loop():
    """Get the persistent event loop for this worker process."""
    return _WORKER_LOOP


celery_app = Celery(
    "cbt_engine_worker",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        'cbt.tasks.maintenance',
        'cbt.tasks.notifications',
    ]
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,

    task_routes={
        'cbt.tasks.maintenance.*': {'queue': 'scheduler'},
        'cbt.tasks.notifications.*': {'queue': 'notifications'},
    },

    worker_prefetch_multiplier=1,
    task_acks_late=True,
    worker_max_tasks_per_child=1000,

    task_soft_time_limit=120,
    task_time_limit=300,

    result_expires=3600,
    broker_connection_retry_on_startup=True,

    task_default_retry_delay=60,
    task_max_retries=3,

    beat_schedule={
        'run-exam-sweep': {
            'task': 'cbt.tasks.maintenance.run_exam_sweep',
            'schedule': float(settings.sweep_interval_seconds),
            # A sweep older than one interval is superseded by the next one
            'options': {'expires': float(settings.sweep_interval_seconds)},
        },
    },
)


if __name__ == '__main__':
    celery_app.start()
