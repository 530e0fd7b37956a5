import asyncio
from celery import Task


class AsyncTask(Task):
    """
    Runs coroutine tasks on the worker process's persistent event loop,
    so SQLAlchemy's async connection pool always sees the same loop.
    """

    def __call__(self, *args, **kwargs):
        from .celery_app import get_worker_loop

        loop = get_worker_loop()
        if loop is None:
            # Eager execution or a solo pool without worker_process_init
            return asyncio.run(self.run(*args, **kwargs))

        return loop.run_until_complete(self.run(*args, **kwargs))
