#!/usr/bin/env python3
"""
Celery worker startup script for the CBT exam engine.
Run beat alongside it to schedule the exam sweep:

    celery -A cbt.core.celery_app beat
"""

from cbt.core.celery_app import celery_app
from cbt.core.config import settings
from cbt.core.logging_config import setup_logging

if __name__ == '__main__':
    setup_logging(settings.log_level)
    celery_app.start()
