"""Celery workers module - imports all task modules for autodiscovery."""

from app.features.accessibility.workers import tasks  # noqa: F401
from app.features.accessibility.workers import periodic_tasks  # noqa: F401
