from celery import Celery
from kombu import Queue

from app.platform.config import settings


def create_celery_app() -> Celery:
    """
    Create and configure the Celery application.

    Queue Structure:
    - a11y.orchestration: course-level enumeration and dispatch
    - a11y.scan: one task per resource scan (parse, evaluate rules, reconcile)
    - celery: periodic stale-resource sweep

    Each resource scan is an independent unit of work; the scan row's
    queued -> in_progress claim keeps two workers off the same resource.
    """
    celery_app = Celery(
        "a11y_scanner",
        broker=settings.CELERY_BROKER_URL,
        backend=settings.CELERY_RESULT_BACKEND,
    )

    celery_app.conf.update(
        task_serializer=settings.CELERY_TASK_SERIALIZER,
        result_serializer=settings.CELERY_RESULT_SERIALIZER,
        accept_content=[settings.CELERY_ACCEPT_CONTENT],
        timezone="UTC",
        enable_utc=True,
        task_track_started=settings.CELERY_TASK_TRACK_STARTED,
        task_time_limit=settings.CELERY_TASK_TIME_LIMIT,

        result_expires=3600,

        task_routes={
            "app.features.accessibility.workers.tasks.scan_resource": {"queue": "a11y.scan"},
            "app.features.accessibility.workers.tasks.scan_course": {"queue": "a11y.orchestration"},
            "app.features.accessibility.workers.periodic_tasks.requeue_stale_scans": {"queue": "celery"},
        },

        task_queues=(
            Queue("default"),
            Queue("celery"),
            Queue("a11y.orchestration"),
            Queue("a11y.scan"),
        ),

        task_default_queue="default",

        worker_prefetch_multiplier=1,  # Fair distribution

        task_acks_late=True,  # Acknowledge after task completes
        task_reject_on_worker_lost=True,  # Requeue if worker dies

        beat_schedule={
            "requeue-stale-accessibility-scans": {
                "task": "app.features.accessibility.workers.periodic_tasks.requeue_stale_scans",
                "schedule": settings.A11Y_STALE_SWEEP_INTERVAL_SECONDS,
            },
        },
    )

    celery_app.autodiscover_tasks(["app.features.accessibility.workers"])

    return celery_app


# Global Celery app instance
celery_app = create_celery_app()
