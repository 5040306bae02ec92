"""
Celery periodic tasks for accessibility scanning.

This module contains tasks that run on a schedule via Celery Beat.
"""
import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(bind=True, name="app.features.accessibility.workers.periodic_tasks.requeue_stale_scans")
def requeue_stale_scans(self):
    """
    Queue fresh scans for resources edited after their latest finished scan,
    and replace scans whose worker died or that were never picked up.
    """
    from app.features.accessibility.workers.tasks import build_orchestrator

    logger.info("Checking for stale accessibility scans...")
    scan_ids = build_orchestrator().requeue_stale_scans()
    logger.info(f"Queued {len(scan_ids)} scans for changed or abandoned resources")
    return {"queued": len(scan_ids), "scan_ids": scan_ids}
