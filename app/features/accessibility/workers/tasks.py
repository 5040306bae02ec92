import logging
from typing import Any, Dict, List, Optional

from app.features.accessibility.exceptions import CourseResourcesUnavailableError
from app.features.accessibility.services.orchestrator import ScanOrchestrator
from app.features.accessibility.services.rule_engine import shared_rule_engine
from app.platform.celery_app import celery_app
from app.platform.config import settings
from app.platform.db.session import SessionLocal

logger = logging.getLogger(__name__)


def dispatch_scan(scan_id: str) -> None:
    """Send a queued scan to the a11y.scan queue."""
    scan_resource.delay(scan_id)
    logger.info(f"Dispatched accessibility scan {scan_id}")


def build_orchestrator() -> ScanOrchestrator:
    return ScanOrchestrator(SessionLocal, engine=shared_rule_engine(), dispatcher=dispatch_scan)


@celery_app.task(
    bind=True,
    name="app.features.accessibility.workers.tasks.scan_resource",
)
def scan_resource(self, scan_id: str) -> Dict[str, Any]:
    """
    Run one resource scan.

    Problems with the resource itself are recorded on the scan row, so the
    task only errors when scan bookkeeping breaks. No automatic retry: the
    next attempt is a new scan row.
    """
    logger.info(f"[{scan_id}] Starting accessibility scan")
    state = build_orchestrator().process_scan(scan_id)
    state_value = state.value if state else None
    logger.info(f"[{scan_id}] Accessibility scan finished: {state_value}")
    return {"scan_id": scan_id, "workflow_state": state_value}


@celery_app.task(
    bind=True,
    name="app.features.accessibility.workers.tasks.scan_course",
    max_retries=3,
    default_retry_delay=30,
    autoretry_for=(CourseResourcesUnavailableError,),
    retry_backoff=True,
)
def scan_course(
    self,
    course_id: str,
    resource_types: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """
    Queue every scannable resource of a course and fan out one scan task each.

    Args:
        course_id: course to scan
        resource_types: optional subset of resource types

    Returns:
        Dict with the queued scan ids
    """
    logger.info(f"[course {course_id}] Enumerating resources for accessibility scan")
    scan_ids = build_orchestrator().enqueue_course_scan(
        course_id,
        resource_types=resource_types,
        scanning_enabled=settings.A11Y_SCANNING_ENABLED,
    )
    return {"course_id": course_id, "scan_ids": scan_ids, "count": len(scan_ids)}
