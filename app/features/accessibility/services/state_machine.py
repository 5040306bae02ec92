"""
Scan State Machine

    queued -> in_progress -> completed
                          -> failed
    queued -> failed            (resource gone before processing started)

completed and failed are terminal; the next attempt is a new scan row with
the next sequence number. Every transition is a conditional UPDATE on the
current state, so two workers can never both claim the same queued scan.

An active scan holds a lease: in_progress scans expire CELERY_TASK_TIME_LIMIT
seconds after they were claimed, queued scans A11Y_QUEUED_SCAN_TIMEOUT_SECONDS
after they were queued. Expired scans are failed so the resource can be
scanned again.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased

from app.features.accessibility.exceptions import InvalidScanTransitionError, ScanAbandonedError
from app.features.accessibility.models.scan import (
    ACTIVE_SCAN_STATES,
    AccessibilityResourceScan,
    ScanWorkflowState,
)
from app.features.accessibility.services.resource_store import ResourceRef, ResourceSnapshot
from app.platform.config import settings
from app.platform.utils.clock import utcnow

logger = logging.getLogger(__name__)

TRANSITIONS = {
    ScanWorkflowState.queued: {ScanWorkflowState.in_progress, ScanWorkflowState.failed},
    ScanWorkflowState.in_progress: {ScanWorkflowState.completed, ScanWorkflowState.failed},
    ScanWorkflowState.completed: set(),
    ScanWorkflowState.failed: set(),
}


def can_transition(from_state: ScanWorkflowState, to_state: ScanWorkflowState) -> bool:
    return to_state in TRANSITIONS[from_state]


def _resource_filter(ref: ResourceRef):
    return (
        AccessibilityResourceScan.resource_type == ref.resource_type,
        AccessibilityResourceScan.resource_id == ref.resource_id,
    )


class ScanStateMachine:
    def __init__(
        self,
        db: Session,
        lease_seconds: Optional[int] = None,
        queue_timeout_seconds: Optional[int] = None,
    ):
        self.db = db
        self.lease_seconds = lease_seconds if lease_seconds is not None else settings.CELERY_TASK_TIME_LIMIT
        self.queue_timeout_seconds = (
            queue_timeout_seconds
            if queue_timeout_seconds is not None
            else settings.A11Y_QUEUED_SCAN_TIMEOUT_SECONDS
        )

    # ── Lookups ─────────────────────────────────

    def get_scan(self, scan_id: str) -> Optional[AccessibilityResourceScan]:
        return self.db.get(AccessibilityResourceScan, scan_id)

    def current_scan(self, ref: ResourceRef) -> Optional[AccessibilityResourceScan]:
        """Most recent scan of a resource, whatever its state."""
        return self.db.execute(
            select(AccessibilityResourceScan)
            .where(*_resource_filter(ref))
            .order_by(AccessibilityResourceScan.sequence.desc())
            .limit(1)
        ).scalar_one_or_none()

    def active_scan(self, ref: ResourceRef) -> Optional[AccessibilityResourceScan]:
        return self.db.execute(
            select(AccessibilityResourceScan).where(
                *_resource_filter(ref),
                AccessibilityResourceScan.workflow_state.in_(ACTIVE_SCAN_STATES),
            )
        ).scalar_one_or_none()

    def abandoned_scans(self, course_id: Optional[str] = None) -> List[AccessibilityResourceScan]:
        """Active scans whose lease has run out."""
        claimed_before, queued_before = self._lease_cutoffs(utcnow())
        query = select(AccessibilityResourceScan).where(
            or_(
                and_(
                    AccessibilityResourceScan.workflow_state == ScanWorkflowState.in_progress,
                    AccessibilityResourceScan.started_at < claimed_before,
                ),
                and_(
                    AccessibilityResourceScan.workflow_state == ScanWorkflowState.queued,
                    AccessibilityResourceScan.queued_at < queued_before,
                ),
            )
        )
        if course_id is not None:
            query = query.where(AccessibilityResourceScan.course_id == course_id)
        return list(self.db.execute(query).scalars())

    def is_abandoned(self, scan: AccessibilityResourceScan, now: Optional[datetime] = None) -> bool:
        claimed_before, queued_before = self._lease_cutoffs(now or utcnow())
        if scan.workflow_state == ScanWorkflowState.in_progress:
            return scan.started_at is not None and scan.started_at < claimed_before
        if scan.workflow_state == ScanWorkflowState.queued:
            return scan.queued_at < queued_before
        return False

    def _lease_cutoffs(self, now: datetime) -> Tuple[datetime, datetime]:
        return (
            now - timedelta(seconds=self.lease_seconds),
            now - timedelta(seconds=self.queue_timeout_seconds),
        )

    # ── Transitions ─────────────────────────────

    def enqueue(self, resource: ResourceSnapshot) -> Tuple[AccessibilityResourceScan, bool]:
        """
        Create a queued scan for a resource unless one is already active.

        Returns:
            (scan, created): the new scan, or the already active one with created=False
        """
        existing = self.active_scan(resource.ref)
        if existing is not None and self.is_abandoned(existing):
            self.expire(existing)
            existing = self.active_scan(resource.ref)
        if existing is not None:
            return existing, False

        last_sequence = self.db.execute(
            select(func.max(AccessibilityResourceScan.sequence)).where(*_resource_filter(resource.ref))
        ).scalar()

        scan = AccessibilityResourceScan(
            course_id=resource.course_id,
            resource_type=resource.ref.resource_type,
            resource_id=resource.ref.resource_id,
            sequence=(last_sequence or 0) + 1,
            workflow_state=ScanWorkflowState.queued,
            resource_name=resource.title,
            resource_workflow_state=resource.workflow_state,
            resource_updated_at=resource.updated_at,
            queued_at=utcnow(),
        )
        self.db.add(scan)
        try:
            self.db.commit()
        except IntegrityError:
            # Another enqueue won the race for this resource
            self.db.rollback()
            existing = self.active_scan(resource.ref)
            if existing is None:
                raise
            return existing, False

        logger.info(f"Queued accessibility scan {scan.id} for {resource.ref} (#{scan.sequence})")
        return scan, True

    def claim(self, scan: AccessibilityResourceScan, resource: ResourceSnapshot) -> bool:
        """
        queued -> in_progress, snapshotting the resource as it is read.

        Returns:
            False when another worker claimed the scan first or it is no longer queued
        """
        result = self.db.execute(
            update(AccessibilityResourceScan)
            .where(
                AccessibilityResourceScan.id == scan.id,
                AccessibilityResourceScan.workflow_state == ScanWorkflowState.queued,
            )
            .values(
                workflow_state=ScanWorkflowState.in_progress,
                started_at=utcnow(),
                resource_name=resource.title,
                resource_workflow_state=resource.workflow_state,
                resource_updated_at=resource.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        self.db.refresh(scan)
        claimed = result.rowcount == 1
        if claimed:
            logger.info(f"Claimed accessibility scan {scan.id} for {resource.ref}")
        else:
            logger.info(f"Scan {scan.id} was not claimable (state={scan.workflow_state.value})")
        return claimed

    def complete(self, scan: AccessibilityResourceScan, issue_count: int) -> AccessibilityResourceScan:
        return self._transition(
            scan,
            ScanWorkflowState.completed,
            issue_count=issue_count,
            error_message=None,
            completed_at=utcnow(),
        )

    def fail(self, scan: AccessibilityResourceScan, error: BaseException) -> AccessibilityResourceScan:
        message = str(error) or error.__class__.__name__
        logger.warning(f"Accessibility scan {scan.id} failed: {message}")
        return self._transition(
            scan,
            ScanWorkflowState.failed,
            error_message=message,
            completed_at=utcnow(),
        )

    def expire(self, scan: AccessibilityResourceScan) -> bool:
        """
        Fail an abandoned scan.

        Returns:
            False when the scan moved on (a worker finished it) before it could be failed
        """
        seconds = (
            self.lease_seconds
            if scan.workflow_state == ScanWorkflowState.in_progress
            else self.queue_timeout_seconds
        )
        try:
            self.fail(scan, ScanAbandonedError(scan.id, scan.workflow_state.value, seconds))
        except InvalidScanTransitionError:
            logger.info(f"Scan {scan.id} finished before it could be expired")
            return False
        return True

    def _transition(self, scan: AccessibilityResourceScan, to_state: ScanWorkflowState, **values):
        from_state = scan.workflow_state
        if not can_transition(from_state, to_state):
            raise InvalidScanTransitionError(scan.id, from_state.value, to_state.value)

        result = self.db.execute(
            update(AccessibilityResourceScan)
            .where(
                AccessibilityResourceScan.id == scan.id,
                AccessibilityResourceScan.workflow_state == from_state,
            )
            .values(workflow_state=to_state, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            self.db.refresh(scan)
            raise InvalidScanTransitionError(scan.id, scan.workflow_state.value, to_state.value)

        self.db.commit()
        self.db.refresh(scan)
        logger.info(f"Scan {scan.id}: {from_state.value} -> {to_state.value}")
        return scan

    @staticmethod
    def is_stale(scan: AccessibilityResourceScan, resource: ResourceSnapshot) -> bool:
        """True when the resource changed after the scan read it."""
        if scan.resource_updated_at is None:
            return False
        return resource.updated_at > scan.resource_updated_at


def latest_sequence_condition(*states: ScanWorkflowState):
    """
    WHERE clause selecting each resource's most recent scan, optionally the
    most recent scan among ``states``.
    """
    latest = aliased(AccessibilityResourceScan)
    subquery = select(func.max(latest.sequence)).where(
        latest.resource_type == AccessibilityResourceScan.resource_type,
        latest.resource_id == AccessibilityResourceScan.resource_id,
    )
    if states:
        subquery = subquery.where(latest.workflow_state.in_(states))
    return AccessibilityResourceScan.sequence == subquery.correlate(AccessibilityResourceScan).scalar_subquery()
