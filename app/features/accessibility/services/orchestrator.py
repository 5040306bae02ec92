"""
Scan Orchestrator

Drives resources through parse -> rule evaluation -> reconciliation under
the scan state machine. Each resource is its own unit of work with its own
session: a failure is recorded on that resource's scan and never stops the
rest of the course. A scan that could not be handed to the broker stays
queued and is dispatched again on the next enqueue for its resource.
"""
import logging
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.features.accessibility.exceptions import (
    InvalidScanTransitionError,
    MalformedContentError,
    ReconciliationCommitError,
    ResourceUnavailableError,
    ScanningDisabledError,
)
from app.features.accessibility.models.resource import ResourceType
from app.features.accessibility.models.scan import (
    TERMINAL_SCAN_STATES,
    AccessibilityResourceScan,
    ScanWorkflowState,
)
from app.features.accessibility.services.content_tree import ContentTree
from app.features.accessibility.services.reconciler import IssueReconciler
from app.features.accessibility.services.resource_store import (
    ResourceRef,
    ResourceSnapshot,
    ResourceStore,
    SqlResourceStore,
    require_resource,
)
from app.features.accessibility.services.rule_engine import RuleEngine, default_rule_engine
from app.features.accessibility.services.rules import Finding
from app.features.accessibility.services.state_machine import ScanStateMachine, latest_sequence_condition
from app.platform.config import settings

logger = logging.getLogger(__name__)

Dispatcher = Callable[[str], None]


def parse_resource_types(values: Optional[Iterable[str]]) -> Optional[List[ResourceType]]:
    """
    Raises:
        ValueError: unknown resource type
    """
    if values is None:
        return None
    return [ResourceType.parse(value) for value in values]


class ScanOrchestrator:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        engine: Optional[RuleEngine] = None,
        reconciler: Optional[IssueReconciler] = None,
        resource_store_factory: Callable[[Session], ResourceStore] = SqlResourceStore,
        dispatcher: Optional[Dispatcher] = None,
        max_content_bytes: Optional[int] = None,
        scannable_types: Optional[Iterable[str]] = None,
    ):
        self.session_factory = session_factory
        self.engine = engine or default_rule_engine(max_workers=settings.A11Y_RULE_WORKERS)
        self.reconciler = reconciler or IssueReconciler()
        self.resource_store_factory = resource_store_factory
        self.dispatcher = dispatcher
        self.max_content_bytes = (
            max_content_bytes if max_content_bytes is not None else settings.A11Y_MAX_CONTENT_BYTES
        )
        self.scannable_types = parse_resource_types(
            scannable_types if scannable_types is not None else settings.A11Y_SCANNABLE_RESOURCE_TYPES
        )

    # ── Enqueueing ──────────────────────────────

    def enqueue_scan(self, ref: ResourceRef, course_id: Optional[str] = None) -> str:
        """
        Queue a scan for one resource; returns the active scan id if one exists.

        Raises:
            ResourceUnavailableError: resource missing, deleted, or outside course_id
        """
        with self.session_factory() as db:
            resource = require_resource(self.resource_store_factory(db), ref)
            if course_id is not None and resource.course_id != course_id:
                raise ResourceUnavailableError(ref)
            scan, created = ScanStateMachine(db).enqueue(resource)
            scan_id = scan.id
            pending = created or scan.workflow_state == ScanWorkflowState.queued

        if pending:
            self._dispatch(scan_id)
        return scan_id

    def enqueue_course_scan(
        self,
        course_id: str,
        resource_types: Optional[Iterable[str]] = None,
        scanning_enabled: bool = True,
    ) -> List[str]:
        """
        Queue scans for every scannable resource of a course.

        Args:
            course_id: course to scan
            resource_types: restrict to these types (within the scannable set)
            scanning_enabled: deployment feature switch

        Returns:
            Scan ids, one per resource (existing active scans are reused;
            those still queued are dispatched again)

        Raises:
            ScanningDisabledError: scanning is switched off
            CourseResourcesUnavailableError: course content cannot be listed
            ValueError: unknown resource type
        """
        return self._enqueue_course(course_id, resource_types, scanning_enabled, dispatch=True)

    def _enqueue_course(
        self,
        course_id: str,
        resource_types: Optional[Iterable[str]],
        scanning_enabled: bool,
        dispatch: bool,
    ) -> List[str]:
        if not scanning_enabled:
            raise ScanningDisabledError("Accessibility scanning is disabled")

        types = self._effective_types(resource_types)
        scan_ids: List[str] = []
        created_ids: List[str] = []
        pending_ids: List[str] = []
        with self.session_factory() as db:
            resources = self.resource_store_factory(db).list_course_resources(course_id, types)
            machine = ScanStateMachine(db)
            for resource in resources:
                scan, created = machine.enqueue(resource)
                scan_ids.append(scan.id)
                if created:
                    created_ids.append(scan.id)
                if scan.workflow_state == ScanWorkflowState.queued:
                    pending_ids.append(scan.id)

        logger.info(
            f"Course {course_id}: {len(resources)} scannable resources, {len(created_ids)} scans queued"
        )
        if dispatch:
            failed = [scan_id for scan_id in pending_ids if not self._dispatch(scan_id)]
            if failed:
                logger.warning(f"Course {course_id}: {len(failed)} scans left queued after dispatch errors")
        return scan_ids

    def _effective_types(self, resource_types: Optional[Iterable[str]]) -> List[ResourceType]:
        requested = parse_resource_types(resource_types)
        if requested is None:
            return list(self.scannable_types)
        return [resource_type for resource_type in requested if resource_type in self.scannable_types]

    def _dispatch(self, scan_id: str) -> bool:
        """Hand a queued scan to the dispatcher; a broker error leaves it queued."""
        if self.dispatcher is None:
            return False
        try:
            self.dispatcher(scan_id)
        except Exception:
            logger.exception(f"Failed to dispatch accessibility scan {scan_id}; it stays queued")
            return False
        return True

    # ── Processing ──────────────────────────────

    def process_scan(self, scan_id: str) -> Optional[ScanWorkflowState]:
        """
        Run one queued scan to completion or failure.

        Returns:
            The scan's workflow state afterwards, None if the scan does not exist
        """
        with self.session_factory() as db:
            machine = ScanStateMachine(db)
            store = self.resource_store_factory(db)

            scan = machine.get_scan(scan_id)
            if scan is None:
                logger.warning(f"Scan {scan_id} not found")
                return None
            if scan.workflow_state != ScanWorkflowState.queued:
                logger.info(f"Scan {scan_id} is {scan.workflow_state.value}, nothing to do")
                return scan.workflow_state

            ref = ResourceRef(scan.resource_type, scan.resource_id)
            resource = store.get_resource(ref)
            if resource is None:
                machine.fail(scan, ResourceUnavailableError(ref))
                return scan.workflow_state

            if not machine.claim(scan, resource):
                return scan.workflow_state

            try:
                findings = self.evaluate(resource)
                # Issue writes commit together with the completed transition
                plan = self.reconciler.stage(db, scan, findings)
                machine.complete(scan, plan.active_count)
            except InvalidScanTransitionError as e:
                # Lease expired and the scan was failed elsewhere
                db.rollback()
                logger.warning(f"Discarding results of scan {scan_id}: {e}")
                return scan.workflow_state
            except (MalformedContentError, ReconciliationCommitError) as e:
                machine.fail(scan, e)
            except Exception as e:
                logger.exception(f"Unexpected error while scanning {ref} (scan {scan_id})")
                db.rollback()
                machine.fail(scan, e)

            self._requeue_if_stale(db, machine, store, scan)
            return scan.workflow_state

    def evaluate(self, resource: ResourceSnapshot) -> List[Finding]:
        """
        Raises:
            MalformedContentError: content cannot be scanned
        """
        tree = ContentTree.parse(resource.body, resource.content_type, self.max_content_bytes)
        findings, errors = self.engine.evaluate_with_errors(tree)
        if errors:
            logger.warning(
                f"{resource.ref}: skipped {len(errors)} failing rule(s): "
                f"{', '.join(error.rule_id for error in errors)}"
            )
        return findings

    def _requeue_if_stale(
        self,
        db: Session,
        machine: ScanStateMachine,
        store: ResourceStore,
        scan: AccessibilityResourceScan,
    ) -> Optional[str]:
        current = store.get_resource(ResourceRef(scan.resource_type, scan.resource_id))
        if current is None or not machine.is_stale(scan, current):
            return None
        fresh, created = machine.enqueue(current)
        if created:
            logger.info(f"{current.ref} changed during scan {scan.id}; queued {fresh.id}")
            self._dispatch(fresh.id)
        return fresh.id

    def run_course_scan(
        self,
        course_id: str,
        resource_types: Optional[Iterable[str]] = None,
        scanning_enabled: bool = True,
    ) -> Dict[str, Optional[ScanWorkflowState]]:
        """Enqueue and process a whole course in this process. Used by scripts and tests."""
        results: Dict[str, Optional[ScanWorkflowState]] = {}
        for scan_id in self._enqueue_course(course_id, resource_types, scanning_enabled, dispatch=False):
            try:
                results[scan_id] = self.process_scan(scan_id)
            except Exception:
                # One resource never takes the rest of the course down
                logger.exception(f"Scan {scan_id} crashed")
                results[scan_id] = ScanWorkflowState.failed
        return results

    # ── Staleness sweep ─────────────────────────

    def requeue_stale_scans(self, course_id: Optional[str] = None) -> List[str]:
        """
        Queue fresh scans for resources edited after their latest finished
        scan, and for resources whose active scan was abandoned.
        """
        queued: List[str] = []
        with self.session_factory() as db:
            machine = ScanStateMachine(db)
            store = self.resource_store_factory(db)

            for scan in machine.abandoned_scans(course_id):
                if not machine.expire(scan):
                    continue
                resource = store.get_resource(ResourceRef(scan.resource_type, scan.resource_id))
                if resource is None:
                    continue
                fresh, created = machine.enqueue(resource)
                if created:
                    logger.info(f"{resource.ref}: replaced abandoned scan {scan.id} with {fresh.id}")
                    self._dispatch(fresh.id)
                    queued.append(fresh.id)

            query = select(AccessibilityResourceScan).where(
                latest_sequence_condition(),
                AccessibilityResourceScan.workflow_state.in_(TERMINAL_SCAN_STATES),
            )
            if course_id is not None:
                query = query.where(AccessibilityResourceScan.course_id == course_id)

            for scan in db.execute(query).scalars().all():
                scan_id = self._requeue_if_stale(db, machine, store, scan)
                if scan_id is not None:
                    queued.append(scan_id)

        if queued:
            logger.info(f"Requeued {len(queued)} stale or abandoned accessibility scans")
        return queued
