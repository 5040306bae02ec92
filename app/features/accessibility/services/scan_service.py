"""
Accessibility Scan Service

Entry point used by the HTTP layer: enqueue scans, report scan status, and
serve filtered issue views for a course.
"""
import logging
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.features.accessibility.exceptions import IssueNotFoundError, ResourceUnavailableError
from app.features.accessibility.models.issue import AccessibilityIssue, IssueWorkflowState
from app.features.accessibility.schemas.scan import (
    IssueItem,
    IssueSummaryResponse,
    ResourceScanItem,
    ScanStatusResponse,
)
from app.features.accessibility.services.orchestrator import ScanOrchestrator
from app.features.accessibility.services.query import IssueQueryService
from app.features.accessibility.services.resource_store import ResourceRef
from app.features.accessibility.services.state_machine import ScanStateMachine
from app.platform.schemas import Page
from app.platform.utils.clock import utcnow

logger = logging.getLogger(__name__)


def format_issue(issue: AccessibilityIssue) -> IssueItem:
    return IssueItem(
        id=issue.id,
        rule_type=issue.rule_type,
        node_path=issue.node_path,
        workflow_state=issue.workflow_state.value,
        metadata=issue.issue_metadata or {},
        first_detected_at=issue.first_detected_at,
        last_detected_at=issue.last_detected_at,
        accessibility_resource_scan_id=issue.accessibility_resource_scan_id,
    )


class AccessibilityScanService:
    def __init__(self, db: Session, orchestrator: ScanOrchestrator):
        self.db = db
        self.orchestrator = orchestrator
        self.queries = IssueQueryService(db)

    def enqueue_scan(self, ref: ResourceRef, course_id: Optional[str] = None) -> str:
        return self.orchestrator.enqueue_scan(ref, course_id)

    def enqueue_course_scan(
        self,
        course_id: str,
        resource_types: Optional[Iterable[str]] = None,
        scanning_enabled: bool = True,
    ) -> List[str]:
        return self.orchestrator.enqueue_course_scan(course_id, resource_types, scanning_enabled)

    def get_scan_status(self, ref: ResourceRef) -> ScanStatusResponse:
        """
        Raises:
            ResourceUnavailableError: the resource has never been scanned
        """
        scan = ScanStateMachine(self.db).current_scan(ref)
        if scan is None:
            raise ResourceUnavailableError(ref, f"No accessibility scan found for {ref}")
        return ScanStatusResponse(
            scan_id=scan.id,
            resource_type=scan.resource_type.value,
            resource_id=scan.resource_id,
            workflow_state=scan.workflow_state.value,
            error_message=scan.error_message,
            sequence=scan.sequence,
            issue_count=scan.issue_count,
            queued_at=scan.queued_at,
            started_at=scan.started_at,
            completed_at=scan.completed_at,
        )

    def query_issues(
        self,
        course_id: str,
        filters=None,
        page: int = 1,
        per_page: Optional[int] = None,
        sort: Optional[str] = None,
        direction: str = "asc",
    ) -> Page[ResourceScanItem]:
        return self.queries.query_issues(course_id, filters, page, per_page, sort, direction)

    def get_issues_summary(self, course_id: str, filters=None) -> IssueSummaryResponse:
        return self.queries.get_issues_summary(course_id, filters)

    def list_resource_issues(
        self, ref: ResourceRef, states: Optional[Iterable[IssueWorkflowState]] = None
    ) -> List[IssueItem]:
        query = (
            select(AccessibilityIssue)
            .where(
                AccessibilityIssue.resource_type == ref.resource_type,
                AccessibilityIssue.resource_id == ref.resource_id,
            )
            .order_by(AccessibilityIssue.rule_type, AccessibilityIssue.node_path)
        )
        if states is not None:
            query = query.where(AccessibilityIssue.workflow_state.in_(list(states)))
        return [format_issue(issue) for issue in self.db.execute(query).scalars()]

    def update_issue_state(self, course_id: str, issue_id: str, workflow_state: str) -> IssueItem:
        """
        Dismiss, re-activate or resolve an issue by hand.

        Raises:
            IssueNotFoundError: no such issue in the course
            ValueError: unknown workflow state
        """
        target = IssueWorkflowState(workflow_state)
        issue = self.db.execute(
            select(AccessibilityIssue).where(
                AccessibilityIssue.id == issue_id,
                AccessibilityIssue.course_id == course_id,
            )
        ).scalar_one_or_none()
        if issue is None:
            raise IssueNotFoundError(issue_id)

        now = utcnow()
        issue.workflow_state = target
        issue.dismissed_at = now if target == IssueWorkflowState.dismissed else None
        issue.resolved_at = now if target == IssueWorkflowState.resolved else None
        self.db.commit()
        self.db.refresh(issue)

        logger.info(f"Issue {issue_id} set to {target.value}")
        return format_issue(issue)
