"""
Issue Reconciler

Merges one scan pass's findings into the stored issues of a resource.

Identity is (resource, rule_type, node_path):
- finding matches an active issue     -> touch last_detected_at
- finding matches a resolved issue    -> re-open the same row
- finding matches a dismissed issue   -> suppressed, nothing written
- finding matches nothing             -> new active issue
- active issue with no finding        -> resolved

All writes for a resource commit together or not at all.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.features.accessibility.exceptions import ReconciliationCommitError
from app.features.accessibility.models.issue import AccessibilityIssue, IssueWorkflowState
from app.features.accessibility.models.scan import AccessibilityResourceScan
from app.features.accessibility.services.rules import Finding
from app.platform.utils.clock import utcnow

logger = logging.getLogger(__name__)

Identity = Tuple[str, str]


@dataclass
class ReconciliationPlan:
    create: List[Finding] = field(default_factory=list)
    touch: List[Tuple[AccessibilityIssue, Finding]] = field(default_factory=list)
    reopen: List[Tuple[AccessibilityIssue, Finding]] = field(default_factory=list)
    resolve: List[AccessibilityIssue] = field(default_factory=list)
    suppressed: List[Finding] = field(default_factory=list)

    @property
    def active_count(self) -> int:
        """Active issues on the resource once the plan is applied."""
        return len(self.create) + len(self.touch) + len(self.reopen)

    def summary(self) -> Dict[str, int]:
        return {
            "created": len(self.create),
            "touched": len(self.touch),
            "reopened": len(self.reopen),
            "resolved": len(self.resolve),
            "suppressed": len(self.suppressed),
        }


def dedupe_findings(findings: Iterable[Finding]) -> List[Finding]:
    """Keep the first finding per (rule_type, node_path), preserving order."""
    seen = set()
    unique = []
    for finding in findings:
        if finding.identity in seen:
            continue
        seen.add(finding.identity)
        unique.append(finding)
    return unique


class IssueReconciler:
    def plan(self, findings: Iterable[Finding], existing: Iterable[AccessibilityIssue]) -> ReconciliationPlan:
        """
        Partition findings against a resource's stored issues. Pure; writes nothing.
        """
        by_state: Dict[IssueWorkflowState, Dict[Identity, AccessibilityIssue]] = {
            state: {} for state in IssueWorkflowState
        }
        for issue in existing:
            by_state[issue.workflow_state][issue.identity] = issue

        active = by_state[IssueWorkflowState.active]
        resolved = by_state[IssueWorkflowState.resolved]
        dismissed = by_state[IssueWorkflowState.dismissed]

        plan = ReconciliationPlan()
        seen = set()
        for finding in dedupe_findings(findings):
            key = finding.identity
            seen.add(key)
            if key in dismissed:
                plan.suppressed.append(finding)
            elif key in active:
                plan.touch.append((active[key], finding))
            elif key in resolved:
                plan.reopen.append((resolved[key], finding))
            else:
                plan.create.append(finding)

        plan.resolve = [issue for key, issue in active.items() if key not in seen]
        return plan

    def load_issues(self, db: Session, scan: AccessibilityResourceScan) -> List[AccessibilityIssue]:
        return list(
            db.execute(
                select(AccessibilityIssue).where(
                    AccessibilityIssue.resource_type == scan.resource_type,
                    AccessibilityIssue.resource_id == scan.resource_id,
                )
            ).scalars()
        )

    def reconcile(
        self,
        db: Session,
        scan: AccessibilityResourceScan,
        findings: Iterable[Finding],
        now: Optional[datetime] = None,
    ) -> ReconciliationPlan:
        """
        Apply findings for the scan's resource in one transaction.

        Raises:
            ReconciliationCommitError: the batch was rolled back; stored issues are unchanged
        """
        plan = self.stage(db, scan, findings, now)
        try:
            db.commit()
        except SQLAlchemyError as e:
            self._rollback(db, scan, e)
        return plan

    def stage(
        self,
        db: Session,
        scan: AccessibilityResourceScan,
        findings: Iterable[Finding],
        now: Optional[datetime] = None,
    ) -> ReconciliationPlan:
        """
        Write the plan to the session without committing, so the caller can
        commit it together with the scan's own transition.

        Raises:
            ReconciliationCommitError: the batch was rolled back; stored issues are unchanged
        """
        now = now or utcnow()
        try:
            plan = self.plan(findings, self.load_issues(db, scan))
            self._apply(db, scan, plan, now)
        except SQLAlchemyError as e:
            self._rollback(db, scan, e)

        logger.info(f"Reconciled scan {scan.id}: {plan.summary()}")
        return plan

    
    def _rollback(db: Session, scan: AccessibilityResourceScan, error: SQLAlchemyError) -> None:
        db.rollback()
        logger.error(f"Reconciliation for scan {scan.id} rolled back: {error}")
        raise ReconciliationCommitError(f"Failed to save accessibility issues: {error}") from error

    @staticmethod
    def _apply(db: Session, scan: AccessibilityResourceScan, plan: ReconciliationPlan, now: datetime) -> None:
        for finding in plan.create:
            db.add(
                AccessibilityIssue(
                    course_id=scan.course_id,
                    resource_type=scan.resource_type,
                    resource_id=scan.resource_id,
                    accessibility_resource_scan_id=scan.id,
                    rule_type=finding.rule_type,
                    node_path=finding.node_path,
                    workflow_state=IssueWorkflowState.active,
                    issue_metadata=finding.metadata,
                    first_detected_at=now,
                    last_detected_at=now,
                )
            )

        for issue, finding in plan.touch:
            issue.last_detected_at = now
            issue.accessibility_resource_scan_id = scan.id
            issue.issue_metadata = finding.metadata

        for issue, finding in plan.reopen:
            issue.workflow_state = IssueWorkflowState.active
            issue.resolved_at = None
            issue.last_detected_at = now
            issue.accessibility_resource_scan_id = scan.id
            issue.issue_metadata = finding.metadata

        for issue in plan.resolve:
            issue.workflow_state = IssueWorkflowState.resolved
            issue.resolved_at = now
            issue.accessibility_resource_scan_id = scan.id

        db.flush()
