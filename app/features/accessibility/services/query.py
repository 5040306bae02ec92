"""
Issue Query Service

Filterable, paginated views over a course's scans and issues. Filters are
AND-combined; a missing or empty filter object returns everything.
"""
import logging
import math
from typing import Dict, List, Optional

from sqlalchemy import and_, exists, false, func, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from app.features.accessibility.models.issue import AccessibilityIssue, IssueWorkflowState
from app.features.accessibility.models.resource import ResourceType
from app.features.accessibility.models.scan import AccessibilityResourceScan, ScanWorkflowState
from app.features.accessibility.schemas.filters import IssueFilters
from app.features.accessibility.schemas.scan import IssueSummaryResponse, ResourceScanItem
from app.features.accessibility.services.state_machine import latest_sequence_condition
from app.platform.config import settings
from app.platform.schemas import Page

logger = logging.getLogger(__name__)

Scan = AccessibilityResourceScan
Issue = AccessibilityIssue

DEFAULT_SORT = "resource_name"


def _same_resource():
    return and_(Issue.resource_type == Scan.resource_type, Issue.resource_id == Scan.resource_id)


def active_issue_count():
    """Correlated count of a scan's resource's active issues."""
    return (
        select(func.count(Issue.id))
        .where(_same_resource(), Issue.workflow_state == IssueWorkflowState.active)
        .correlate(Scan)
        .scalar_subquery()
    )


def _parse_artifact_types(values: List[str]) -> List[ResourceType]:
    types = []
    for value in values:
        try:
            types.append(ResourceType.parse(value))
        except ValueError:
            logger.debug(f"Ignoring unknown artifact type filter '{value}'")
    return types


def apply_accessibility_filters(query: Select, filters) -> Select:
    """
    Narrow a query over scans by the UI filter object.

    Args:
        query: select over AccessibilityResourceScan
        filters: None, wire-shape dict, or IssueFilters

    Returns:
        The filtered select
    """
    filters = IssueFilters.coerce(filters)
    if filters is None or filters.is_empty:
        return query

    if filters.rule_types:
        query = query.where(
            exists().where(
                _same_resource(),
                Issue.workflow_state == IssueWorkflowState.active,
                Issue.rule_type.in_(filters.rule_types),
            )
        )

    if filters.artifact_types:
        types = _parse_artifact_types(filters.artifact_types)
        query = query.where(Scan.resource_type.in_(types) if types else false())

    if filters.workflow_states:
        query = query.where(Scan.resource_workflow_state.in_(filters.workflow_states))

    if filters.from_date is not None:
        query = query.where(Scan.resource_updated_at >= filters.from_date)

    if filters.to_date is not None:
        query = query.where(Scan.resource_updated_at <= filters.to_date)

    return query


class IssueQueryService:
    SORT_COLUMNS = {
        "resource_name": lambda: Scan.resource_name,
        "resource_type": lambda: Scan.resource_type,
        "resource_workflow_state": lambda: Scan.resource_workflow_state,
        "resource_updated_at": lambda: Scan.resource_updated_at,
        "issue_count": active_issue_count,
    }

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def current_scans(course_id: str) -> Select:
        """Each resource's most recent scan in a course."""
        return select(Scan).where(Scan.course_id == course_id, latest_sequence_condition())

    @staticmethod
    def completed_scans(course_id: str) -> Select:
        """Each resource's most recent completed scan in a course."""
        return select(Scan).where(
            Scan.course_id == course_id,
            latest_sequence_condition(ScanWorkflowState.completed),
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
        """
        One page of the issues table: every resource's current scan with its
        active issue count.
        """
        per_page = per_page or settings.A11Y_DEFAULT_PER_PAGE
        per_page = max(1, min(per_page, settings.A11Y_MAX_PER_PAGE))
        page = max(1, page)

        filtered = apply_accessibility_filters(self.current_scans(course_id), filters)
        total = self.db.execute(select(func.count()).select_from(filtered.subquery())).scalar_one()

        sort_expression = self.SORT_COLUMNS.get(sort or DEFAULT_SORT, self.SORT_COLUMNS[DEFAULT_SORT])()
        if sort is not None and sort not in self.SORT_COLUMNS:
            direction = "asc"
        order = sort_expression.desc() if direction == "desc" else sort_expression.asc()

        issue_count = active_issue_count().label("issue_count")
        rows = self.db.execute(
            filtered.add_columns(issue_count)
            .order_by(order, Scan.id)
            .offset((page - 1) * per_page)
            .limit(per_page)
        ).all()

        items = [self._scan_item(scan, count) for scan, count in rows]
        return Page[ResourceScanItem](
            items=items,
            page=page,
            per_page=per_page,
            total=total,
            page_count=max(1, math.ceil(total / per_page)),
        )

    def get_issues_summary(self, course_id: str, filters=None) -> IssueSummaryResponse:
        """
        Active issue totals over resources whose latest completed scan passes
        the filters. A rule type filter also limits which issues are counted.
        """
        filters = IssueFilters.coerce(filters)
        scans = apply_accessibility_filters(self.completed_scans(course_id), filters).subquery()

        query = (
            select(Issue.rule_type, func.count(Issue.id))
            .join(
                scans,
                and_(
                    Issue.resource_type == scans.c.resource_type,
                    Issue.resource_id == scans.c.resource_id,
                ),
            )
            .where(Issue.workflow_state == IssueWorkflowState.active)
            .group_by(Issue.rule_type)
        )
        if filters is not None and filters.rule_types:
            query = query.where(Issue.rule_type.in_(filters.rule_types))

        by_rule_type: Dict[str, int] = {rule_type: count for rule_type, count in self.db.execute(query).all()}
        return IssueSummaryResponse(total=sum(by_rule_type.values()), by_rule_type=by_rule_type)

    @staticmethod
    def _scan_item(scan: AccessibilityResourceScan, issue_count: int) -> ResourceScanItem:
        return ResourceScanItem(
            id=scan.id,
            course_id=scan.course_id,
            resource_id=scan.resource_id,
            resource_type=scan.resource_type.value,
            resource_name=scan.resource_name,
            resource_workflow_state=scan.resource_workflow_state,
            resource_updated_at=scan.resource_updated_at,
            workflow_state=scan.workflow_state.value,
            error_message=scan.error_message,
            issue_count=issue_count or 0,
            sequence=scan.sequence,
        )
