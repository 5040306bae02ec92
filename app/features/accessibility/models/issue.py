from sqlalchemy import Column, String, DateTime, ForeignKey, Index, Enum, JSON
from sqlalchemy.orm import relationship
import enum

from app.platform.db.base import BaseModel
from app.features.accessibility.models.resource import ResourceType


class IssueWorkflowState(enum.Enum):
    active = "active"
    resolved = "resolved"
    dismissed = "dismissed"


class AccessibilityIssue(BaseModel):
    """
    A persisted accessibility problem on a resource.

    Identity is (resource, rule_type, node_path) and survives rescans; the
    scan foreign key points at the scan that last touched the issue.
    """
    __tablename__ = "accessibility_issues"

    course_id = Column(String, nullable=False, index=True)
    resource_type = Column(Enum(ResourceType), nullable=False)
    resource_id = Column(String, nullable=False)

    accessibility_resource_scan_id = Column(
        String,
        ForeignKey("accessibility_resource_scans.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    rule_type = Column(String(255), nullable=False, index=True)
    node_path = Column(String(2048), nullable=False)
    workflow_state = Column(
        Enum(IssueWorkflowState), default=IssueWorkflowState.active, nullable=False, index=True
    )

    # "metadata" is reserved on declarative classes
    issue_metadata = Column("metadata", JSON, nullable=True)

    first_detected_at = Column(DateTime, nullable=False)
    last_detected_at = Column(DateTime, nullable=False)
    resolved_at = Column(DateTime, nullable=True)
    dismissed_at = Column(DateTime, nullable=True)

    accessibility_resource_scan = relationship("AccessibilityResourceScan", lazy="select")

    __table_args__ = (
        Index(
            'idx_a11y_issues_identity',
            'resource_type', 'resource_id', 'rule_type', 'node_path',
            unique=True,
        ),
        Index('idx_a11y_issues_course_state', 'course_id', 'workflow_state'),
    )

    @property
    def identity(self):
        return (self.rule_type, self.node_path)
