from sqlalchemy import Column, String, Integer, DateTime, Text, Index, Enum, UniqueConstraint, text
import enum

from app.platform.db.base import BaseModel
from app.features.accessibility.models.resource import ResourceType


class ScanWorkflowState(enum.Enum):
    """Scan state machine: queued -> in_progress -> completed | failed"""
    queued = "queued"
    in_progress = "in_progress"
    completed = "completed"
    failed = "failed"


ACTIVE_SCAN_STATES = (ScanWorkflowState.queued, ScanWorkflowState.in_progress)
TERMINAL_SCAN_STATES = (ScanWorkflowState.completed, ScanWorkflowState.failed)


class AccessibilityResourceScan(BaseModel):
    """
    One scanning attempt for a resource.

    Rows are never deleted. A resource's scans form a history ordered by
    ``sequence``; the highest sequence is the current scan.
    """
    __tablename__ = "accessibility_resource_scans"

    course_id = Column(String, nullable=False, index=True)
    resource_type = Column(Enum(ResourceType), nullable=False)
    resource_id = Column(String, nullable=False)
    sequence = Column(Integer, nullable=False, default=1)

    workflow_state = Column(
        Enum(ScanWorkflowState), default=ScanWorkflowState.queued, nullable=False, index=True
    )
    error_message = Column(Text, nullable=True)

    # Snapshots of the resource, taken when the content is read
    resource_name = Column(String(512), nullable=True)
    resource_workflow_state = Column(String(32), nullable=True)
    resource_updated_at = Column(DateTime, nullable=True)

    # Active issues left on the resource once the scan completed
    issue_count = Column(Integer, default=0, nullable=False)

    queued_at = Column(DateTime, nullable=False)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            'resource_type', 'resource_id', 'sequence', name='uq_a11y_scans_resource_sequence'
        ),
        # At most one queued/in_progress scan per resource
        Index(
            'idx_a11y_scans_one_active_per_resource',
            'resource_type',
            'resource_id',
            unique=True,
            sqlite_where=text("workflow_state IN ('queued', 'in_progress')"),
            postgresql_where=text("workflow_state IN ('queued', 'in_progress')"),
        ),
        Index('idx_a11y_scans_course_resource', 'course_id', 'resource_type', 'resource_id'),
    )

    @property
    def is_active(self) -> bool:
        return self.workflow_state in ACTIVE_SCAN_STATES

    def __repr__(self) -> str:
        return (
            f"<AccessibilityResourceScan {self.id} {self.resource_type.value}:{self.resource_id}"
            f" #{self.sequence} {self.workflow_state.value}>"
        )
