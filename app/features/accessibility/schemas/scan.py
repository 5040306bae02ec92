"""
Scan Schemas

Request and response models for the accessibility scan endpoints.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CourseScanRequest(BaseModel):
    """Request to scan every scannable resource of a course."""
    resource_types: Optional[List[str]] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "resource_types": ["wiki_page", "assignment"]
            }
        }
    )


class CourseScanResponse(BaseModel):
    course_id: str
    scan_ids: List[str]


class ScanEnqueueResponse(BaseModel):
    scan_id: str
    resource_type: str
    resource_id: str


class ScanStatusResponse(BaseModel):
    """Current (most recent) scan of a resource."""
    scan_id: str
    resource_type: str
    resource_id: str
    workflow_state: str
    error_message: Optional[str] = None
    sequence: int
    issue_count: int = 0
    queued_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ResourceScanItem(BaseModel):
    """One row of the accessibility issues table."""
    id: str
    course_id: str
    resource_id: str
    resource_type: str
    resource_name: Optional[str] = None
    resource_workflow_state: Optional[str] = None
    resource_updated_at: Optional[datetime] = None
    workflow_state: str
    error_message: Optional[str] = None
    issue_count: int = 0
    sequence: int


class IssueItem(BaseModel):
    id: str
    rule_type: str
    node_path: str
    workflow_state: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    first_detected_at: datetime
    last_detected_at: datetime
    accessibility_resource_scan_id: Optional[str] = None


class IssueUpdateRequest(BaseModel):
    workflow_state: str

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "workflow_state": "dismissed"
            }
        }
    )


class IssueSummaryResponse(BaseModel):
    """Active issue totals for a course."""
    total: int
    by_rule_type: Dict[str, int]
