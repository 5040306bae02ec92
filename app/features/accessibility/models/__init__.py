"""
Accessibility models package.
"""
from app.features.accessibility.models.resource import CourseResource, ResourceType, ResourceWorkflowState
from app.features.accessibility.models.scan import (
    AccessibilityResourceScan,
    ScanWorkflowState,
    ACTIVE_SCAN_STATES,
    TERMINAL_SCAN_STATES,
)
from app.features.accessibility.models.issue import AccessibilityIssue, IssueWorkflowState

__all__ = [
    "CourseResource",
    "ResourceType",
    "ResourceWorkflowState",
    "AccessibilityResourceScan",
    "ScanWorkflowState",
    "ACTIVE_SCAN_STATES",
    "TERMINAL_SCAN_STATES",
    "AccessibilityIssue",
    "IssueWorkflowState",
]
