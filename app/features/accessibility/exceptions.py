"""
Accessibility scanning errors.

Resource-scoped errors (malformed content, unavailable resource, failed
reconciliation commit) are recorded on the scan row and never abort a course
scan. Course-scoped errors propagate to the caller.
"""
from typing import Optional


class AccessibilityScanError(Exception):
    """Base class for scanning errors."""


class MalformedContentError(AccessibilityScanError):
    """The resource's content cannot be parsed or is not scannable right now."""


class RuleEvaluationError(AccessibilityScanError):
    """A single rule raised while evaluating a content tree."""

    def __init__(self, rule_id: str, original: BaseException):
        self.rule_id = rule_id
        self.original = original
        super().__init__(f"Rule '{rule_id}' failed: {original}")


class ReconciliationCommitError(AccessibilityScanError):
    """Issue writes for a resource batch could not be committed; none were kept."""


class ResourceUnavailableError(AccessibilityScanError):
    """The resource was deleted or cannot be read."""

    def __init__(self, resource_ref, message: Optional[str] = None):
        self.resource_ref = resource_ref
        super().__init__(message or f"Resource {resource_ref} is no longer available")


class CourseResourcesUnavailableError(AccessibilityScanError):
    """The resources of a course cannot be enumerated at all."""

    def __init__(self, course_id: str, message: Optional[str] = None):
        self.course_id = course_id
        super().__init__(message or f"Unable to list resources for course {course_id}")


class InvalidScanTransitionError(AccessibilityScanError):
    def __init__(self, scan_id: str, from_state, to_state):
        self.scan_id = scan_id
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Scan {scan_id} cannot move from {from_state} to {to_state}")


class ScanningDisabledError(AccessibilityScanError):
    """Accessibility scanning is switched off for this deployment."""


class IssueNotFoundError(AccessibilityScanError):
    def __init__(self, issue_id: str):
        self.issue_id = issue_id
        super().__init__(f"Accessibility issue {issue_id} not found")


class ScanAbandonedError(AccessibilityScanError):
    """An active scan outlived its lease without a worker finishing it."""

    def __init__(self, scan_id: str, state: str, seconds: int):
        self.scan_id = scan_id
        super().__init__(
            f"Scan {scan_id} was abandoned while {state}: no worker finished it within {seconds}s"
        )
