from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from app.features.accessibility.dependencies.scan import get_scan_service
from app.features.accessibility.models.issue import IssueWorkflowState
from app.features.accessibility.routes.filters import pagination_links, parse_filters_param, resource_ref
from app.features.accessibility.schemas.filters import IssueFilters
from app.features.accessibility.schemas.scan import (
    CourseScanRequest,
    CourseScanResponse,
    IssueUpdateRequest,
    ScanEnqueueResponse,
)
from app.features.accessibility.services.scan_service import AccessibilityScanService
from app.platform.config import settings
from app.platform.logger import get_logger
from app.platform.response import api_response

logger = get_logger(__name__)

router = APIRouter(prefix="/courses/{course_id}/accessibility", tags=["accessibility"])


@router.post(
    "/scan",
    response_model=dict,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Scan a course",
    description="Queue accessibility scans for every scannable resource of a course",
)
def scan_course_route(
    course_id: str,
    request: Optional[CourseScanRequest] = None,
    service: AccessibilityScanService = Depends(get_scan_service),
):
    resource_types = request.resource_types if request else None
    try:
        scan_ids = service.enqueue_course_scan(
            course_id,
            resource_types=resource_types,
            scanning_enabled=settings.A11Y_SCANNING_ENABLED,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    logger.info(f"Course scan requested for {course_id}: {len(scan_ids)} scans")
    return api_response(
        data=CourseScanResponse(course_id=course_id, scan_ids=scan_ids),
        message="Course scan queued",
        status_code=status.HTTP_202_ACCEPTED,
    )


@router.post(
    "/resources/{resource_type}/{resource_id}/scan",
    response_model=dict,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Scan one resource",
)
def scan_resource_route(
    course_id: str,
    resource_type: str,
    resource_id: str,
    service: AccessibilityScanService = Depends(get_scan_service),
):
    ref = resource_ref(resource_type, resource_id)
    scan_id = service.enqueue_scan(ref, course_id=course_id)
    return api_response(
        data=ScanEnqueueResponse(
            scan_id=scan_id, resource_type=ref.resource_type.value, resource_id=ref.resource_id
        ),
        message="Scan queued",
        status_code=status.HTTP_202_ACCEPTED,
    )


@router.get(
    "/resources/{resource_type}/{resource_id}/scan",
    response_model=dict,
    summary="Current scan status of a resource",
)
def scan_status_route(
    course_id: str,
    resource_type: str,
    resource_id: str,
    service: AccessibilityScanService = Depends(get_scan_service),
):
    scan_status = service.get_scan_status(resource_ref(resource_type, resource_id))
    return api_response(data=scan_status, message="Scan status retrieved")


@router.get(
    "/resources/{resource_type}/{resource_id}/issues",
    response_model=dict,
    summary="Issues recorded for a resource",
)
def resource_issues_route(
    course_id: str,
    resource_type: str,
    resource_id: str,
    workflow_state: Optional[str] = Query(None, description="active, resolved or dismissed"),
    service: AccessibilityScanService = Depends(get_scan_service),
):
    states = None
    if workflow_state:
        try:
            states = [IssueWorkflowState(workflow_state)]
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unknown issue workflow state: {workflow_state}",
            )
    issues = service.list_resource_issues(resource_ref(resource_type, resource_id), states)
    return api_response(data=issues, message="Issues retrieved")


@router.get(
    "/resource_scans",
    response_model=dict,
    summary="Issues table",
    description="Paginated current scans of a course with their active issue counts",
)
def resource_scans_route(
    request: Request,
    course_id: str,
    page: int = Query(1, ge=1),
    per_page: int = Query(settings.A11Y_DEFAULT_PER_PAGE, ge=1, le=settings.A11Y_MAX_PER_PAGE),
    sort: Optional[str] = Query(None),
    direction: str = Query("asc", pattern="^(asc|desc)$"),
    filters: Optional[IssueFilters] = Depends(parse_filters_param),
    service: AccessibilityScanService = Depends(get_scan_service),
):
    result = service.query_issues(course_id, filters, page, per_page, sort, direction)
    return api_response(
        data=result,
        message="Resource scans retrieved",
        headers={"Link": pagination_links(request.url, result.page, result.per_page, result.page_count)},
    )


@router.put(
    "/issues/{issue_id}",
    response_model=dict,
    summary="Dismiss, reactivate or resolve an issue",
)
def update_issue_route(
    course_id: str,
    issue_id: str,
    request: IssueUpdateRequest,
    service: AccessibilityScanService = Depends(get_scan_service),
):
    try:
        issue = service.update_issue_state(course_id, issue_id, request.workflow_state)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown issue workflow state: {request.workflow_state}",
        )
    return api_response(data=issue, message="Issue updated")
