from typing import Optional

from fastapi import APIRouter, Depends

from app.features.accessibility.dependencies.scan import get_scan_service
from app.features.accessibility.routes.filters import parse_filters_param
from app.features.accessibility.schemas.filters import IssueFilters
from app.features.accessibility.services.scan_service import AccessibilityScanService
from app.platform.response import api_response

router = APIRouter(prefix="/courses/{course_id}/accessibility", tags=["accessibility"])


@router.get(
    "/issue_summary",
    response_model=dict,
    summary="Active issue totals",
    description="Total active issues and a per-rule breakdown across completed scans",
)
def issue_summary_route(
    course_id: str,
    filters: Optional[IssueFilters] = Depends(parse_filters_param),
    service: AccessibilityScanService = Depends(get_scan_service),
):
    summary = service.get_issues_summary(course_id, filters)
    return api_response(data=summary, message="Issue summary retrieved")
