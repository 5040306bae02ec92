import json
from typing import Optional

from fastapi import HTTPException, Query, status
from pydantic import ValidationError
from starlette.datastructures import URL

from app.features.accessibility.models.resource import ResourceType
from app.features.accessibility.schemas.filters import IssueFilters
from app.features.accessibility.services.resource_store import ResourceRef


def parse_filters_param(
    filters: Optional[str] = Query(None, description="JSON encoded filter object"),
) -> Optional[IssueFilters]:
    if not filters:
        return None
    try:
        data = json.loads(filters)
    except json.JSONDecodeError:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="filters must be a JSON object",
        )
    if not isinstance(data, dict):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="filters must be a JSON object",
        )
    try:
        return IssueFilters.model_validate(data)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid filters: {e.errors()[0]['msg']}",
        )


def resource_ref(resource_type: str, resource_id: str) -> ResourceRef:
    try:
        return ResourceRef(ResourceType.parse(resource_type), resource_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def pagination_links(url: URL, page: int, per_page: int, page_count: int) -> str:
    """RFC 5988 Link header with first/prev/next/last relations."""
    def link(target: int, rel: str) -> str:
        return f'<{url.include_query_params(page=target, per_page=per_page)}>; rel="{rel}"'

    links = [link(1, "first")]
    if page > 1:
        links.append(link(page - 1, "prev"))
    if page < page_count:
        links.append(link(page + 1, "next"))
    links.append(link(page_count, "last"))
    return ", ".join(links)
