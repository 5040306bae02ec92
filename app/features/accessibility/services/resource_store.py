"""
Resource Store

Read-only access to scannable course content. The scanning pipeline depends
on the ``ResourceStore`` protocol; ``SqlResourceStore`` reads the
``course_resources`` table.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.features.accessibility.exceptions import CourseResourcesUnavailableError, ResourceUnavailableError
from app.features.accessibility.models.resource import CourseResource, ResourceType, ResourceWorkflowState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResourceRef:
    resource_type: ResourceType
    resource_id: str

    @classmethod
    def of(cls, resource_type, resource_id) -> "ResourceRef":
        return cls(ResourceType.parse(resource_type), str(resource_id))

    def __str__(self) -> str:
        return f"{self.resource_type.value}:{self.resource_id}"


@dataclass(frozen=True)
class ResourceSnapshot:
    ref: ResourceRef
    course_id: str
    title: str
    body: Optional[str]
    content_type: str
    workflow_state: str
    updated_at: datetime


class ResourceStore(Protocol):
    def list_course_resources(
        self, course_id: str, resource_types: Optional[Iterable[ResourceType]] = None
    ) -> List[ResourceSnapshot]:
        ...

    def get_resource(self, ref: ResourceRef) -> Optional[ResourceSnapshot]:
        ...


class SqlResourceStore:
    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def _snapshot(row: CourseResource) -> ResourceSnapshot:
        return ResourceSnapshot(
            ref=ResourceRef(row.resource_type, row.id),
            course_id=row.course_id,
            title=row.title or "",
            body=row.body,
            content_type=row.content_type or "text/html",
            workflow_state=row.workflow_state.value,
            updated_at=row.content_updated_at,
        )

    def list_course_resources(
        self, course_id: str, resource_types: Optional[Iterable[ResourceType]] = None
    ) -> List[ResourceSnapshot]:
        """
        Raises:
            CourseResourcesUnavailableError: the content store cannot be read
        """
        query = (
            select(CourseResource)
            .where(
                CourseResource.course_id == course_id,
                CourseResource.workflow_state != ResourceWorkflowState.deleted,
            )
            .order_by(CourseResource.resource_type, CourseResource.id)
        )
        if resource_types is not None:
            query = query.where(CourseResource.resource_type.in_(list(resource_types)))
        try:
            rows = self.db.execute(query).scalars().all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to list resources for course {course_id}: {e}")
            raise CourseResourcesUnavailableError(course_id) from e
        return [self._snapshot(row) for row in rows]

    def get_resource(self, ref: ResourceRef) -> Optional[ResourceSnapshot]:
        row = self.db.execute(
            select(CourseResource).where(
                CourseResource.id == ref.resource_id,
                CourseResource.resource_type == ref.resource_type,
            )
            # Always read the stored row, the resource may have changed mid-scan
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None or row.workflow_state == ResourceWorkflowState.deleted:
            return None
        return self._snapshot(row)


def require_resource(store: ResourceStore, ref: ResourceRef) -> ResourceSnapshot:
    resource = store.get_resource(ref)
    if resource is None:
        raise ResourceUnavailableError(ref)
    return resource
