from sqlalchemy import Column, String, Text, DateTime, Enum, Index
from datetime import datetime
import enum

from app.platform.db.base import BaseModel


class ResourceType(enum.Enum):
    """Kinds of course content that can be scanned."""
    wiki_page = "wiki_page"
    assignment = "assignment"
    attachment = "attachment"

    @classmethod
    def parse(cls, value: str) -> "ResourceType":
        """
        Accept snake_case ("wiki_page") or class-style ("WikiPage") names.

        Raises:
            ValueError: unknown resource type
        """
        if isinstance(value, cls):
            return value
        key = "".join(ch for ch in str(value).lower() if ch.isalnum())
        for member in cls:
            if member.value.replace("_", "") == key:
                return member
        raise ValueError(f"Unknown resource type: {value}")


class ResourceWorkflowState(enum.Enum):
    published = "published"
    unpublished = "unpublished"
    deleted = "deleted"


class CourseResource(BaseModel):
    """
    Course content owned by the content store (pages, assignments, files).

    The scanning pipeline only reads these rows.
    """
    __tablename__ = "course_resources"

    course_id = Column(String, nullable=False, index=True)
    resource_type = Column(Enum(ResourceType), nullable=False, index=True)

    title = Column(String(512), nullable=False, default="")
    body = Column(Text, nullable=True)
    content_type = Column(String(255), nullable=False, default="text/html")

    workflow_state = Column(
        Enum(ResourceWorkflowState), nullable=False, default=ResourceWorkflowState.unpublished
    )
    content_updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index('idx_course_resources_course_type', 'course_id', 'resource_type'),
    )
