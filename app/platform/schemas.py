from typing import Generic, List, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """One page of a paginated listing. Pages are 1-based."""
    items: List[T]
    page: int
    per_page: int
    total: int
    page_count: int
