"""
Pagination Helpers

Shared page parameters and the paginated response envelope used by list endpoints.
"""

import math
from typing import Generic, Optional, TypeVar

from fastapi import Query
from pydantic import BaseModel

from ..config import get_config

T = TypeVar("T")


class PageParams(BaseModel):
    page: int
    page_size: int

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.page_size


def get_page_params(
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
) -> PageParams:
    """Dependency resolving page parameters, capped at the configured maximum."""
    config = get_config()
    size = min(page_size or config.default_page_size, config.max_page_size)
    return PageParams(page=page, page_size=size)


class PaginatedResponse(BaseModel, Generic[T]):
    data: list[T]
    count: int
    page: int
    page_size: int
    total_pages: int

    @classmethod
    def build(cls, data: list, count: int, params: PageParams) -> "PaginatedResponse":
        return cls(
            data=data,
            count=count,
            page=params.page,
            page_size=params.page_size,
            total_pages=math.ceil(count / params.page_size) if count else 0,
        )
