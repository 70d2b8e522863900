"""Response envelopes shared by every router."""

from datetime import datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

from ...core.utils import utc_now

T = TypeVar("T")


class BaseResponse(BaseModel, Generic[T]):
    """Envelope for every API response, success or error."""

    success: bool = Field(
        default=True, description="Whether the request was successful"
    )
    message: str | None = Field(default=None, description="Response message")
    data: T | None = Field(default=None, description="Response data")
    error: Any | None = Field(default=None, description="Error details if any")
    code: str | None = Field(default=None, description="Machine-readable error code")
    timestamp: datetime = Field(
        default_factory=utc_now, description="Response timestamp"
    )


class PaginatedResponse(BaseModel, Generic[T]):
    """One page of a scoped listing."""

    items: list[T] = Field(default_factory=list, description="List of items")
    total: int = Field(default=0, description="Total number of items visible")
    page: int = Field(default=1, description="Current page number")
    page_size: int = Field(default=20, description="Items per page")
    total_pages: int = Field(default=0, description="Total number of pages")

    @classmethod
    def from_items(cls, items: list[T], total: int, page: int, page_size: int):
        total_pages = (total + page_size - 1) // page_size if page_size > 0 else 0
        return cls(
            items=items,
            total=total,
            page=page,
            page_size=page_size,
            total_pages=total_pages,
        )
