"""
Shared schema building blocks.

Payloads use camelCase on the wire. Models accept either the camelCase alias
or the snake_case field name on input and serialize by alias.
"""

import math
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from brokerage.core.errors import ErrorKind

T = TypeVar("T")


class CamelModel(BaseModel):
    """Base model with camelCase aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        str_strip_whitespace=True,
    )


class PageParams(CamelModel):
    page: int = Field(default=1, ge=1, description="1-based page number")
    page_size: int = Field(default=20, ge=1, le=200, description="Items per page")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


class Page(CamelModel, Generic[T]):
    """One page of results with the total row count."""

    items: list[T]
    total: int
    page: int
    page_size: int
    total_pages: int

    @classmethod
    def build(cls, items: list[Any], total: int, page: int, page_size: int) -> "Page[T]":
        return cls(
            items=items,
            total=total,
            page=page,
            page_size=page_size,
            total_pages=math.ceil(total / page_size) if page_size else 0,
        )


class MessageResponse(CamelModel):
    message: str


class BatchItemError(CamelModel):
    id: str
    kind: ErrorKind
    error: str


class BatchResultResponse(CamelModel):
    """Outcome of a batch operation over a list of ids."""

    processed: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    errors: list[BatchItemError] = Field(default_factory=list)
    message: Optional[str] = None
