import math
from typing import Optional

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake case in Python, camelCase on the wire."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class MessageResponse(CamelModel):
    success: bool = True
    message: Optional[str] = None


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    pages: int
    has_next: bool
    has_prev: bool


def paginate(page: int, limit: int, total: int) -> Pagination:
    return Pagination(
        page=page,
        limit=limit,
        total=total,
        pages=math.ceil(total / limit) if limit else 0,
        has_next=page * limit < total,
        has_prev=page > 1,
    )
