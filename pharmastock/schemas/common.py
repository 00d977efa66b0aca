# FILE: pharmastock/schemas/common.py
from __future__ import annotations

from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict


class ApiError(BaseModel):
    msg: str
    code: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class ApiResponse(BaseModel):
    status: bool
    data: Optional[Any] = None
    error: Optional[ApiError] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)


class PageMeta(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


def page_meta(page: int, limit: int, total: int) -> PageMeta:
    return PageMeta(
        page=page,
        limit=limit,
        total=total,
        total_pages=max(1, -(-total // limit)) if limit else 1,
    )
