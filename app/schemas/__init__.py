"""Pydantic schema package for API contracts."""

from app.schemas.common import CamelModel, ErrorResponse
from app.schemas.orders import (
    LineItemResponse,
    OrderDetailResponse,
    OrderGroupResponse,
    OrderResponse,
    SubmissionResponse,
)

__all__ = [
    "CamelModel",
    "ErrorResponse",
    "LineItemResponse",
    "OrderDetailResponse",
    "OrderGroupResponse",
    "OrderResponse",
    "SubmissionResponse",
]
