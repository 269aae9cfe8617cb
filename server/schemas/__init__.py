"""Pydantic schemas for API requests and responses."""

from server.schemas.common import ErrorResponse, HealthResponse
from server.schemas.files import DeleteResponse, DescriptorResponse

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "DescriptorResponse",
    "DeleteResponse",
]
