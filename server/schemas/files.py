"""Pydantic schemas for file operation endpoints."""

from pydantic import BaseModel

from common.types import ObjectDescriptor


class DescriptorResponse(BaseModel):
    """Client-visible view of a stored object (no storage locator)."""
    id: str
    originalName: str
    size: int
    mimeType: str
    uploadDate: str

    @classmethod
    def from_descriptor(cls, descriptor: ObjectDescriptor) -> "DescriptorResponse":
        return cls(
            id=descriptor.object_id,
            originalName=descriptor.original_name,
            size=descriptor.size,
            mimeType=descriptor.mime_type,
            uploadDate=descriptor.created_at.isoformat(),
        )


class DeleteResponse(BaseModel):
    """Response model for file deletion."""
    success: bool
    message: str
