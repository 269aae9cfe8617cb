"""File operation API routes."""

from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from engine.lifecycle import StorageLifecycleManager
from server.rate_limit import enforce_upload_rate_limit
from server.schemas.common import HealthResponse
from server.schemas.files import DeleteResponse, DescriptorResponse
from server.utils import content_disposition, get_current_timestamp

router = APIRouter(prefix="/api", tags=["Files"])


def get_storage(request: Request) -> StorageLifecycleManager:
    """
    Dependency returning the lifecycle manager built at startup.
    """
    storage = getattr(request.app.state, "storage", None)
    if storage is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Storage engine not initialized",
        )
    return storage


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Health check endpoint.
    """
    return HealthResponse(status="OK", timestamp=get_current_timestamp())


@router.post(
    "/upload",
    response_model=DescriptorResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(enforce_upload_rate_limit)],
)
async def upload_file(
    file: Optional[UploadFile] = File(None),
    storage: StorageLifecycleManager = Depends(get_storage),
):
    """
    Encrypt and store an uploaded file.

    Parameters:
        - file: File to upload (multipart/form-data)

    Returns:
        - id, originalName, size, mimeType, uploadDate

    Raises:
        - 400: No file in the request
        - 413: File too large
        - 429: Upload rate limit exceeded
        - 500: Internal server error
    """
    if file is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No file uploaded",
        )

    try:
        descriptor = await run_in_threadpool(
            storage.upload,
            file.filename,
            file.content_type,
            file.file,
        )
    finally:
        await file.close()

    return DescriptorResponse.from_descriptor(descriptor)


@router.get("/files", response_model=List[DescriptorResponse])
async def list_files(storage: StorageLifecycleManager = Depends(get_storage)):
    """
    List stored files, newest first.
    """
    descriptors = await run_in_threadpool(storage.list)
    return [DescriptorResponse.from_descriptor(d) for d in descriptors]


@router.get("/download/{file_id}")
async def download_file(file_id: str, storage: StorageLifecycleManager = Depends(get_storage)):
    """
    Download and decrypt a file by id.

    Parameters:
        - file_id: Id returned by upload

    Returns:
        - StreamingResponse with the plaintext

    Raises:
        - 404: File not found, or its ciphertext is missing
        - 500: Integrity check failed or internal error
    """
    handle = await run_in_threadpool(storage.download, file_id)

    return StreamingResponse(
        handle.iter_chunks(),
        media_type="application/octet-stream",
        headers={
            "Content-Disposition": content_disposition(handle.original_name),
            "Content-Length": str(handle.content_length),
        },
        background=BackgroundTask(handle.close),
    )


@router.delete("/files/{file_id}", response_model=DeleteResponse)
async def delete_file(file_id: str, storage: StorageLifecycleManager = Depends(get_storage)):
    """
    Delete a file's ciphertext and metadata.

    Raises:
        - 404: File not found
        - 500: Internal server error
    """
    await run_in_threadpool(storage.delete, file_id)
    return DeleteResponse(success=True, message="File deleted successfully")
