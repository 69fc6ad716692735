"""
File router for file management endpoints.
"""
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sse_starlette.sse import EventSourceResponse
from starlette.datastructures import UploadFile

from api.deps import get_file_processor, require_user_id
from api.errors import APIError
from api.schemas.response import (
    DeleteResult,
    FileDetail,
    FileListData,
    FileListItem,
    SuccessResponse,
    UploadAccepted,
)
from config import settings
from core.validators import is_valid_file_id
from database import get_db
from dao.models.file import FileStatus
from services.file_service.file_processor import (
    FileProcessor,
    FileProcessorError,
    ProcessFileInput,
)
from services.file_service.file_service import FileService, stream_file_events

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/files", tags=["files"])

VALID_STATUSES = [status.value for status in FileStatus]


def _validate_file_id(file_id: str) -> None:
    if not is_valid_file_id(file_id):
        raise APIError(400, "INVALID_FILE_ID", "Invalid file ID format")


async def _process_upload_background(processor: FileProcessor, data: ProcessFileInput) -> None:
    """
    Background task that runs the pipeline for an accepted upload.

    Failures are recorded on the file row by the processor; here they are only logged.
    """
    try:
        result = await processor.process_file(data)
        logger.info(f"Background processing finished for {result.id} ({data.filename})")
    except FileProcessorError as e:
        logger.warning(f"Background processing failed for {data.filename}: {e}")
    except Exception as e:
        logger.error(f"Background processing crashed for {data.filename}: {e}", exc_info=True)


@router.post(
    "/upload",
    response_model=SuccessResponse[UploadAccepted],
    status_code=202,
)
async def upload_file(
    request: Request,
    background_tasks: BackgroundTasks,
    user_id: str = Depends(require_user_id),
    processor: FileProcessor = Depends(get_file_processor),
) -> SuccessResponse[UploadAccepted]:
    """
    Accept a multipart upload and process it in the background.

    The response is returned before processing starts; progress and failures
    are only visible on the file row (list/get/events).

    Raises:
        APIError: 400 FORM_PARSE_ERROR, NO_FILE, INVALID_FILENAME, FILE_READ_ERROR;
            413 FILE_TOO_LARGE; 500 INTERNAL_ERROR
    """
    try:
        form = await request.form()
    except Exception as e:
        logger.warning(f"Failed to parse upload form: {e}")
        raise APIError(400, "FORM_PARSE_ERROR", "Failed to parse form data")

    try:
        upload = form.get("file")
        if not isinstance(upload, UploadFile):
            raise APIError(400, "NO_FILE", "No file provided")

        filename = (upload.filename or "").strip()
        if not filename:
            raise APIError(400, "INVALID_FILENAME", "Filename is required")

        max_size_bytes = int(settings.MAX_FILE_SIZE_MB * 1024 * 1024)
        if upload.size is not None and upload.size > max_size_bytes:
            raise APIError(
                413,
                "FILE_TOO_LARGE",
                f"File size exceeds maximum of {settings.MAX_FILE_SIZE_MB}MB",
                {"file_size_bytes": upload.size, "max_size_bytes": max_size_bytes},
            )

        try:
            content = await upload.read()
        except Exception as e:
            logger.error(f"Failed to read uploaded file {filename}: {e}")
            raise APIError(400, "FILE_READ_ERROR", "Failed to read file contents")

        if len(content) > max_size_bytes:
            raise APIError(
                413,
                "FILE_TOO_LARGE",
                f"File size exceeds maximum of {settings.MAX_FILE_SIZE_MB}MB",
                {"file_size_bytes": len(content), "max_size_bytes": max_size_bytes},
            )

        file_id = str(uuid.uuid4())
        background_tasks.add_task(
            _process_upload_background,
            processor,
            ProcessFileInput(
                file_buffer=content,
                filename=filename,
                content_type=upload.content_type or "application/octet-stream",
                user_id=user_id,
                file_id=file_id,
            ),
        )
        logger.info(f"Accepted upload {file_id} ({filename}, {len(content)} bytes)")

        return SuccessResponse(
            data=UploadAccepted(
                id=file_id,
                filename=filename,
                fileSize=len(content),
                status=FileStatus.PENDING,
                message="File upload started. Processing in background.",
            )
        )
    except APIError:
        raise
    except Exception as e:
        logger.error(f"Unexpected upload error: {e}", exc_info=True)
        raise APIError(500, "INTERNAL_ERROR", "Internal server error")


@router.get("", response_model=SuccessResponse[FileListData], status_code=200)
async def list_files(
    status: Optional[str] = Query(None, description="Filter by status"),
    user_id: str = Depends(require_user_id),
    session: AsyncSession = Depends(get_db),
) -> SuccessResponse[FileListData]:
    """
    List the caller's files, newest upload first.

    Args:
        status: Optional status filter (pending, processing, ready, failed)
        user_id: Authenticated user
        session: Database session

    Returns:
        Files and their count
    """
    if status is not None and status not in VALID_STATUSES:
        raise APIError(
            400,
            "INVALID_STATUS_FILTER",
            f"Invalid status filter. Must be one of: {', '.join(VALID_STATUSES)}",
        )

    try:
        files = await FileService().list_files(
            session=session,
            user_id=user_id,
            status=FileStatus(status) if status else None,
        )
    except Exception as e:
        logger.error(f"Failed to list files: {e}", exc_info=True)
        raise APIError(500, "DATABASE_ERROR", "Failed to fetch files")

    items = [FileListItem.model_validate(file) for file in files]
    return SuccessResponse(data=FileListData(files=items, count=len(items)))


@router.get("/events")
async def file_events(user_id: str = Depends(require_user_id)) -> EventSourceResponse:
    """
    Server-Sent Events stream of the caller's file changes.

    Emits ``file-update``, ``file-deleted`` and a ``heartbeat`` every 30 seconds.
    """
    return EventSourceResponse(stream_file_events(user_id))


@router.get("/{file_id}", response_model=SuccessResponse[FileDetail], status_code=200)
async def get_file(
    file_id: str,
    user_id: str = Depends(require_user_id),
    session: AsyncSession = Depends(get_db),
) -> SuccessResponse[FileDetail]:
    """
    Get one of the caller's files.

    Raises:
        APIError: 400 INVALID_FILE_ID, 404 FILE_NOT_FOUND, 500 INTERNAL_ERROR
    """
    _validate_file_id(file_id)
    try:
        file = await FileService().get_file(session, file_id, user_id)
    except Exception as e:
        logger.error(f"Failed to fetch file {file_id}: {e}", exc_info=True)
        raise APIError(500, "INTERNAL_ERROR", "Internal server error")

    if file is None:
        raise APIError(404, "FILE_NOT_FOUND", "File not found")
    return SuccessResponse(data=FileDetail.model_validate(file))


@router.delete("/{file_id}", response_model=SuccessResponse[DeleteResult], status_code=200)
async def delete_file(
    file_id: str,
    user_id: str = Depends(require_user_id),
    session: AsyncSession = Depends(get_db),
) -> SuccessResponse[DeleteResult]:
    """
    Delete one of the caller's files.

    Missing and foreign files both answer 404.

    Raises:
        APIError: 400 INVALID_FILE_ID, 404 FILE_NOT_FOUND, 500 DELETE_ERROR
    """
    _validate_file_id(file_id)
    try:
        deleted = await FileService().delete_file(session, file_id, user_id)
    except Exception as e:
        logger.error(f"Failed to delete file {file_id}: {e}", exc_info=True)
        raise APIError(500, "DELETE_ERROR", "Failed to delete file")

    if not deleted:
        raise APIError(404, "FILE_NOT_FOUND", "File not found")
    return SuccessResponse(data=DeleteResult(message="File deleted successfully", id=file_id))
