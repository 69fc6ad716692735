"""
Pydantic response schemas for API endpoints.
"""
import uuid
from datetime import datetime
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from dao.models.file import FileStatus, FileType, ProcessingStage

DataT = TypeVar("DataT")


class SuccessResponse(BaseModel, Generic[DataT]):
    """Envelope for every successful response."""

    success: bool = True
    data: DataT


class FileListItem(BaseModel):
    """Schema for file list item."""

    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": "123e4567-e89b-42d3-a456-426614174000",
                "filename": "strategic-plan.txt",
                "file_type": "text",
                "status": "processing",
                "progress": 25,
                "processing_stage": "compression",
                "error_message": None,
                "uploaded_at": "2024-01-01T00:00:00Z",
                "updated_at": "2024-01-01T00:00:05Z",
            }
        },
    )

    id: uuid.UUID = Field(..., description="File identifier (UUID)")
    filename: str = Field(..., description="Original filename")
    file_type: FileType = Field(..., description="File type")
    status: FileStatus = Field(..., description="Processing status")
    progress: int = Field(..., ge=0, le=100, description="Progress percentage")
    processing_stage: Optional[ProcessingStage] = Field(None, description="Current or failed stage")
    error_message: Optional[str] = Field(None, description="Failure reason, if failed")
    uploaded_at: datetime = Field(..., description="Upload timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")


class FileDetail(FileListItem):
    """Full file row."""

    user_id: Optional[uuid.UUID] = Field(None, description="Owner ID")
    content_hash: str = Field(..., description="SHA-256 of the raw bytes")
    description: Optional[str] = Field(None, description="Compressed description")
    embedding: Optional[List[float]] = Field(None, description="1024-dimensional embedding")

    @field_validator("embedding", mode="before")
    @classmethod
    def _embedding_to_list(cls, value):
        # pgvector returns numpy arrays
        if value is not None and hasattr(value, "tolist"):
            return value.tolist()
        return value


class FileListData(BaseModel):
    files: List[FileListItem] = Field(..., description="List of files")
    count: int = Field(..., description="Number of files returned")


class UploadAccepted(BaseModel):
    """Response data for an accepted upload."""

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "id": "123e4567-e89b-42d3-a456-426614174000",
                "filename": "strategic-plan.txt",
                "fileSize": 5120,
                "status": "pending",
                "message": "File upload started. Processing in background.",
            }
        },
    )

    id: str = Field(..., description="File identifier assigned to the upload")
    filename: str = Field(..., description="Original filename")
    file_size: int = Field(..., alias="fileSize", description="Size in bytes")
    status: FileStatus = Field(FileStatus.PENDING, description="Always pending")
    message: str = Field(..., description="Status message")


class DeleteResult(BaseModel):
    message: str = Field(..., description="Status message")
    id: str = Field(..., description="Deleted file ID")
