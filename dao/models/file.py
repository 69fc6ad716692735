"""
File model for uploaded files and their compressed, embedded representation.
"""
from sqlalchemy import CheckConstraint, Column, DateTime, Enum, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from pgvector.sqlalchemy import Vector
import enum
from dao.models.base import BaseModel, utcnow

EMBEDDING_DIMENSIONS = 1024


class FileType(str, enum.Enum):
    """Coarse classification of an uploaded file, derived from its extension."""

    PDF = "pdf"
    IMAGE = "image"
    TEXT = "text"
    CODE = "code"
    SPREADSHEET = "spreadsheet"
    OTHER = "other"


class FileStatus(str, enum.Enum):
    """Enumeration for file processing status."""

    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


class ProcessingStage(str, enum.Enum):
    """Pipeline stage a file is in (or failed in)."""

    EXTRACTION = "extraction"
    COMPRESSION = "compression"
    EMBEDDING = "embedding"
    FINALIZATION = "finalization"


def _enum_values(enum_cls):
    return [e.value for e in enum_cls]


class FileRecord(BaseModel):
    """Model representing one uploaded file."""

    __tablename__ = "files"
    __table_args__ = (
        CheckConstraint("progress >= 0 AND progress <= 100", name="ck_files_progress_range"),
        Index("ix_files_user_id_status", "user_id", "status"),
    )

    user_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    filename = Column(String, nullable=False)
    file_type = Column(
        Enum(FileType, name="file_type_enum", values_callable=_enum_values),
        nullable=False,
        default=FileType.OTHER,
    )
    content_hash = Column(String(64), nullable=False, index=True)
    description = Column(Text, nullable=True)
    embedding = Column(Vector(EMBEDDING_DIMENSIONS), nullable=True)
    status = Column(
        Enum(FileStatus, name="file_status_enum", values_callable=_enum_values),
        nullable=False,
        default=FileStatus.PENDING,
        index=True,
    )
    processing_stage = Column(
        Enum(ProcessingStage, name="processing_stage_enum", values_callable=_enum_values),
        nullable=True,
    )
    progress = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    uploaded_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<FileRecord(id={self.id}, filename={self.filename}, status={self.status})>"
