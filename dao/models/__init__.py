"""
Database models package.
"""
from dao.models.base import BaseModel
from dao.models.file import FileRecord, FileStatus, FileType, ProcessingStage

__all__ = [
    "BaseModel",
    "FileRecord",
    "FileStatus",
    "FileType",
    "ProcessingStage",
]
