"""
File DAO for file-related database operations.
"""
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import delete, select
from dao.base_dao import BaseDAO, IdType, as_uuid
from dao.models.file import FileRecord, FileStatus


class FileDAO(BaseDAO[FileRecord]):
    """DAO for file operations. Every user-facing query is scoped by user_id."""

    def __init__(self):
        """Initialize FileDAO."""
        super().__init__(FileRecord)

    @staticmethod
    def _owned_by(user_id: Optional[IdType]):
        if user_id is None:
            return FileRecord.user_id.is_(None)
        return FileRecord.user_id == as_uuid(user_id)

    async def find_duplicate(
        self,
        session: AsyncSession,
        user_id: Optional[IdType],
        content_hash: str,
        exclude_id: Optional[IdType] = None,
    ) -> Optional[FileRecord]:
        """
        Find an existing file with the same content for the same user.

        Args:
            session: Database session
            user_id: Owner ID, or None for anonymous uploads
            content_hash: SHA-256 hex digest of the raw bytes
            exclude_id: File being reprocessed, ignored as a match

        Returns:
            The first matching file or None
        """
        query = select(FileRecord).where(
            self._owned_by(user_id), FileRecord.content_hash == content_hash
        )
        if exclude_id is not None:
            query = query.where(FileRecord.id != as_uuid(exclude_id))
        result = await session.execute(query.limit(1))
        return result.scalars().first()

    async def get_for_user(
        self, session: AsyncSession, file_id: IdType, user_id: IdType
    ) -> Optional[FileRecord]:
        """
        Get a file only if it belongs to the given user.

        Returns:
            File instance or None if missing or owned by someone else
        """
        query = select(FileRecord).where(
            FileRecord.id == as_uuid(file_id), self._owned_by(user_id)
        )
        result = await session.execute(query)
        return result.scalar_one_or_none()

    async def list_for_user(
        self,
        session: AsyncSession,
        user_id: IdType,
        status: Optional[FileStatus] = None,
    ) -> List[FileRecord]:
        """
        List a user's files, newest upload first.

        Args:
            session: Database session
            user_id: Owner ID
            status: Optional status filter

        Returns:
            List of files
        """
        query = select(FileRecord).where(self._owned_by(user_id))
        if status is not None:
            query = query.where(FileRecord.status == status)
        query = query.order_by(FileRecord.uploaded_at.desc())
        result = await session.execute(query)
        return list(result.scalars().all())

    async def delete_for_user(
        self, session: AsyncSession, file_id: IdType, user_id: IdType
    ) -> int:
        """Delete a file filtered by both id and owner. Returns the deleted row count."""
        stmt = delete(FileRecord).where(
            FileRecord.id == as_uuid(file_id), self._owned_by(user_id)
        )
        result = await session.execute(stmt)
        await session.flush()
        return result.rowcount
