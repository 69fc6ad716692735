"""
File service for file management operations and the change stream.
"""
import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from config import settings
from core.events.change_feed import DELETE, FileChangeEvent, FileChangeFeed, get_change_feed
from dao.file_dao import FileDAO
from dao.models.file import FileRecord, FileStatus

logger = logging.getLogger(__name__)

FILE_UPDATE_EVENT = "file-update"
FILE_DELETED_EVENT = "file-deleted"
HEARTBEAT_EVENT = "heartbeat"


class FileService:
    """Service for file management operations."""

    def __init__(self, change_feed: Optional[FileChangeFeed] = None):
        """Initialize file service."""
        self.file_dao = FileDAO()
        self.change_feed = change_feed or get_change_feed()

    async def list_files(
        self,
        session: AsyncSession,
        user_id: str,
        status: Optional[FileStatus] = None,
    ) -> List[FileRecord]:
        """
        List a user's files, newest first.

        Args:
            session: Database session
            user_id: Owner ID
            status: Optional status filter

        Returns:
            List of files
        """
        return await self.file_dao.list_for_user(session, user_id, status=status)

    async def get_file(
        self, session: AsyncSession, file_id: str, user_id: str
    ) -> Optional[FileRecord]:
        """
        Get a file owned by the user.

        Returns:
            File instance or None if it does not exist or belongs to someone else
        """
        return await self.file_dao.get_for_user(session, file_id, user_id)

    async def delete_file(
        self, session: AsyncSession, file_id: str, user_id: str
    ) -> bool:
        """
        Delete a file owned by the user and notify subscribers.

        Args:
            session: Database session
            file_id: File ID (UUID string)
            user_id: Owner ID

        Returns:
            True if deleted, False if not found or not owned
        """
        existing = await self.file_dao.get_for_user(session, file_id, user_id)
        if existing is None:
            return False

        deleted = await self.file_dao.delete_for_user(session, file_id, user_id)
        await session.commit()
        if not deleted:
            return False

        logger.info(f"Deleted file {file_id} for user {user_id}")
        self.change_feed.publish_delete(file_id, user_id)
        return True


def _event_payload(event: FileChangeEvent) -> Dict:
    if event.event_type == DELETE:
        file_data = {"id": event.file_id}
    else:
        file_data = event.record or {"id": event.file_id}
    return {"eventType": event.event_type, "timestamp": event.timestamp, "file": file_data}


async def stream_file_events(
    user_id: str,
    change_feed: Optional[FileChangeFeed] = None,
    heartbeat_seconds: Optional[float] = None,
) -> AsyncIterator[Dict[str, str]]:
    """
    Yield SSE messages for one connection until the client goes away.

    Inserts and updates become ``file-update``, deletes ``file-deleted``; a
    ``heartbeat`` is sent every heartbeat interval however busy the feed is.
    The subscription is removed when the generator is closed or cancelled.
    """
    change_feed = change_feed or get_change_feed()
    heartbeat_seconds = heartbeat_seconds or settings.SSE_HEARTBEAT_SECONDS
    queue = change_feed.subscribe(user_id)
    logger.info(f"SSE client connected for user {user_id}")
    loop = asyncio.get_running_loop()
    next_heartbeat = loop.time() + heartbeat_seconds

    try:
        while True:
            remaining = next_heartbeat - loop.time()
            if remaining <= 0:
                next_heartbeat = loop.time() + heartbeat_seconds
                yield {
                    "event": HEARTBEAT_EVENT,
                    "data": json.dumps({"timestamp": datetime.now(timezone.utc).isoformat()}),
                }
                continue
            try:
                event = await asyncio.wait_for(queue.get(), timeout=remaining)
            except asyncio.TimeoutError:
                continue

            event_name = FILE_DELETED_EVENT if event.event_type == DELETE else FILE_UPDATE_EVENT
            yield {"event": event_name, "data": json.dumps(_event_payload(event))}
    finally:
        change_feed.unsubscribe(user_id, queue)
        logger.info(f"SSE client disconnected for user {user_id}")
