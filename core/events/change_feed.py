"""
In-process feed of row-level changes to the files table.

Writers publish INSERT/UPDATE/DELETE events after committing; each SSE
connection holds its own queue, scoped to one user.
"""
import asyncio
import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from dao.models.file import FileRecord

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"

EVENT_FIELDS = (
    "id",
    "filename",
    "file_type",
    "status",
    "progress",
    "processing_stage",
    "error_message",
    "uploaded_at",
    "updated_at",
)


def _json_value(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if value is not None and not isinstance(value, (str, int, float, bool)):
        return str(value)
    return value


def record_snapshot(record: FileRecord) -> Dict[str, Any]:
    """JSON-ready view of the fields clients track (no embedding or hash)."""
    return {name: _json_value(getattr(record, name)) for name in EVENT_FIELDS}


@dataclass
class FileChangeEvent:
    """One committed change to a file row."""

    event_type: str
    file_id: str
    user_id: Optional[str]
    record: Optional[Dict[str, Any]] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class FileChangeFeed:
    """Per-user publish/subscribe of file change events."""

    def __init__(self):
        self._subscribers: Dict[Optional[str], List[asyncio.Queue]] = {}

    @staticmethod
    def _key(user_id) -> Optional[str]:
        return None if user_id is None else str(user_id)

    def subscribe(self, user_id) -> asyncio.Queue:
        """Register a new queue that receives the user's events."""
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.setdefault(self._key(user_id), []).append(queue)
        logger.info(f"Change feed subscriber added for user {user_id}")
        return queue

    def unsubscribe(self, user_id, queue: asyncio.Queue) -> None:
        """Remove a queue; unknown queues are ignored."""
        key = self._key(user_id)
        queues = self._subscribers.get(key, [])
        if queue in queues:
            queues.remove(queue)
            logger.info(f"Change feed subscriber removed for user {user_id}")
        if not queues:
            self._subscribers.pop(key, None)

    def subscriber_count(self, user_id) -> int:
        return len(self._subscribers.get(self._key(user_id), []))

    def publish(self, event: FileChangeEvent) -> None:
        """Deliver an event to every subscriber of its user, in publish order."""
        for queue in self._subscribers.get(self._key(event.user_id), []):
            queue.put_nowait(event)

    def publish_record(self, event_type: str, record: FileRecord) -> None:
        """Publish an INSERT or UPDATE carrying the row's current fields."""
        self.publish(
            FileChangeEvent(
                event_type=event_type,
                file_id=str(record.id),
                user_id=self._key(record.user_id),
                record=record_snapshot(record),
            )
        )

    def publish_delete(self, file_id, user_id) -> None:
        self.publish(
            FileChangeEvent(event_type=DELETE, file_id=str(file_id), user_id=self._key(user_id))
        )


_change_feed: Optional[FileChangeFeed] = None


def get_change_feed() -> FileChangeFeed:
    """Get or create the global change feed."""
    global _change_feed
    if _change_feed is None:
        _change_feed = FileChangeFeed()
    return _change_feed
