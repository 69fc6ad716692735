"""
Client-side cache of the user's files, kept in sync over Server-Sent Events.

The store owns one SSE connection, opened for the first subscriber and
closed when the last one leaves.
"""
import asyncio
import json
import logging
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple

import httpx

logger = logging.getLogger(__name__)

MAX_RECONNECT_ATTEMPTS = 5
RECONNECT_BASE_DELAY_SECONDS = 1.0
ERROR_CLEAR_SECONDS = 5.0
CONNECTION_LOST_MESSAGE = "Connection lost. Please refresh the page."

PROCESSING_STATUSES = ("pending", "processing")

Listener = Callable[["FilesStore"], None]


class FilesStoreError(Exception):
    """Raised by store actions when the server rejects a request."""


async def iter_sse_events(lines: AsyncIterator[str]) -> AsyncIterator[Tuple[str, str]]:
    """
    Parse an SSE line stream into (event, data) pairs.

    Comment lines are skipped; multi-line data is joined with newlines.
    """
    event_name = "message"
    data_lines: List[str] = []
    async for line in lines:
        if line == "":
            if data_lines:
                yield event_name, "\n".join(data_lines)
            event_name, data_lines = "message", []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            event_name = value
        elif name == "data":
            data_lines.append(value)
    if data_lines:
        yield event_name, "\n".join(data_lines)


def _error_message(response: httpx.Response, fallback: str) -> str:
    try:
        return response.json().get("error", {}).get("message") or fallback
    except (ValueError, AttributeError):
        return fallback


class FilesStore:
    """Reactive list of file records backed by the files API."""

    def __init__(
        self,
        base_url: str = "",
        http_client: Optional[httpx.AsyncClient] = None,
        max_reconnect_attempts: int = MAX_RECONNECT_ATTEMPTS,
        reconnect_base_delay: float = RECONNECT_BASE_DELAY_SECONDS,
        error_clear_seconds: float = ERROR_CLEAR_SECONDS,
    ):
        self._client = http_client or httpx.AsyncClient(base_url=base_url, timeout=None)
        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_base_delay = reconnect_base_delay
        self.error_clear_seconds = error_clear_seconds

        self.files: List[Dict[str, Any]] = []
        self.error: Optional[str] = None
        self.connected = False

        self._listeners: List[Listener] = []
        self._stream_task: Optional[asyncio.Task] = None
        self._reconnect_attempts = 0
        self._error_timer: Optional[asyncio.TimerHandle] = None
        self._sleep = asyncio.sleep

    @property
    def processing_files(self) -> List[Dict[str, Any]]:
        return [f for f in self.files if f.get("status") in PROCESSING_STATUSES]

    @property
    def ready_files(self) -> List[Dict[str, Any]]:
        return [f for f in self.files if f.get("status") == "ready"]

    @property
    def failed_files(self) -> List[Dict[str, Any]]:
        return [f for f in self.files if f.get("status") == "failed"]

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.error(f"Files store listener failed: {e}", exc_info=True)

    async def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener called with the store after every change.

        The first subscriber triggers the initial fetch and opens the event
        stream. Returns an unsubscribe function; the last unsubscribe closes
        the stream.
        """
        self._listeners.append(listener)
        if len(self._listeners) == 1:
            await self.refresh_files()
            self._connect()
        listener(self)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
                if not self._listeners:
                    self._disconnect()

        return unsubscribe

    def _connect(self) -> None:
        if self._stream_task is None or self._stream_task.done():
            self._reconnect_attempts = 0
            self._stream_task = asyncio.get_running_loop().create_task(self._run_event_stream())

    def _disconnect(self) -> None:
        if self._stream_task is not None:
            self._stream_task.cancel()
            self._stream_task = None
        self.connected = False

    async def _run_event_stream(self) -> None:
        while True:
            try:
                async with self._client.stream(
                    "GET", "/files/events", headers={"Accept": "text/event-stream"}
                ) as response:
                    response.raise_for_status()
                    self.connected = True
                    self._reconnect_attempts = 0
                    logger.info("Files event stream connected")
                    async for event_name, data in iter_sse_events(response.aiter_lines()):
                        self._handle_event(event_name, data)
                logger.warning("Files event stream closed by server")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Files event stream error: {e}")

            self.connected = False
            if self._reconnect_attempts >= self.max_reconnect_attempts:
                logger.error("Max reconnection attempts reached")
                self._set_error(CONNECTION_LOST_MESSAGE)
                return

            self._reconnect_attempts += 1
            delay = self.reconnect_base_delay * (2 ** (self._reconnect_attempts - 1))
            logger.info(
                f"Reconnecting in {delay}s "
                f"(attempt {self._reconnect_attempts}/{self.max_reconnect_attempts})"
            )
            await self._sleep(delay)

    def _handle_event(self, event_name: str, data: str) -> None:
        if event_name == "heartbeat":
            return
        try:
            payload = json.loads(data)
        except ValueError as e:
            logger.error(f"Failed to parse SSE event: {e}")
            return

        file_data = payload.get("file") or {}
        file_id = file_data.get("id")
        if not file_id:
            return

        if event_name == "file-update":
            self._merge(file_data)
        elif event_name == "file-deleted":
            self.files = [f for f in self.files if f.get("id") != file_id]
        else:
            return
        self._notify()

    def _merge(self, file_data: Dict[str, Any]) -> None:
        for index, existing in enumerate(self.files):
            if existing.get("id") == file_data["id"]:
                self.files[index] = {**existing, **file_data}
                return
        self.files.insert(0, dict(file_data))

    def _set_error(self, message: str) -> None:
        self.error = message
        if self._error_timer is not None:
            self._error_timer.cancel()
        self._error_timer = asyncio.get_running_loop().call_later(
            self.error_clear_seconds, self.clear_error
        )
        self._notify()

    def clear_error(self) -> None:
        self.error = None
        self._error_timer = None
        self._notify()

    async def refresh_files(self) -> None:
        """Re-fetch the full list. Errors are logged and the cached list is kept."""
        try:
            response = await self._client.get("/files")
            if response.status_code != 200:
                raise FilesStoreError(_error_message(response, "Failed to fetch files"))
            self.files = list(response.json()["data"]["files"])
            self._notify()
        except Exception as e:
            logger.error(f"Refresh error: {e}")

    async def upload_file(
        self, content: bytes, filename: str, content_type: str = "application/octet-stream"
    ) -> str:
        """
        Upload a file and add a pending entry for it.

        Returns:
            The id assigned by the server

        Raises:
            FilesStoreError: If the server rejects the upload
        """
        self.error = None
        try:
            response = await self._client.post(
                "/files/upload", files={"file": (filename, content, content_type)}
            )
            if response.status_code != 202:
                raise FilesStoreError(_error_message(response, "Upload failed"))
            data = response.json()["data"]
        except Exception as e:
            self._set_error(f"Upload failed: {e}")
            raise FilesStoreError(str(e)) from e

        file_id = data["id"]
        if self.get_file(file_id) is None:
            self.files.insert(
                0,
                {
                    "id": file_id,
                    "filename": data.get("filename", filename),
                    "status": "pending",
                    "progress": 0,
                    "processing_stage": None,
                    "error_message": None,
                },
            )
            self._notify()
        return file_id

    async def delete_file(self, file_id: str) -> None:
        """
        Delete a file on the server and drop it locally.

        Raises:
            FilesStoreError: If the server rejects the delete
        """
        self.error = None
        try:
            response = await self._client.delete(f"/files/{file_id}")
            if response.status_code != 200:
                raise FilesStoreError(_error_message(response, "Delete failed"))
        except Exception as e:
            self._set_error(f"Delete failed: {e}")
            raise FilesStoreError(str(e)) from e

        self.files = [f for f in self.files if f.get("id") != file_id]
        self._notify()

    def get_file(self, file_id: str) -> Optional[Dict[str, Any]]:
        return next((f for f in self.files if f.get("id") == file_id), None)

    def get_file_by_name(self, filename: str) -> Optional[Dict[str, Any]]:
        return next((f for f in self.files if f.get("filename") == filename), None)

    def is_processing(self, file_id: str) -> bool:
        file = self.get_file(file_id)
        return file is not None and file.get("status") in PROCESSING_STATUSES

    async def aclose(self) -> None:
        """Close the event stream and the HTTP client."""
        self._listeners.clear()
        self._disconnect()
        if self._error_timer is not None:
            self._error_timer.cancel()
            self._error_timer = None
        await self._client.aclose()
