import asyncio
import json
from unittest.mock import AsyncMock

import httpx
import pytest

from client.files_store import CONNECTION_LOST_MESSAGE, FilesStore, FilesStoreError, iter_sse_events
from conftest import new_id

LISTED = [
    {"id": "f-2", "filename": "roadmap.txt", "status": "processing", "progress": 25},
    {"id": "f-1", "filename": "notes.txt", "status": "ready", "progress": 100},
]


def _sse(*events):
    chunks = []
    for name, payload in events:
        chunks.append(f"event: {name}\ndata: {json.dumps(payload)}\n\n")
    return "".join(chunks).encode()


class FakeFilesAPI:
    """Answers the store's requests; event stream responses are queued per connection."""

    def __init__(self, files=None, streams=None):
        self.files = list(files if files is not None else LISTED)
        self.streams = list(streams or [])
        self.requests = []
        self.upload_response = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append((request.method, request.url.path))
        if request.url.path == "/files/events":
            if self.streams:
                return self.streams.pop(0)
            return httpx.Response(503, json={"error": {"message": "unavailable", "code": "X"}})
        if request.method == "GET" and request.url.path == "/files":
            return httpx.Response(200, json={"success": True, "data": {"files": self.files, "count": len(self.files)}})
        if request.method == "POST" and request.url.path == "/files/upload":
            if self.upload_response is not None:
                return self.upload_response
            return httpx.Response(
                202,
                json={"success": True, "data": {"id": "f-new", "filename": "plan.txt", "fileSize": 4, "status": "pending"}},
            )
        if request.method == "DELETE":
            return httpx.Response(200, json={"success": True, "data": {"message": "File deleted successfully"}})
        return httpx.Response(404, json={"error": {"message": "File not found", "code": "FILE_NOT_FOUND"}})

    def event_paths(self):
        return [path for _, path in self.requests if path == "/files/events"]


def _store(api, **kwargs):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(api), base_url="http://testserver")
    store = FilesStore(http_client=http_client, **kwargs)
    store._sleep = AsyncMock()
    return store


@pytest.mark.asyncio
async def test_first_subscriber_fetches_and_connects_last_disconnects():
    api = FakeFilesAPI()
    store = _store(api)
    seen = []

    unsubscribe_a = await store.subscribe(lambda s: seen.append(len(s.files)))
    unsubscribe_b = await store.subscribe(lambda s: None)

    assert store.subscriber_count == 2
    assert [path for _, path in api.requests].count("/files") == 1
    assert [f["id"] for f in store.files] == ["f-2", "f-1"]
    assert seen[-1] == 2
    task = store._stream_task
    assert task is not None

    unsubscribe_a()
    assert store._stream_task is task
    unsubscribe_b()
    assert store._stream_task is None
    with pytest.raises(asyncio.CancelledError):
        await task
    assert store.connected is False
    await store.aclose()


@pytest.mark.asyncio
async def test_reconnect_backoff_then_connection_lost():
    api = FakeFilesAPI()
    store = _store(api, error_clear_seconds=60)

    await store.subscribe(lambda s: None)
    await store._stream_task

    assert [c.args[0] for c in store._sleep.await_args_list] == [1.0, 2.0, 4.0, 8.0, 16.0]
    assert len(api.event_paths()) == 6
    assert store.error == CONNECTION_LOST_MESSAGE
    assert store.connected is False
    await store.aclose()


@pytest.mark.asyncio
async def test_successful_connection_resets_backoff():
    opened = httpx.Response(
        200,
        headers={"content-type": "text/event-stream"},
        content=_sse(("heartbeat", {"timestamp": "2025-01-01T00:00:00Z"})),
    )
    api = FakeFilesAPI(streams=[httpx.Response(503), opened])
    store = _store(api, error_clear_seconds=60)

    await store.subscribe(lambda s: None)
    await store._stream_task

    assert [c.args[0] for c in store._sleep.await_args_list] == [1.0, 1.0, 2.0, 4.0, 8.0, 16.0]
    assert store.error == CONNECTION_LOST_MESSAGE
    await store.aclose()


@pytest.mark.asyncio
async def test_stream_events_update_store():
    body = _sse(
        ("file-update", {"eventType": "UPDATE", "file": {"id": "f-2", "status": "ready", "progress": 100}}),
        ("file-update", {"eventType": "INSERT", "file": {"id": "f-3", "filename": "new.md", "status": "pending", "progress": 0}}),
        ("file-deleted", {"eventType": "DELETE", "file": {"id": "f-1"}}),
        ("heartbeat", {"timestamp": "2025-01-01T00:00:00Z"}),
    )
    stream = httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body)
    api = FakeFilesAPI(streams=[stream])
    store = _store(api, max_reconnect_attempts=0, error_clear_seconds=60)

    await store.subscribe(lambda s: None)
    await store._stream_task

    assert [f["id"] for f in store.files] == ["f-3", "f-2"]
    updated = store.get_file("f-2")
    assert updated["status"] == "ready"
    assert updated["filename"] == "roadmap.txt"
    assert [f["id"] for f in store.processing_files] == ["f-3"]
    assert [f["id"] for f in store.ready_files] == ["f-2"]
    await store.aclose()


@pytest.mark.asyncio
async def test_malformed_event_is_ignored():
    store = _store(FakeFilesAPI())
    store.files = [dict(f) for f in LISTED]

    store._handle_event("file-update", "{not json")
    store._handle_event("file-update", json.dumps({"file": {}}))

    assert store.files == LISTED
    await store.aclose()


@pytest.mark.asyncio
async def test_upload_inserts_pending_entry():
    store = _store(FakeFilesAPI())

    file_id = await store.upload_file(b"plan", "plan.txt", "text/plain")

    assert file_id == "f-new"
    entry = store.files[0]
    assert entry["id"] == "f-new"
    assert entry["status"] == "pending"
    assert store.is_processing("f-new")
    assert store.get_file_by_name("plan.txt") is entry
    await store.aclose()


@pytest.mark.asyncio
async def test_upload_does_not_duplicate_entry_seen_on_stream():
    store = _store(FakeFilesAPI())
    store._handle_event(
        "file-update",
        json.dumps({"file": {"id": "f-new", "filename": "plan.txt", "status": "processing", "progress": 25}}),
    )

    await store.upload_file(b"plan", "plan.txt")

    assert [f["id"] for f in store.files] == ["f-new"]
    assert store.files[0]["status"] == "processing"
    await store.aclose()


@pytest.mark.asyncio
async def test_upload_error_is_set_and_auto_cleared():
    api = FakeFilesAPI()
    api.upload_response = httpx.Response(
        413, json={"error": {"message": "File size exceeds maximum of 10MB", "code": "FILE_TOO_LARGE"}}
    )
    store = _store(api, error_clear_seconds=0.01)

    with pytest.raises(FilesStoreError):
        await store.upload_file(b"x" * 10, "huge.bin")

    assert store.error == "Upload failed: File size exceeds maximum of 10MB"
    assert store.files == []
    await asyncio.sleep(0.05)
    assert store.error is None
    await store.aclose()


@pytest.mark.asyncio
async def test_delete_removes_entry_and_reports_failures():
    api = FakeFilesAPI()
    store = _store(api, error_clear_seconds=60)
    await store.refresh_files()

    await store.delete_file("f-1")
    assert store.get_file("f-1") is None
    assert ("DELETE", "/files/f-1") in api.requests

    def reject(request):
        return httpx.Response(404, json={"error": {"message": "File not found", "code": "FILE_NOT_FOUND"}})

    store._client = httpx.AsyncClient(transport=httpx.MockTransport(reject), base_url="http://testserver")
    with pytest.raises(FilesStoreError):
        await store.delete_file(new_id())
    assert store.error == "Delete failed: File not found"
    await store.aclose()


@pytest.mark.asyncio
async def test_refresh_failure_keeps_cached_files():
    api = FakeFilesAPI()
    store = _store(api)
    await store.refresh_files()

    def broken(request):
        raise httpx.ConnectError("connection refused", request=request)

    store._client = httpx.AsyncClient(transport=httpx.MockTransport(broken), base_url="http://testserver")
    await store.refresh_files()

    assert [f["id"] for f in store.files] == ["f-2", "f-1"]
    await store.aclose()


@pytest.mark.asyncio
async def test_iter_sse_events_handles_comments_and_multiline_data():
    async def lines():
        for line in [": keep-alive", "event: file-update", "data: {\"a\":", "data: 1}", "", "data: tail"]:
            yield line

    events = [event async for event in iter_sse_events(lines())]

    assert events == [("file-update", '{"a":\n1}'), ("message", "tail")]
