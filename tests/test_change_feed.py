import asyncio
import json
from types import SimpleNamespace

import pytest

from conftest import OTHER_USER_ID, USER_ID, new_id
from core.events.change_feed import UPDATE, FileChangeFeed, record_snapshot
from dao.models.file import FileStatus, FileType, ProcessingStage
from services.file_service.file_service import stream_file_events


def _record(user_id=USER_ID, **overrides):
    values = dict(
        id=new_id(),
        user_id=user_id,
        filename="roadmap.txt",
        file_type=FileType.TEXT,
        status=FileStatus.PROCESSING,
        progress=25,
        processing_stage=ProcessingStage.COMPRESSION,
        error_message=None,
        uploaded_at=None,
        updated_at=None,
        embedding=[0.1] * 1024,
        content_hash="a" * 64,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def test_snapshot_omits_embedding_and_hash():
    snapshot = record_snapshot(_record())

    assert snapshot["status"] == "processing"
    assert snapshot["processing_stage"] == "compression"
    assert "embedding" not in snapshot
    assert "content_hash" not in snapshot


def test_events_only_reach_owning_user():
    feed = FileChangeFeed()
    mine = feed.subscribe(USER_ID)
    theirs = feed.subscribe(OTHER_USER_ID)

    feed.publish_record(UPDATE, _record())

    assert mine.qsize() == 1
    assert theirs.qsize() == 0


def test_unsubscribe_removes_queue():
    feed = FileChangeFeed()
    queue = feed.subscribe(USER_ID)
    feed.unsubscribe(USER_ID, queue)
    feed.unsubscribe(USER_ID, queue)

    assert feed.subscriber_count(USER_ID) == 0


@pytest.mark.asyncio
async def test_stream_emits_update_and_delete_in_order():
    feed = FileChangeFeed()
    stream = stream_file_events(USER_ID, change_feed=feed, heartbeat_seconds=5)
    first = asyncio.ensure_future(stream.__anext__())
    await asyncio.sleep(0.01)

    record = _record(status=FileStatus.READY, progress=100)
    feed.publish_record(UPDATE, record)
    feed.publish_delete(record.id, USER_ID)

    update = await first
    deleted = await stream.__anext__()
    await stream.aclose()

    assert update["event"] == "file-update"
    payload = json.loads(update["data"])
    assert payload["eventType"] == "UPDATE"
    assert payload["file"]["id"] == record.id
    assert payload["file"]["progress"] == 100
    assert deleted["event"] == "file-deleted"
    assert json.loads(deleted["data"])["file"] == {"id": record.id}


@pytest.mark.asyncio
async def test_stream_sends_heartbeat_when_idle():
    feed = FileChangeFeed()
    stream = stream_file_events(USER_ID, change_feed=feed, heartbeat_seconds=0.01)

    message = await stream.__anext__()
    await stream.aclose()

    assert message["event"] == "heartbeat"
    assert "timestamp" in json.loads(message["data"])


@pytest.mark.asyncio
async def test_stream_sends_heartbeats_during_steady_traffic():
    feed = FileChangeFeed()
    stream = stream_file_events(USER_ID, change_feed=feed, heartbeat_seconds=0.1)
    record = _record()

    async def publish_steadily():
        for progress in range(20):
            await asyncio.sleep(0.05)
            feed.publish_record(UPDATE, _record(id=record.id, progress=progress))

    publisher = asyncio.ensure_future(publish_steadily())
    names = []
    while names.count("file-update") < 20:
        names.append((await stream.__anext__())["event"])
    await publisher
    await stream.aclose()

    assert names.count("heartbeat") >= 4


@pytest.mark.asyncio
async def test_closing_stream_unsubscribes():
    feed = FileChangeFeed()
    stream = stream_file_events(USER_ID, change_feed=feed, heartbeat_seconds=0.01)

    await stream.__anext__()
    assert feed.subscriber_count(USER_ID) == 1

    await stream.aclose()
    assert feed.subscriber_count(USER_ID) == 0
