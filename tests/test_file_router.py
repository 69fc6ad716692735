from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from config import settings
from conftest import OTHER_USER_ID, USER_ID, fake_embedding, new_id
from dao.base_dao import as_uuid
from dao.file_dao import FileDAO
from dao.models.file import FileStatus, FileType, ProcessingStage


async def _seed(session_factory, filename, user_id=USER_ID, status=FileStatus.READY, minutes_ago=0):
    async with session_factory() as session:
        record = await FileDAO().create(
            session,
            user_id=as_uuid(user_id),
            filename=filename,
            file_type=FileType.TEXT,
            content_hash=filename.ljust(64, "0")[:64],
            status=status,
            processing_stage=ProcessingStage.FINALIZATION if status == FileStatus.READY else ProcessingStage.EXTRACTION,
            progress=100 if status == FileStatus.READY else 0,
            description=f"{filename} description" if status == FileStatus.READY else None,
            embedding=fake_embedding() if status == FileStatus.READY else None,
            uploaded_at=datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
        )
        await session.commit()
        return str(record.id)


@pytest_asyncio.fixture
async def seeded(session_factory):
    return {
        "old": await _seed(session_factory, "old-notes.txt", minutes_ago=30),
        "pending": await _seed(session_factory, "draft.md", status=FileStatus.PENDING, minutes_ago=10),
        "new": await _seed(session_factory, "roadmap.txt", minutes_ago=1),
        "foreign": await _seed(session_factory, "someone-else.txt", user_id=OTHER_USER_ID),
    }


@pytest.mark.asyncio
async def test_root_health(async_client):
    response = await async_client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "method,path",
    [
        ("GET", "/files"),
        ("GET", f"/files/{new_id()}"),
        ("DELETE", f"/files/{new_id()}"),
        ("POST", "/files/upload"),
        ("GET", "/files/events"),
    ],
)
async def test_requests_without_user_are_unauthorized(async_client, method, path):
    from api.deps import get_current_user_id
    from main import app

    async def no_user():
        return None

    app.dependency_overrides[get_current_user_id] = no_user

    response = await async_client.request(method, path)

    assert response.status_code == 401
    assert response.json() == {"error": {"message": "Authentication required", "code": "AUTH_REQUIRED"}}


@pytest.mark.asyncio
async def test_upload_is_accepted_then_processed(async_client):
    content = b"Q3 plan: 3 markets, $2M budget.\n" * 150

    response = await async_client.post(
        "/files/upload",
        files={"file": ("strategic-plan.txt", content, "text/plain")},
    )

    assert response.status_code == 202
    body = response.json()
    assert body["success"] is True
    data = body["data"]
    assert data["filename"] == "strategic-plan.txt"
    assert data["fileSize"] == len(content)
    assert data["status"] == "pending"
    assert data["message"] == "File upload started. Processing in background."

    detail = await async_client.get(f"/files/{data['id']}")
    assert detail.status_code == 200
    file_data = detail.json()["data"]
    assert file_data["status"] == "ready"
    assert file_data["progress"] == 100
    assert file_data["user_id"] == USER_ID
    assert len(file_data["embedding"]) == 1024


@pytest.mark.asyncio
async def test_upload_failure_is_visible_on_row(async_client, embedder):
    from core.vector.voyage_client import VectorizationError

    embedder.side_effect = VectorizationError("Voyage AI rate limit exceeded", "API_RATE_LIMIT")

    response = await async_client.post(
        "/files/upload", files={"file": ("notes.txt", b"some notes", "text/plain")}
    )
    assert response.status_code == 202

    detail = (await async_client.get(f"/files/{response.json()['data']['id']}")).json()["data"]
    assert detail["status"] == "failed"
    assert detail["processing_stage"] == "embedding"
    assert detail["error_message"].startswith("[EMBEDDING_ERROR]")


@pytest.mark.asyncio
async def test_upload_without_file_part(async_client):
    response = await async_client.post("/files/upload", data={"note": "no file here"})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "NO_FILE"


@pytest.mark.asyncio
async def test_upload_with_blank_filename(async_client):
    response = await async_client.post(
        "/files/upload", files={"file": ("   ", b"content", "text/plain")}
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_FILENAME"


@pytest.mark.asyncio
async def test_upload_too_large(async_client, monkeypatch, session_factory):
    monkeypatch.setattr(settings, "MAX_FILE_SIZE_MB", 0.001)

    response = await async_client.post(
        "/files/upload", files={"file": ("big.txt", b"a" * 2048, "text/plain")}
    )

    assert response.status_code == 413
    error = response.json()["error"]
    assert error["code"] == "FILE_TOO_LARGE"
    assert error["details"]["max_size_bytes"] == 1048
    listing = await async_client.get("/files")
    assert listing.json()["data"]["count"] == 0


@pytest.mark.asyncio
async def test_list_is_scoped_and_newest_first(async_client, seeded):
    response = await async_client.get("/files")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["count"] == 3
    assert [f["id"] for f in data["files"]] == [seeded["new"], seeded["pending"], seeded["old"]]
    assert "embedding" not in data["files"][0]


@pytest.mark.asyncio
async def test_list_filters_by_status(async_client, seeded):
    response = await async_client.get("/files", params={"status": "pending"})

    data = response.json()["data"]
    assert data["count"] == 1
    assert data["files"][0]["id"] == seeded["pending"]
    assert data["files"][0]["progress"] == 0


@pytest.mark.asyncio
async def test_list_rejects_unknown_status(async_client):
    response = await async_client.get("/files", params={"status": "archived"})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_STATUS_FILTER"


@pytest.mark.asyncio
async def test_get_rejects_malformed_id(async_client):
    response = await async_client.get("/files/1234")
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_FILE_ID"


@pytest.mark.asyncio
async def test_get_foreign_file_is_not_found(async_client, seeded):
    response = await async_client.get(f"/files/{seeded['foreign']}")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "FILE_NOT_FOUND"


@pytest.mark.asyncio
async def test_get_own_file(async_client, seeded):
    response = await async_client.get(f"/files/{seeded['new']}")

    data = response.json()["data"]
    assert data["filename"] == "roadmap.txt"
    assert data["description"] == "roadmap.txt description"
    assert data["file_type"] == "text"


@pytest.mark.asyncio
async def test_delete_own_file_publishes_event(async_client, seeded, change_feed):
    queue = change_feed.subscribe(USER_ID)

    response = await async_client.delete(f"/files/{seeded['old']}")

    assert response.status_code == 200
    assert response.json()["data"] == {"message": "File deleted successfully", "id": seeded["old"]}
    event = queue.get_nowait()
    assert event.event_type == "DELETE"
    assert event.file_id == seeded["old"]
    assert (await async_client.get(f"/files/{seeded['old']}")).status_code == 404


@pytest.mark.asyncio
async def test_delete_foreign_file_is_not_found(async_client, seeded, session_factory):
    response = await async_client.delete(f"/files/{seeded['foreign']}")

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "FILE_NOT_FOUND"
    async with session_factory() as session:
        assert await FileDAO().get_by_id(session, seeded["foreign"]) is not None


@pytest.mark.asyncio
async def test_delete_rejects_malformed_id(async_client):
    response = await async_client.delete("/files/not-a-uuid")
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_FILE_ID"


@pytest.mark.asyncio
@pytest.mark.parametrize("method", ["GET", "DELETE"])
async def test_newline_suffixed_id_is_rejected(async_client, seeded, method):
    response = await async_client.request(method, f"/files/{seeded['new']}%0A")

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_FILE_ID"


@pytest.mark.asyncio
async def test_non_v4_uuid_is_rejected(async_client):
    response = await async_client.get("/files/6ba7b810-9dad-11d1-80b4-00c04fd430c8")

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_FILE_ID"
