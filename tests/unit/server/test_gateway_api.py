import asyncio
import io

import pytest
from fastapi.testclient import TestClient
from starlette.datastructures import UploadFile

from src.assistant.errors import ValidationError

from src.assistant.chat_log import ChatLogger
from src.assistant.gateway import AssistantGateway
from src.server.cache import ResponseCache
from src.server.conversation.store import SQLiteConversationStore
from src.server.dependencies import (
    set_configuration,
    set_conversation_store,
    set_gateway,
    set_response_cache,
)

HEADERS = {"X-User-Id": "user-1"}


@pytest.fixture
def remote(fake_client_factory):
    return fake_client_factory(
        run_statuses=["queued", "in_progress", "completed"],
        assistant_files={"asst_default": ["file-prior"]},
        failing_uploads=["b.txt"],
    )


@pytest.fixture
def client(tmp_path, remote, gateway_config, recording_sleep):
    store = SQLiteConversationStore(str(tmp_path / "gateway_api.db"))
    asyncio.run(store.init())
    set_configuration(gateway_config)
    set_conversation_store(store)
    set_response_cache(ResponseCache(ttl=60, sweep_interval=3600))
    set_gateway(
        AssistantGateway(
            remote,
            store,
            gateway_config,
            chat_logger=ChatLogger(tmp_path / "logs"),
            sleep=recording_sleep,
        )
    )

    from src.server.app import app

    with TestClient(app) as test_client:
        yield test_client

    set_gateway(None)
    set_response_cache(None)
    set_conversation_store(None)
    set_configuration(None)


def test_thread_chat_and_history(client: TestClient):
    response = client.post("/api/thread/new", json={}, headers=HEADERS)
    assert response.status_code == 200
    thread_id = response.json()["thread_id"]
    conversation_id = response.json()["conversation_id"]

    response = client.post("/api/chat", json={"thread_id": thread_id, "message": "Hello"}, headers=HEADERS)
    assert response.status_code == 200
    assert response.json()["text"] == "Hi there!"

    response = client.get(f"/api/conversations/{conversation_id}", headers=HEADERS)
    assert response.status_code == 200
    detail = response.json()
    assert detail["thread_id"] == thread_id
    assert [m["role"] for m in detail["messages"]] == ["user", "assistant"]

    response = client.get("/api/conversations", headers={"X-User-Id": "someone-else"})
    assert response.json()["conversations"] == []


def test_chat_errors_carry_kind_and_detail(client: TestClient, remote):
    response = client.post("/api/chat", json={"message": "Hello"}, headers=HEADERS)
    assert response.status_code == 400
    assert response.json()["kind"] == "validation_error"

    response = client.post("/api/chat", json={"thread_id": "thread_nope", "message": "Hello"}, headers=HEADERS)
    assert response.status_code == 404
    assert response.json()["kind"] == "not_found"

    thread_id = client.post("/api/thread/new", json={}, headers=HEADERS).json()["thread_id"]
    remote.run_statuses = ["in_progress"]
    response = client.post("/api/chat", json={"thread_id": thread_id, "message": "Hello"}, headers=HEADERS)
    assert response.status_code == 504
    assert response.json()["kind"] == "run_timed_out"

    remote.run_statuses = ["failed"]
    remote.last_error = "server_error"
    response = client.post("/api/chat", json={"thread_id": thread_id, "message": "Hello"}, headers=HEADERS)
    assert response.status_code == 502
    body = response.json()
    assert body["kind"] == "remote_run_failed"
    assert body["status"] == "failed"
    assert "server_error" in body["detail"]


def test_reuse_latest_thread(client: TestClient):
    first = client.post("/api/thread/new", json={}, headers=HEADERS).json()
    reused = client.post("/api/thread/new", json={"fresh": False}, headers=HEADERS).json()
    assert reused == first


def test_directory_upload_reports_partial_failure(client: TestClient, tmp_path, remote):
    data = tmp_path / "data"
    data.mkdir()
    for name in ["a.txt", "b.txt", "c.txt", "skip.exe"]:
        (data / name).write_text(name)

    response = client.get("/api/assistants/asst_default/files")
    assert response.json()["file_ids"] == ["file-prior"]

    response = client.post("/api/upload-directory", json={"dir": str(data)}, headers=HEADERS)
    assert response.status_code == 200
    body = response.json()
    assert body["uploaded"] == 2
    assert [failure["file"] for failure in body["failures"]] == ["b.txt"]
    assert body["file_ids"] == ["file-prior", "file-a.txt", "file-c.txt"]

    response = client.get("/api/assistants/asst_default/files")
    assert response.json()["file_ids"] == ["file-prior", "file-a.txt", "file-c.txt"]
    assert remote.count("retrieve_assistant") == 3

    response = client.get("/api/files", headers=HEADERS)
    assert sorted(f["filename"] for f in response.json()["files"]) == ["a.txt", "c.txt"]


def test_attachment_listing_is_cached(client: TestClient, remote):
    client.get("/api/assistants/asst_default/files")
    client.get("/api/assistants/asst_default/files")
    assert remote.count("retrieve_assistant") == 1


def test_single_file_upload(client: TestClient):
    response = client.post(
        "/api/upload",
        files={"file": ("notes.txt", b"hello", "text/plain")},
        headers=HEADERS,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["uploaded"] == 1
    assert body["uploaded_ids"] == ["file-notes.txt"]
    assert body["file_ids"] == ["file-prior", "file-notes.txt"]


def test_upload_source_must_be_exactly_one(client: TestClient, tmp_path):
    response = client.post(
        "/api/upload",
        files={"file": ("notes.txt", b"hello", "text/plain")},
        data={"dir": str(tmp_path)},
        headers=HEADERS,
    )
    assert response.status_code == 400
    assert response.json()["kind"] == "validation_error"

    response = client.post("/api/upload", data={"assistant_id": "asst_default"}, headers=HEADERS)
    assert response.status_code == 400

    response = client.post("/api/upload-directory", json={}, headers=HEADERS)
    assert response.status_code == 400


def test_upload_error_kinds(client: TestClient, tmp_path):
    response = client.post("/api/upload-directory", json={"dir": str(tmp_path / "missing")}, headers=HEADERS)
    assert response.status_code == 404

    empty = tmp_path / "empty"
    empty.mkdir()
    response = client.post("/api/upload-directory", json={"dir": str(empty)}, headers=HEADERS)
    assert response.status_code == 422
    assert response.json()["kind"] == "no_compatible_files"

    only_bad = tmp_path / "only_bad"
    only_bad.mkdir()
    (only_bad / "b.txt").write_text("b")
    response = client.post("/api/upload-directory", json={"dir": str(only_bad)}, headers=HEADERS)
    assert response.status_code == 502
    assert response.json()["kind"] == "all_uploads_failed"


def test_conversation_archive_is_soft(client: TestClient):
    conversation_id = client.post("/api/thread/new", json={}, headers=HEADERS).json()["conversation_id"]

    response = client.patch(f"/api/conversations/{conversation_id}", json={"title": "Planning"}, headers=HEADERS)
    assert response.status_code == 200
    assert response.json()["title"] == "Planning"

    response = client.delete(f"/api/conversations/{conversation_id}", headers=HEADERS)
    assert response.json()["success"] is True
    assert client.get("/api/conversations", headers=HEADERS).json()["conversations"] == []

    response = client.get("/api/conversations?include_archived=true", headers=HEADERS)
    assert response.json()["conversations"][0]["archived"] is True

    response = client.get(f"/api/conversations/{conversation_id}", headers={"X-User-Id": "intruder"})
    assert response.status_code == 404
    assert response.json()["kind"] == "not_found"


def test_malformed_request_body_is_validation_error(client: TestClient):
    response = client.post("/api/chat", json=["not", "an", "object"], headers=HEADERS)
    assert response.status_code == 400
    assert response.json()["kind"] == "validation_error"


def test_health_and_config(client: TestClient):
    assert client.get("/api/health").json() == {"status": "ok"}
    config = client.get("/api/config").json()
    assert config["assistant_configured"] is True
    assert config["max_poll_attempts"] == 30
    assert ".pdf" in config["upload_extensions"]


def test_oversized_upload_is_rejected_without_reading_it(client: TestClient, remote, gateway_config, monkeypatch):
    gateway_config.upload_max_file_bytes = 16
    reads = []
    original_read = UploadFile.read

    async def recording_read(self, size=-1):
        data = await original_read(self, size)
        reads.append(len(data))
        return data

    monkeypatch.setattr(UploadFile, "read", recording_read)
    response = client.post(
        "/api/upload",
        files={"file": ("big.txt", b"x" * 4096, "text/plain")},
        headers=HEADERS,
    )

    assert response.status_code == 400
    assert response.json()["kind"] == "validation_error"
    assert all(count <= 17 for count in reads)
    assert remote.count("create_file") == 0


@pytest.mark.asyncio
async def test_upload_of_unknown_size_stops_reading_past_limit():
    from src.server.app import _read_within_limit

    upload = UploadFile(file=io.BytesIO(b"x" * 4096), filename="big.txt")
    assert upload.size is None

    with pytest.raises(ValidationError):
        await _read_within_limit(upload, 16)
    assert upload.file.tell() == 17


@pytest.mark.asyncio
async def test_upload_within_limit_is_read_whole():
    from src.server.app import _read_within_limit

    upload = UploadFile(file=io.BytesIO(b"hello"), filename="small.txt")

    assert await _read_within_limit(upload, 16) == b"hello"
