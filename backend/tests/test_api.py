from __future__ import annotations

import base64
import json
from typing import Any

import pytest

from backend.knowledge.core.config import settings
from backend.knowledge.ingest.namespaces import derive_user_namespace

from .conftest import FakeMinio, RecordingTask, make_upload


def _encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def test_health(app: Any) -> None:
    response = app.get("/admin/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_feed_exposes_counters(app: Any) -> None:
    app.post(
        "/api/files",
        json={"user_id": "user-1", "file": {"name": "a.txt", "content": _encode(b"hello world")}},
    )

    response = app.get("/admin/metrics")

    assert response.status_code == 200
    assert "kb_extraction_methods_total" in response.text
    assert "kb_requests_total" in response.text


def test_ingest_base64_file(app: Any, indexing_task: RecordingTask, fake_minio: FakeMinio) -> None:
    response = app.post(
        "/api/files",
        json={
            "user_id": "user-1",
            "file": {"name": "hello.txt", "content": _encode(b"hello world"), "type": "text/plain"},
            "metadata": {"source": "web"},
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "hello.txt"
    assert body["size"] == 11
    assert body["type"] == "file"
    assert body["namespace"] == derive_user_namespace("user-1")
    assert body["extracted_text"] == "hello world"
    assert body["extraction_method"] == "direct_text"
    assert body["metadata"]["source"] == "web"
    assert body["metadata"]["origin"] == "direct_upload"
    assert (body["namespace"], body["object_key"]) in fake_minio.objects
    # Background tasks run before TestClient returns.
    assert len(indexing_task.calls) == 1


def test_ingest_accepts_data_url_content(app: Any) -> None:
    content = "data:text/plain;base64," + _encode(b"a data url payload")

    response = app.post(
        "/api/files", json={"user_id": "user-1", "file": {"name": "d.txt", "content": content}}
    )

    assert response.status_code == 200
    assert response.json()["extracted_text"] == "a data url payload"


def test_ingest_rejects_bad_base64(app: Any) -> None:
    response = app.post(
        "/api/files",
        json={"user_id": "user-1", "file": {"name": "a.txt", "content": "not base64!!"}},
    )

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "InputError"
    assert body["retryable"] is False


def test_ingest_requires_file(app: Any) -> None:
    response = app.post("/api/files", json={"user_id": "user-1"})

    assert response.status_code == 400
    assert response.json()["detail"] == "A file is required"


def test_ingest_requires_user(app: Any) -> None:
    response = app.post(
        "/api/files", json={"user_id": " ", "file": {"name": "a.txt", "content": _encode(b"x")}}
    )

    assert response.status_code == 400


def test_multipart_upload(app: Any) -> None:
    response = app.post(
        "/api/files/upload",
        data={"user_id": "user-1", "metadata": json.dumps({"folder": "inbox"})},
        files=make_upload("notes.md", b"# Notes\n\nShip it on Friday."),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "notes.md"
    assert body["extraction_state"] == "succeeded"
    assert body["metadata"]["folder"] == "inbox"


def test_multipart_upload_rejects_bad_metadata(app: Any) -> None:
    response = app.post(
        "/api/files/upload",
        data={"user_id": "user-1", "metadata": "{not json"},
        files=make_upload("notes.md", b"# Notes"),
    )

    assert response.status_code == 400
    assert response.json()["error"] == "InputError"


def test_multipart_upload_enforces_size_limit(app: Any, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "UPLOAD_MAX_BYTES", 8)

    response = app.post(
        "/api/files/upload",
        data={"user_id": "user-1"},
        files=make_upload("big.txt", b"0123456789"),
    )

    assert response.status_code == 413
    assert response.json()["error"] == "PayloadTooLargeError"


def test_zero_byte_upload_succeeds_with_marker(app: Any) -> None:
    response = app.post(
        "/api/files/upload", data={"user_id": "user-1"}, files=make_upload("empty.txt", b"")
    )

    assert response.status_code == 200
    body = response.json()
    assert body["extraction_state"] == "failed"
    assert body["extracted_text"] == "[Unable to extract meaningful content from empty.txt]"


def test_list_files_newest_first_with_derived_type(app: Any) -> None:
    for name in ("first.txt", "photo.png", "last.mp3"):
        app.post(
            "/api/files",
            json={"user_id": "user-1", "file": {"name": name, "content": _encode(b"payload bytes")}},
        )

    response = app.get("/api/files", params={"user_id": "user-1"})

    assert response.status_code == 200
    files = response.json()["files"]
    assert [item["name"] for item in files] == ["last.mp3", "photo.png", "first.txt"]
    assert [item["type"] for item in files] == ["audio", "image", "file"]
    assert app.get("/api/files", params={"user_id": "user-1"}).json() == response.json()


def test_list_requires_user_id(app: Any) -> None:
    assert app.get("/api/files").status_code == 422


def test_delete_file(app: Any) -> None:
    created = app.post(
        "/api/files",
        json={"user_id": "user-1", "file": {"name": "a.txt", "content": _encode(b"hello world")}},
    ).json()

    response = app.delete(f"/api/files/{created['id']}", params={"user_id": "user-1"})

    assert response.status_code == 200
    assert response.json() == {"success": True}
    assert app.get("/api/files", params={"user_id": "user-1"}).json()["files"] == []


def test_delete_unknown_file_is_404(app: Any) -> None:
    response = app.delete(
        "/api/files/00000000-0000-0000-0000-000000000000", params={"user_id": "user-1"}
    )

    assert response.status_code == 404
    assert response.json()["error"] == "NotFoundError"


def test_storage_outage_is_retryable_503(app: Any, fake_minio: FakeMinio, monkeypatch: pytest.MonkeyPatch) -> None:
    import urllib3

    def _offline(*args, **kwargs):
        raise urllib3.exceptions.ProtocolError("connection reset")

    monkeypatch.setattr(fake_minio, "bucket_exists", _offline)

    response = app.post(
        "/api/files",
        json={"user_id": "user-1", "file": {"name": "a.txt", "content": _encode(b"hello world")}},
    )

    assert response.status_code == 503
    assert response.json() == {
        "detail": "Object store bucket_exists failed",
        "error": "StorageUnavailableError",
        "retryable": True,
    }


def test_channel_text_content(app: Any, indexing_task: RecordingTask) -> None:
    response = app.post(
        "/api/channel/content",
        json={"user_id": "user-1", "content": "Reminder: renew the domain next week."},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["file"]["name"].endswith(".md")
    assert body["file"]["metadata"]["origin"] == "channel"
    assert len(indexing_task.calls) == 1


def test_channel_audio_reference(app: Any, fake_minio: FakeMinio, indexing_task: RecordingTask) -> None:
    identified = app.post("/api/namespaces/identify", json={"user_id": "user-1"}).json()
    fake_minio.put_object(identified["namespace"], "knowledge-base/a.ogg", b"OggS", 4)

    response = app.post(
        "/api/channel/content",
        json={
            "user_id": "user-1",
            "file_type": "audio",
            "namespace": identified["namespace"],
            "object_key": "knowledge-base/a.ogg",
        },
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "file": None}
    assert len(indexing_task.calls) == 1
    assert app.get("/api/files", params={"user_id": "user-1"}).json()["files"] == []


def test_channel_content_requires_payload(app: Any) -> None:
    response = app.post("/api/channel/content", json={"user_id": "user-1"})

    assert response.status_code == 400


def test_identify_user(app: Any) -> None:
    response = app.post("/api/namespaces/identify", json={"user_id": "user-1"})

    assert response.status_code == 200
    assert response.json() == {
        "user_id": "user-1",
        "owner_key": "user-1",
        "namespace": derive_user_namespace("user-1"),
        "normalized_number": None,
    }


def test_identify_unknown_contact(app: Any) -> None:
    response = app.post("/api/namespaces/identify", json={"contact_number": "0044 20 7946 0958"})

    assert response.status_code == 200
    assert response.json() == {
        "user_id": None,
        "owner_key": "contact:442079460958",
        "namespace": "kb-contact-442079460958",
        "normalized_number": "+442079460958",
    }


def test_identify_overlong_contact_is_400(app: Any) -> None:
    response = app.post("/api/namespaces/identify", json={"contact_number": "1" * 60})

    assert response.status_code == 400
    assert response.json()["error"] == "InputError"


def test_identify_contact_with_and_without_plus(app: Any) -> None:
    first = app.post("/api/namespaces/identify", json={"contact_number": "12345"})
    second = app.post("/api/namespaces/identify", json={"contact_number": "+12345"})

    assert first.status_code == second.status_code == 200
    assert first.json()["namespace"] == second.json()["namespace"] == "kb-contact-12345"
    assert first.json()["owner_key"] == second.json()["owner_key"] == "contact:12345"


def test_identify_requires_an_identifier(app: Any) -> None:
    response = app.post("/api/namespaces/identify", json={})

    assert response.status_code == 400


def test_service_token_guard(app: Any, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "API_TOKEN", "s3cret")

    assert app.get("/api/files", params={"user_id": "user-1"}).status_code == 401
    assert (
        app.get(
            "/api/files",
            params={"user_id": "user-1"},
            headers={"Authorization": "Bearer wrong"},
        ).status_code
        == 401
    )
    assert (
        app.get(
            "/api/files",
            params={"user_id": "user-1"},
            headers={"Authorization": "Bearer s3cret"},
        ).status_code
        == 200
    )
    assert app.get("/admin/health").status_code == 200
