from __future__ import annotations

import io
import sys
import threading
import uuid
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient
from minio.error import S3Error
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import JSON

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backend.knowledge.core.rate_limiter import limiter
from backend.knowledge.ingest.contacts import ContactIdentifier
from backend.knowledge.ingest.indexing import IndexingTrigger
from backend.knowledge.ingest.namespaces import NamespaceResolver
from backend.knowledge.ingest.pipeline import IngestionService, get_ingestion_service
from backend.knowledge.ingest.storage import ObjectStoreGateway
from backend.knowledge.main import create_app
from backend.knowledge.models import Base
from backend.knowledge.workers import tasks as tasks_module


class FakeS3Error(S3Error):
    """S3Error that skips the real constructor's response plumbing."""

    def __init__(self, code: str, message: str = "") -> None:
        Exception.__init__(self, code)
        self._fake_code = code
        self._fake_message = message or code

    @property
    def code(self) -> str:  # type: ignore[override]
        return self._fake_code

    def __str__(self) -> str:
        return f"S3 operation failed; code: {self._fake_code}, message: {self._fake_message}"


class FakeObject:
    def __init__(self, data: bytes, content_type: str) -> None:
        self._data = data
        self.content_type = content_type
        self.size = len(data)
        self.closed = False

    def read(self) -> bytes:
        return self._data

    def close(self) -> None:
        self.closed = True

    def release_conn(self) -> None:
        return None


class FakeMinio:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.buckets: set[str] = set()
        self.objects: dict[tuple[str, str], FakeObject] = {}
        self.make_bucket_calls = 0

    def bucket_exists(self, name: str) -> bool:
        return name in self.buckets

    def make_bucket(self, name: str, location: str | None = None) -> None:
        with self._lock:
            self.make_bucket_calls += 1
            if name in self.buckets:
                raise FakeS3Error("BucketAlreadyOwnedByYou")
            self.buckets.add(name)

    def put_object(
        self,
        bucket: str,
        object_name: str,
        data,
        length: int,
        *,
        content_type: str = "application/octet-stream",
    ) -> None:
        if bucket not in self.buckets:
            raise FakeS3Error("NoSuchBucket")
        payload = data.read() if hasattr(data, "read") else data
        with self._lock:
            self.objects[(bucket, object_name)] = FakeObject(bytes(payload), content_type)

    def stat_object(self, bucket: str, object_name: str) -> FakeObject:
        obj = self.objects.get((bucket, object_name))
        if obj is None:
            raise FakeS3Error("NoSuchKey")
        return obj

    def get_object(self, bucket: str, object_name: str) -> FakeObject:
        obj = self.objects.get((bucket, object_name))
        if obj is None:
            raise FakeS3Error("NoSuchKey")
        return FakeObject(obj.read(), obj.content_type)

    def remove_object(self, bucket: str, object_name: str) -> None:
        with self._lock:
            self.objects.pop((bucket, object_name), None)


class RecordingTask:
    """Stand-in for the Celery task that records ``apply_async`` calls."""

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []

    def apply_async(self, *, kwargs: dict[str, Any], countdown: float | None = None) -> None:
        self.calls.append({"payload": kwargs["payload"], "countdown": countdown})


def patch_json_columns() -> None:
    for table in Base.metadata.tables.values():
        for column in table.columns:
            if column.type.__class__.__name__ == "JSONB":
                column.type = JSON()


def build_sqlite_engine(url: str = "sqlite://"):
    patch_json_columns()
    kwargs: dict[str, Any] = {"future": True, "connect_args": {"check_same_thread": False}}
    if url == "sqlite://":
        kwargs["poolclass"] = StaticPool
    engine = create_engine(url, **kwargs)

    @event.listens_for(engine, "connect")
    def _register_functions(dbapi_connection, _):  # pragma: no cover - sqlite setup
        dbapi_connection.create_function("gen_random_uuid", 0, lambda: str(uuid.uuid4()))

    Base.metadata.create_all(engine)
    return engine


@pytest.fixture()
def engine() -> Iterator:
    engine = build_sqlite_engine()
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine) -> sessionmaker:
    return sessionmaker(
        bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, class_=Session
    )


@pytest.fixture()
def fake_minio() -> FakeMinio:
    return FakeMinio()


@pytest.fixture()
def gateway(fake_minio: FakeMinio) -> ObjectStoreGateway:
    return ObjectStoreGateway(client=fake_minio)  # type: ignore[arg-type]


@pytest.fixture()
def indexing_task(monkeypatch: pytest.MonkeyPatch) -> RecordingTask:
    task = RecordingTask()
    monkeypatch.setattr(tasks_module, "notify_indexer", task)
    return task


@pytest.fixture()
def resolver(session_factory: sessionmaker, gateway: ObjectStoreGateway) -> NamespaceResolver:
    return NamespaceResolver(session_factory, gateway)


@pytest.fixture()
def service(
    session_factory: sessionmaker,
    gateway: ObjectStoreGateway,
    resolver: NamespaceResolver,
    indexing_task: RecordingTask,
) -> IngestionService:
    return IngestionService(
        session_factory,
        gateway,
        resolver,
        ContactIdentifier(session_factory),
        IndexingTrigger(settle_seconds=0),
    )


@pytest.fixture()
def app(monkeypatch: pytest.MonkeyPatch, service: IngestionService) -> TestClient:
    monkeypatch.setattr(limiter, "enabled", False)

    app = create_app()
    app.dependency_overrides[get_ingestion_service] = lambda: service
    return TestClient(app)


def make_upload(name: str, data: bytes, content_type: str = "text/plain") -> dict[str, Any]:
    return {"file": (name, io.BytesIO(data), content_type)}
